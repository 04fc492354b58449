"""Rolling per-day and per-job counters.

Increments always happen inside the database (``SET field = field + 1``) so
that concurrent writers from different sessions never lose an update. Where
the dialect supports ``INSERT ... ON CONFLICT DO UPDATE`` the counter row is
created and incremented in a single statement. Elsewhere the row is read
first and created when missing; two writers creating the same row at once
can then lose one seed, which is tolerated as a rare under-count.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Type

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from .clock import Clock, day_key, utcnow
from .database import session_scope
from .models import Base, DailyStat, JobStat

logger = logging.getLogger(__name__)

DAILY_FIELDS = (
    "page_views",
    "sessions",
    "new_visitors",
    "job_views",
    "whatsapp_clicks",
    "agent_sessions",
    "agent_messages",
)
JOB_FIELDS = ("views", "whatsapp_clicks")

_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class AggregateUpdater:
    def __init__(
        self,
        session_factory: sessionmaker,
        app_id: str,
        clock: Clock = utcnow,
        upsert: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._app_id = app_id
        self._clock = clock
        self._upsert = upsert

    def update_daily_stats(self, field: str) -> None:
        if field not in DAILY_FIELDS:
            raise ValueError(f"Unknown daily counter {field!r}")
        now = self._clock()
        key = {"app_id": self._app_id, "date": day_key(now)}
        with session_scope(self._session_factory) as session:
            self._increment(session, DailyStat, key, DAILY_FIELDS, field, now)

    def update_job_stats(self, job_id: Optional[str], field: str) -> None:
        if field not in JOB_FIELDS:
            raise ValueError(f"Unknown job counter {field!r}")
        if not job_id:
            return
        now = self._clock()
        key = {"app_id": self._app_id, "job_id": job_id}
        with session_scope(self._session_factory) as session:
            self._increment(session, JobStat, key, JOB_FIELDS, field, now)

    def _insert_for(self, session: Session):
        if not self._upsert:
            return None
        return _UPSERT_INSERTS.get(session.get_bind().dialect.name)

    def _increment(
        self,
        session: Session,
        model: Type[Base],
        key: Dict[str, Any],
        fields: Sequence[str],
        field: str,
        now: datetime,
    ) -> None:
        table = model.__table__
        seed = {name: 1 if name == field else 0 for name in fields}
        insert = self._insert_for(session)

        if insert is not None:
            stmt = insert(table).values(**key, **seed, last_updated=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key),
                set_={field: table.c[field] + 1, "last_updated": now},
            )
            session.execute(stmt)
            return

        existing = session.get(model, key)
        if existing is None:
            session.add(model(**key, **seed, last_updated=now))
            logger.debug("Created %s row %s", table.name, key)
            return

        conditions = [table.c[name] == value for name, value in key.items()]
        session.execute(
            update(table)
            .where(*conditions)
            .values({field: table.c[field] + 1, "last_updated": now})
        )
