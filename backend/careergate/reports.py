"""Read side of the analytics store, as shown on the admin dashboard.

Reports read the counter tables, which are eventually consistent with the
event log; totals are summed at read time and never stored. Every method
returns ``[]`` or ``None`` instead of raising when the store is missing or
a query fails.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .clock import Clock, day_key, utcnow
from .config import DEFAULT_APP_ID
from .database import session_scope
from .models import DailyStat, Event, JobStat, VisitSession
from .schemas import (
    DailyStatOut,
    Dashboard,
    EventOut,
    JobStatOut,
    Last7Days,
    SessionOut,
    SummaryStats,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalyticsReports:
    def __init__(
        self,
        session_factory: Optional[sessionmaker],
        app_id: str = DEFAULT_APP_ID,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._app_id = app_id
        self._clock = clock

    def _read(self, operation: str, query: Callable[[Session], T], default: T) -> T:
        if self._session_factory is None:
            return default
        try:
            with session_scope(self._session_factory) as session:
                return query(session)
        except SQLAlchemyError:
            logger.exception("Error getting %s", operation)
            return default

    def get_daily_stats(self, days: int = 7) -> List[DailyStatOut]:
        if days <= 0:
            return []

        def query(session: Session) -> List[DailyStatOut]:
            stmt = (
                select(DailyStat)
                .where(DailyStat.app_id == self._app_id)
                .order_by(DailyStat.date.desc())
                .limit(days)
            )
            return [DailyStatOut.model_validate(row) for row in session.execute(stmt).scalars()]

        return self._read("daily stats", query, [])

    def get_recent_events(self, event_type: Optional[str] = None, limit_count: int = 50) -> List[EventOut]:
        if limit_count <= 0:
            return []

        def query(session: Session) -> List[EventOut]:
            stmt = select(Event).where(Event.app_id == self._app_id)
            if event_type:
                stmt = stmt.where(Event.type == event_type)
            stmt = stmt.order_by(Event.timestamp.desc(), Event.id.desc()).limit(limit_count)
            return [EventOut.model_validate(row) for row in session.execute(stmt).scalars()]

        return self._read("recent events", query, [])

    def get_job_stats(self) -> List[JobStatOut]:
        def query(session: Session) -> List[JobStatOut]:
            stmt = select(JobStat).where(JobStat.app_id == self._app_id)
            return [JobStatOut.model_validate(row) for row in session.execute(stmt).scalars()]

        return self._read("job stats", query, [])

    def get_agent_conversations(self, limit_count: int = 20) -> List[EventOut]:
        return self.get_recent_events("agent_interaction", limit_count)

    def get_recent_sessions(self, limit_count: int = 50) -> List[SessionOut]:
        if limit_count <= 0:
            return []

        def query(session: Session) -> List[SessionOut]:
            stmt = (
                select(VisitSession)
                .where(VisitSession.app_id == self._app_id)
                .order_by(VisitSession.start_time.desc())
                .limit(limit_count)
            )
            return [SessionOut.model_validate(row) for row in session.execute(stmt).scalars()]

        return self._read("recent sessions", query, [])

    def get_summary_stats(self) -> Optional[SummaryStats]:
        if self._session_factory is None:
            return None

        today_key = day_key(self._clock())
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(DailyStat, {"app_id": self._app_id, "date": today_key})
                today = DailyStatOut.model_validate(row) if row is not None else None
        except SQLAlchemyError:
            logger.exception("Error getting summary stats")
            return None

        breakdown = self.get_daily_stats(7)
        totals = Last7Days(
            total_views=sum(day.page_views for day in breakdown),
            total_sessions=sum(day.sessions for day in breakdown),
            total_whatsapp=sum(day.whatsapp_clicks for day in breakdown),
            total_agent_sessions=sum(day.agent_sessions for day in breakdown),
        )
        return SummaryStats(today=today, last_7_days=totals, daily_breakdown=breakdown)

    def get_dashboard(self) -> Dashboard:
        """Everything the admin dashboard shows, in one call."""
        job_stats = sorted(self.get_job_stats(), key=lambda stat: stat.views, reverse=True)
        return Dashboard(
            summary=self.get_summary_stats(),
            recent_events=self.get_recent_events(None, 100),
            job_stats=job_stats,
            agent_conversations=self.get_agent_conversations(50),
            recent_sessions=self.get_recent_sessions(50),
        )
