"""Analytics facade: event recording and session tracking.

Every tracking method appends to the event log first and then bumps the
matching counters in separate transactions. The event log is the source of
truth; the counters are a best-effort cache that can lag behind it when a
counter update fails.

Nothing here raises into the caller. Tracking methods return a
:class:`~.schemas.TrackingResult`; the report methods inherited from
:class:`~.reports.AnalyticsReports` return ``[]`` or ``None`` on failure.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .aggregates import AggregateUpdater
from .clock import Clock, as_utc, day_key, utcnow
from .config import DEFAULT_APP_ID
from .database import session_scope
from .identity import ClientIdentity
from .models import Event, VisitSession
from .probe import ClientEnvironment, LocationProbe, get_device_info
from .reports import AnalyticsReports
from .schemas import DeviceInfo, JobRef, LocationInfo, TrackingResult

logger = logging.getLogger(__name__)

INTERACTION_TYPES = ("started", "message", "ended", "language_change")
GENERAL_JOB_ID = "general"
GENERAL_JOB_TITLE = "General Inquiry"
NO_STORE = "analytics store not configured"

JobLike = Union[JobRef, Mapping[str, Any], None]


def _coerce_job(job: JobLike) -> Optional[JobRef]:
    if job is None or isinstance(job, JobRef):
        return job
    data = dict(job)
    if not data:
        return None
    if data.get("id") is not None:
        data["id"] = str(data["id"])
    try:
        return JobRef.model_validate(data)
    except ValidationError:
        logger.warning("Job reference has no usable id: %r", data)
        return None


def _job_label(job: JobLike, name: str) -> Optional[str]:
    """Title or company of a job, even when it has no usable id."""
    if isinstance(job, JobRef):
        return getattr(job, name)
    if isinstance(job, Mapping):
        value = job.get(name)
        return str(value) if value else None
    return None


class AnalyticsService(AnalyticsReports):
    """Tracks one client's activity; also serves every report.

    One instance per client identity (a page load). ``session_factory`` may
    be ``None`` while the store is not available; every call then no-ops.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker],
        identity: ClientIdentity,
        environment: Optional[ClientEnvironment] = None,
        location_probe: Optional[LocationProbe] = None,
        app_id: str = DEFAULT_APP_ID,
        clock: Clock = utcnow,
        aggregates: Optional[AggregateUpdater] = None,
    ) -> None:
        super().__init__(session_factory, app_id=app_id, clock=clock)
        self._identity = identity
        self._environment = environment or ClientEnvironment()
        self._location_probe = location_probe
        if aggregates is None and session_factory is not None:
            aggregates = AggregateUpdater(session_factory, app_id, clock=clock)
        self._aggregates = aggregates

    @property
    def session_id(self) -> str:
        return self._identity.session_id

    @property
    def visitor_id(self) -> str:
        return self._identity.visitor_id

    def get_device_info(self) -> DeviceInfo:
        return get_device_info(self._environment)

    def get_location_info(self) -> Optional[LocationInfo]:
        if self._location_probe is None:
            return None
        return self._location_probe.get_location_info()

    # Tracking

    def _apply_counters(
        self,
        operation: str,
        counters: Sequence[Callable[[], None]],
        event_id: Optional[int] = None,
    ) -> TrackingResult:
        errors: List[str] = []
        for counter in counters:
            try:
                counter()
            except SQLAlchemyError as exc:
                logger.exception("Error updating counters for %s", operation)
                errors.append(str(exc))
        if errors:
            return TrackingResult.failed(operation, "; ".join(errors), event_id=event_id)
        return TrackingResult.ok(operation, event_id=event_id)

    def _record(
        self,
        operation: str,
        event_type: str,
        counters: Sequence[Callable[[], None]] = (),
        **payload: Any,
    ) -> TrackingResult:
        if self._session_factory is None:
            return TrackingResult.skipped(operation, NO_STORE)

        now = self._clock()
        event = Event(
            app_id=self._app_id,
            type=event_type,
            session_id=self.session_id,
            visitor_id=self.visitor_id,
            device_info=self.get_device_info().model_dump(),
            timestamp=now,
            date=day_key(now),
            **payload,
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(event)
                session.flush()
                event_id = event.id
        except SQLAlchemyError as exc:
            logger.exception("Error tracking %s", operation)
            return TrackingResult.failed(operation, str(exc))

        return self._apply_counters(operation, counters, event_id=event_id)

    def track_page_view(
        self,
        page_name: str,
        page_data: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> TrackingResult:
        counters = []
        if self._aggregates is not None:
            counters.append(partial(self._aggregates.update_daily_stats, "page_views"))
        result = self._record(
            "page_view",
            "page_view",
            counters,
            page_name=page_name,
            page_data=dict(page_data or {}),
            url=url,
            referrer=referrer or "direct",
        )
        if result.succeeded:
            logger.debug("Page view tracked: %s", page_name)
        return result

    def track_job_view(self, job: JobLike) -> TrackingResult:
        job_ref = _coerce_job(job)
        if job_ref is None:
            return TrackingResult.skipped("job_view", "no job given")

        counters = []
        if self._aggregates is not None:
            counters.append(partial(self._aggregates.update_daily_stats, "job_views"))
            counters.append(partial(self._aggregates.update_job_stats, job_ref.id, "views"))
        result = self._record(
            "job_view",
            "job_view",
            counters,
            job_id=job_ref.id,
            job_title=job_ref.title,
            job_company=job_ref.company,
        )
        if result.succeeded:
            logger.debug("Job view tracked: %s", job_ref.title)
        return result

    def track_whatsapp_click(self, job: JobLike = None, source: str = "job_card") -> TrackingResult:
        job_ref = _coerce_job(job)

        counters = []
        if self._aggregates is not None:
            counters.append(partial(self._aggregates.update_daily_stats, "whatsapp_clicks"))
            if job_ref is not None:
                counters.append(partial(self._aggregates.update_job_stats, job_ref.id, "whatsapp_clicks"))
        result = self._record(
            "whatsapp_click",
            "whatsapp_click",
            counters,
            job_id=job_ref.id if job_ref else GENERAL_JOB_ID,
            job_title=_job_label(job, "title") or GENERAL_JOB_TITLE,
            job_company=_job_label(job, "company") or "",
            source=source,
        )
        if result.succeeded:
            logger.debug("WhatsApp click tracked: %s", _job_label(job, "title") or "General")
        return result

    def track_agent_interaction(
        self,
        interaction_type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> TrackingResult:
        operation = "agent_interaction"
        if interaction_type not in INTERACTION_TYPES:
            logger.warning("Unknown agent interaction type %r", interaction_type)
            return TrackingResult.failed(operation, f"unknown interaction type {interaction_type!r}")

        counters = []
        if self._aggregates is not None:
            if interaction_type == "started":
                counters.append(partial(self._aggregates.update_daily_stats, "agent_sessions"))
            elif interaction_type == "message":
                counters.append(partial(self._aggregates.update_daily_stats, "agent_messages"))
        result = self._record(
            operation,
            "agent_interaction",
            counters,
            interaction_type=interaction_type,
            data=dict(data or {}),
        )
        if result.succeeded:
            logger.debug("Agent interaction tracked: %s", interaction_type)
        return result

    # Sessions

    def _is_new_visitor(self) -> bool:
        # At most one session row (the one just written) means first visit.
        try:
            with session_scope(self._session_factory) as session:
                stmt = (
                    select(VisitSession.session_id)
                    .where(
                        VisitSession.app_id == self._app_id,
                        VisitSession.visitor_id == self.visitor_id,
                    )
                    .limit(2)
                )
                found = session.execute(stmt).scalars().all()
        except SQLAlchemyError:
            logger.warning("Could not check visitor history for %s", self.visitor_id, exc_info=True)
            return True
        return len(found) <= 1

    def track_session_start(self) -> TrackingResult:
        operation = "session_start"
        if self._session_factory is None:
            return TrackingResult.skipped(operation, NO_STORE)

        location = self.get_location_info()
        now = self._clock()
        record = VisitSession(
            app_id=self._app_id,
            session_id=self.session_id,
            visitor_id=self.visitor_id,
            start_time=now,
            end_time=None,
            duration=None,
            device_info=self.get_device_info().model_dump(),
            location_info=location.model_dump() if location is not None else None,
            date=day_key(now),
            pages_viewed=[],
            jobs_viewed=[],
            agent_interacted=False,
            whatsapp_clicked=False,
        )
        try:
            with session_scope(self._session_factory) as session:
                session.add(record)
        except SQLAlchemyError as exc:
            logger.exception("Error tracking session start")
            return TrackingResult.failed(operation, str(exc))

        counters = []
        if self._aggregates is not None:
            counters.append(partial(self._aggregates.update_daily_stats, "sessions"))
            if self._is_new_visitor():
                counters.append(partial(self._aggregates.update_daily_stats, "new_visitors"))
        result = self._apply_counters(operation, counters)

        if location is not None:
            logger.info("Session started: %s from %s, %s", self.session_id, location.city, location.country)
        else:
            logger.info("Session started: %s", self.session_id)
        return result

    def track_session_end(self) -> TrackingResult:
        operation = "session_end"
        if self._session_factory is None:
            return TrackingResult.skipped(operation, NO_STORE)

        now = self._clock()
        try:
            with session_scope(self._session_factory) as session:
                record = session.get(
                    VisitSession,
                    {"app_id": self._app_id, "session_id": self.session_id},
                )
                if record is None:
                    logger.error("Error tracking session end: no session %s", self.session_id)
                    return TrackingResult.failed(operation, "session not found")
                if record.end_time is not None:
                    logger.warning("Session %s already ended", self.session_id)
                    return TrackingResult.skipped(operation, "session already ended")
                record.end_time = now
                record.duration = max(0, int((now - as_utc(record.start_time)).total_seconds()))
                duration = record.duration
        except SQLAlchemyError as exc:
            logger.exception("Error tracking session end")
            return TrackingResult.failed(operation, str(exc))

        logger.info("Session ended: %s after %ss", self.session_id, duration)
        return TrackingResult.ok(operation)
