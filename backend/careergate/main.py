"""FastAPI application entrypoint for the analytics API."""
from __future__ import annotations

import logging
from typing import List, Optional

import requests
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request, Response, status
from starlette.datastructures import Headers

from .config import Settings
from .database import build_engine, build_session_factory, init_db
from .identity import ClientIdentity
from .probe import ClientEnvironment, LocationProbe
from .ratelimit import FixedWindowRateLimiter, RateLimitError
from .reports import AnalyticsReports
from .schemas import (
    AgentInteractionIn,
    DailyStatOut,
    Dashboard,
    EventOut,
    JobRef,
    JobStatOut,
    PageViewIn,
    SessionOut,
    SummaryStats,
    TrackAccepted,
    WhatsAppClickIn,
)
from .service import AnalyticsService
from .storage import CookieStorage

logger = logging.getLogger(__name__)

SESSION_COOKIE = "gcg_session_id"
SESSION_HEADER = "x-session-id"

router = APIRouter()


def _int_header(headers: Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def client_environment(request: Request) -> ClientEnvironment:
    headers = request.headers
    settings: Settings = request.app.state.settings
    forwarded = headers.get("x-forwarded-for") if settings.trust_forwarded_for else None
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    language = headers.get("accept-language", "").split(",")[0].split(";")[0].strip()
    platform = headers.get("sec-ch-ua-platform", "").strip('"')
    return ClientEnvironment(
        user_agent=headers.get("user-agent"),
        language=language or None,
        platform=platform or None,
        screen_width=_int_header(headers, "x-screen-width"),
        screen_height=_int_header(headers, "x-screen-height"),
        ip=ip,
    )


def build_tracker(request: Request, response: Response, session_id: Optional[str]) -> AnalyticsService:
    """Assemble the analytics facade for the client behind ``request``.

    The visitor id lives in a persistent cookie, the session id and the
    cached location in browser-session cookies.
    """
    state = request.app.state
    settings: Settings = state.settings
    durable = CookieStorage(request.cookies, response, max_age=settings.visitor_cookie_max_age)
    session_storage = CookieStorage(request.cookies, response)
    identity = ClientIdentity(durable, session_storage, session_id=session_id)
    environment = client_environment(request)

    probe = None
    if settings.geolocation_enabled:
        probe = LocationProbe(
            session_storage,
            base_url=settings.geolocation_url,
            timeout=settings.geolocation_timeout,
            ip=environment.ip,
            http=state.http,
        )
    return AnalyticsService(
        state.session_factory,
        identity,
        environment=environment,
        location_probe=probe,
        app_id=settings.app_id,
    )


def get_tracker(request: Request, response: Response) -> AnalyticsService:
    # Tabs share cookies; the header pins a call to the page load that started it.
    session_id = request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)
    return build_tracker(request, response, session_id)


def get_reports(request: Request) -> AnalyticsReports:
    client_identifier = "anonymous"
    if request.client:
        client_identifier = request.client.host or client_identifier

    try:
        request.app.state.report_rate_limiter.check(client_identifier)
    except RateLimitError:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")

    state = request.app.state
    return AnalyticsReports(state.session_factory, app_id=state.settings.app_id)


def _accepted(tracker: AnalyticsService) -> TrackAccepted:
    return TrackAccepted(session_id=tracker.session_id, visitor_id=tracker.visitor_id)


@router.post("/track/session/start", response_model=TrackAccepted, status_code=status.HTTP_201_CREATED)
def start_session(request: Request, response: Response) -> TrackAccepted:
    # Runs inline: the location lookup may need to set the cache cookie.
    tracker = build_tracker(request, response, session_id=None)
    response.set_cookie(SESSION_COOKIE, tracker.session_id, httponly=True, samesite="lax")
    result = tracker.track_session_start()
    return TrackAccepted(session_id=tracker.session_id, visitor_id=tracker.visitor_id, result=result)


@router.post("/track/session/end", response_model=TrackAccepted, status_code=status.HTTP_202_ACCEPTED)
def end_session(
    background_tasks: BackgroundTasks,
    tracker: AnalyticsService = Depends(get_tracker),
) -> TrackAccepted:
    background_tasks.add_task(tracker.track_session_end)
    return _accepted(tracker)


@router.post("/track/page-view", response_model=TrackAccepted, status_code=status.HTTP_202_ACCEPTED)
def page_view(
    page: PageViewIn,
    background_tasks: BackgroundTasks,
    tracker: AnalyticsService = Depends(get_tracker),
) -> TrackAccepted:
    background_tasks.add_task(tracker.track_page_view, page.page_name, page.page_data, page.url, page.referrer)
    return _accepted(tracker)


@router.post("/track/job-view", response_model=TrackAccepted, status_code=status.HTTP_202_ACCEPTED)
def job_view(
    job: JobRef,
    background_tasks: BackgroundTasks,
    tracker: AnalyticsService = Depends(get_tracker),
) -> TrackAccepted:
    background_tasks.add_task(tracker.track_job_view, job)
    return _accepted(tracker)


@router.post("/track/whatsapp-click", response_model=TrackAccepted, status_code=status.HTTP_202_ACCEPTED)
def whatsapp_click(
    click: WhatsAppClickIn,
    background_tasks: BackgroundTasks,
    tracker: AnalyticsService = Depends(get_tracker),
) -> TrackAccepted:
    background_tasks.add_task(tracker.track_whatsapp_click, click.job, click.source)
    return _accepted(tracker)


@router.post("/track/agent", response_model=TrackAccepted, status_code=status.HTTP_202_ACCEPTED)
def agent_interaction(
    interaction: AgentInteractionIn,
    background_tasks: BackgroundTasks,
    tracker: AnalyticsService = Depends(get_tracker),
) -> TrackAccepted:
    background_tasks.add_task(tracker.track_agent_interaction, interaction.interaction_type, interaction.data)
    return _accepted(tracker)


@router.get("/stats/summary", response_model=Optional[SummaryStats])
def summary_stats(reports: AnalyticsReports = Depends(get_reports)) -> Optional[SummaryStats]:
    return reports.get_summary_stats()


@router.get("/stats/daily", response_model=List[DailyStatOut])
def daily_stats(
    days: int = Query(7, ge=1, le=366),
    reports: AnalyticsReports = Depends(get_reports),
) -> List[DailyStatOut]:
    return reports.get_daily_stats(days)


@router.get("/events", response_model=List[EventOut])
def recent_events(
    event_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=500),
    reports: AnalyticsReports = Depends(get_reports),
) -> List[EventOut]:
    return reports.get_recent_events(event_type, limit)


@router.get("/sessions", response_model=List[SessionOut])
def recent_sessions(
    limit: int = Query(50, ge=1, le=500),
    reports: AnalyticsReports = Depends(get_reports),
) -> List[SessionOut]:
    return reports.get_recent_sessions(limit)


@router.get("/jobs/stats", response_model=List[JobStatOut])
def job_stats(reports: AnalyticsReports = Depends(get_reports)) -> List[JobStatOut]:
    return sorted(reports.get_job_stats(), key=lambda stat: stat.views, reverse=True)


@router.get("/agent/conversations", response_model=List[EventOut])
def agent_conversations(
    limit: int = Query(20, ge=1, le=500),
    reports: AnalyticsReports = Depends(get_reports),
) -> List[EventOut]:
    return reports.get_agent_conversations(limit)


@router.get("/dashboard", response_model=Dashboard)
def dashboard(reports: AnalyticsReports = Depends(get_reports)) -> Dashboard:
    return reports.get_dashboard()


def create_app(settings: Optional[Settings] = None, http: Optional[requests.Session] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    engine = build_engine(settings.database_url)
    init_db(engine)

    app = FastAPI(
        title="Gulf Career Gateway Analytics API",
        description="API for tracking visitor activity and reporting on it.",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.report_rate_limiter = FixedWindowRateLimiter(settings.report_rate_limit, settings.report_rate_window)
    app.state.http = http or requests.Session()
    app.include_router(router)
    logger.info("Analytics API ready for %s", settings.app_id)
    return app


app = create_app()
