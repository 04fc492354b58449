"""Pydantic models for tracked records, report rows and request bodies."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

DeviceClass = Literal["Desktop", "Mobile", "Tablet"]
InteractionType = Literal["started", "message", "ended", "language_change"]
TrackingStatus = Literal["ok", "failed", "skipped"]


class DeviceInfo(BaseModel):
    device: DeviceClass = "Desktop"
    user_agent: str = "Unknown"
    language: str = "Unknown"
    platform: str = "Unknown"
    screen_width: int = 0
    screen_height: int = 0


class LocationInfo(BaseModel):
    ip: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    isp: Optional[str] = None


class JobRef(BaseModel):
    """The slice of a job posting that analytics records."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Job posting identifier")
    title: Optional[str] = None
    company: Optional[str] = None


class TrackingResult(BaseModel):
    """Outcome of one tracking call.

    Tracking never raises; callers that care can inspect the status, everyone
    else ignores it.
    """

    status: TrackingStatus
    operation: str
    event_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "ok"

    @classmethod
    def ok(cls, operation: str, event_id: Optional[int] = None) -> "TrackingResult":
        return cls(status="ok", operation=operation, event_id=event_id)

    @classmethod
    def failed(cls, operation: str, error: str, event_id: Optional[int] = None) -> "TrackingResult":
        return cls(status="failed", operation=operation, error=error, event_id=event_id)

    @classmethod
    def skipped(cls, operation: str, reason: str) -> "TrackingResult":
        return cls(status="skipped", operation=operation, error=reason)


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    session_id: str
    visitor_id: str
    device_info: Dict[str, Any]
    timestamp: datetime
    date: str
    page_name: Optional[str] = None
    page_data: Optional[Dict[str, Any]] = None
    url: Optional[str] = None
    referrer: Optional[str] = None
    job_id: Optional[str] = None
    job_title: Optional[str] = None
    job_company: Optional[str] = None
    source: Optional[str] = None
    interaction_type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    visitor_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    device_info: Dict[str, Any]
    location_info: Optional[Dict[str, Any]] = None
    date: str
    pages_viewed: List[Any] = Field(default_factory=list)
    jobs_viewed: List[Any] = Field(default_factory=list)
    agent_interacted: bool = False
    whatsapp_clicked: bool = False


class DailyStatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str
    page_views: int = 0
    sessions: int = 0
    new_visitors: int = 0
    job_views: int = 0
    whatsapp_clicks: int = 0
    agent_sessions: int = 0
    agent_messages: int = 0
    last_updated: Optional[datetime] = None


class JobStatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    views: int = 0
    whatsapp_clicks: int = 0
    last_updated: Optional[datetime] = None

    @computed_field  # type: ignore[misc]
    @property
    def conversion_rate(self) -> int:
        """WhatsApp clicks per hundred views."""
        if self.views <= 0:
            return 0
        return round(self.whatsapp_clicks / self.views * 100)


class Last7Days(BaseModel):
    total_views: int = 0
    total_sessions: int = 0
    total_whatsapp: int = 0
    total_agent_sessions: int = 0


class SummaryStats(BaseModel):
    today: Optional[DailyStatOut] = None
    last_7_days: Last7Days = Field(default_factory=Last7Days)
    daily_breakdown: List[DailyStatOut] = Field(default_factory=list)


class Dashboard(BaseModel):
    summary: Optional[SummaryStats] = None
    recent_events: List[EventOut] = Field(default_factory=list)
    job_stats: List[JobStatOut] = Field(default_factory=list)
    agent_conversations: List[EventOut] = Field(default_factory=list)
    recent_sessions: List[SessionOut] = Field(default_factory=list)


class PageViewIn(BaseModel):
    page_name: str = Field(..., min_length=1, description="Logical page name, e.g. home or job_detail")
    page_data: Dict[str, Any] = Field(default_factory=dict)
    url: Optional[str] = None
    referrer: Optional[str] = None


class WhatsAppClickIn(BaseModel):
    job: Optional[JobRef] = None
    source: str = "job_card"


class AgentInteractionIn(BaseModel):
    interaction_type: InteractionType
    data: Dict[str, Any] = Field(default_factory=dict)


class TrackAccepted(BaseModel):
    session_id: str
    visitor_id: str
    result: Optional[TrackingResult] = None
