"""SQLAlchemy models for events, sessions and aggregate counters."""
from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

EVENT_TYPES = ("page_view", "job_view", "whatsapp_click", "agent_interaction")


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_app_type_timestamp", "app_id", "type", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(String(128), index=True, nullable=False)
    type = Column(String(32), nullable=False)
    session_id = Column(String(64), index=True, nullable=False)
    visitor_id = Column(String(64), index=True, nullable=False)
    device_info = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    date = Column(String(10), index=True, nullable=False)

    # page_view
    page_name = Column(String(255), nullable=True)
    page_data = Column(JSON, nullable=True)
    url = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)

    # job_view / whatsapp_click
    job_id = Column(String(128), index=True, nullable=True)
    job_title = Column(String(255), nullable=True)
    job_company = Column(String(255), nullable=True)
    source = Column(String(64), nullable=True)

    # agent_interaction
    interaction_type = Column(String(32), nullable=True)
    data = Column(JSON, nullable=True)


class VisitSession(Base):
    __tablename__ = "sessions"

    app_id = Column(String(128), primary_key=True)
    session_id = Column(String(64), primary_key=True)
    visitor_id = Column(String(64), index=True, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)
    device_info = Column(JSON, nullable=False, default=dict)
    location_info = Column(JSON, nullable=True)
    date = Column(String(10), index=True, nullable=False)
    pages_viewed = Column(JSON, nullable=False, default=list)
    jobs_viewed = Column(JSON, nullable=False, default=list)
    agent_interacted = Column(Boolean, nullable=False, default=False)
    whatsapp_clicked = Column(Boolean, nullable=False, default=False)


class DailyStat(Base):
    __tablename__ = "daily_stats"

    app_id = Column(String(128), primary_key=True)
    date = Column(String(10), primary_key=True)
    page_views = Column(Integer, nullable=False, default=0)
    sessions = Column(Integer, nullable=False, default=0)
    new_visitors = Column(Integer, nullable=False, default=0)
    job_views = Column(Integer, nullable=False, default=0)
    whatsapp_clicks = Column(Integer, nullable=False, default=0)
    agent_sessions = Column(Integer, nullable=False, default=0)
    agent_messages = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=False)


class JobStat(Base):
    __tablename__ = "job_stats"

    app_id = Column(String(128), primary_key=True)
    job_id = Column(String(128), primary_key=True)
    views = Column(Integer, nullable=False, default=0)
    whatsapp_clicks = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=False)
