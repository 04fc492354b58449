"""Environment driven settings for the analytics service."""
from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel

ENV_PREFIX = "GCG_"
DEFAULT_DATABASE_URL = "sqlite:///./careergate.db"
DEFAULT_APP_ID = "gulf-career-gateway"
DEFAULT_GEOLOCATION_URL = "https://ipapi.co"
TWO_YEARS_SECONDS = 2 * 365 * 24 * 60 * 60


def _env(environ: Mapping[str, str], name: str, default: str) -> str:
    value = environ.get(ENV_PREFIX + name)
    if value is None or value == "":
        return default
    return value


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = _env(environ, name, "true" if default else "false")
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    app_id: str = DEFAULT_APP_ID
    geolocation_url: str = DEFAULT_GEOLOCATION_URL
    geolocation_timeout: float = 10.0
    geolocation_enabled: bool = True
    visitor_cookie_max_age: int = TWO_YEARS_SECONDS
    report_rate_limit: int = 60
    report_rate_window: int = 60
    trust_forwarded_for: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            database_url=_env(environ, "DATABASE_URL", DEFAULT_DATABASE_URL),
            app_id=_env(environ, "APP_ID", DEFAULT_APP_ID),
            geolocation_url=_env(environ, "GEOLOCATION_URL", DEFAULT_GEOLOCATION_URL).rstrip("/"),
            geolocation_timeout=float(_env(environ, "GEOLOCATION_TIMEOUT", "10")),
            geolocation_enabled=_env_bool(environ, "GEOLOCATION_ENABLED", True),
            visitor_cookie_max_age=int(_env(environ, "VISITOR_COOKIE_MAX_AGE", str(TWO_YEARS_SECONDS))),
            report_rate_limit=int(_env(environ, "REPORT_RATE_LIMIT", "60")),
            report_rate_window=int(_env(environ, "REPORT_RATE_WINDOW", "60")),
            trust_forwarded_for=_env_bool(environ, "TRUST_FORWARDED_FOR", False),
            log_level=_env(environ, "LOG_LEVEL", "INFO").upper(),
        )
