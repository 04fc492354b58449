"""Device classification and best-effort IP geolocation."""
from __future__ import annotations

import ipaddress
import json
import logging
import re
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, ValidationError

from .schemas import DeviceInfo, LocationInfo
from .storage import ClientStorage

logger = logging.getLogger(__name__)

LOCATION_CACHE_KEY = "gcg_location"
_MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone|iPad")
_TABLET_PATTERN = re.compile(r"iPad")


class ClientEnvironment(BaseModel):
    """What the host knows about the client at tracking time."""

    user_agent: Optional[str] = None
    language: Optional[str] = None
    platform: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    ip: Optional[str] = None


def classify_device(user_agent: str) -> str:
    if _MOBILE_PATTERN.search(user_agent):
        return "Tablet" if _TABLET_PATTERN.search(user_agent) else "Mobile"
    return "Desktop"


def get_device_info(environment: Optional[ClientEnvironment] = None) -> DeviceInfo:
    env = environment or ClientEnvironment()
    user_agent = env.user_agent or "Unknown"
    return DeviceInfo(
        device=classify_device(user_agent),
        user_agent=user_agent,
        language=env.language or "Unknown",
        platform=env.platform or "Unknown",
        screen_width=env.screen_width or 0,
        screen_height=env.screen_height or 0,
    )


def _is_public_ip(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def normalize_location(payload: Dict[str, Any]) -> LocationInfo:
    return LocationInfo(
        ip=payload.get("ip"),
        country=payload.get("country_name"),
        country_code=payload.get("country_code"),
        region=payload.get("region"),
        city=payload.get("city"),
        zip=payload.get("postal"),
        latitude=payload.get("latitude"),
        longitude=payload.get("longitude"),
        isp=payload.get("org"),
    )


class LocationProbe:
    """Looks up the client's location once per session.

    The outcome of the first lookup, success or failure, is cached in the
    session storage; later calls in the same session never hit the network.
    """

    def __init__(
        self,
        session_storage: ClientStorage,
        base_url: str = "https://ipapi.co",
        timeout: float = 10.0,
        ip: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        self._storage = session_storage
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._ip = ip
        self._http = http or requests.Session()

    def _lookup_url(self) -> Optional[str]:
        # Without a known public client address the service would locate this server.
        if self._ip is not None and _is_public_ip(self._ip):
            return f"{self._base_url}/{self._ip}/json/"
        return None

    def _cached(self) -> tuple[bool, Optional[LocationInfo]]:
        raw = self._storage.get(LOCATION_CACHE_KEY)
        if raw is None:
            return False, None
        try:
            data = json.loads(raw)
            if data is None:
                return True, None
            return True, LocationInfo.model_validate(data)
        except (ValueError, ValidationError):
            logger.debug("Discarding unreadable cached location")
            return False, None

    def _remember(self, location: Optional[LocationInfo]) -> None:
        value = "null" if location is None else location.model_dump_json()
        self._storage.set(LOCATION_CACHE_KEY, value)

    def _fetch(self) -> Optional[LocationInfo]:
        url = self._lookup_url()
        if url is None:
            logger.debug("Skipping geolocation for unknown or non-public address %s", self._ip)
            return None
        try:
            response = self._http.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Could not fetch location: %s", exc)
            return None
        if not isinstance(payload, dict) or payload.get("error"):
            reason = payload.get("reason") if isinstance(payload, dict) else None
            logger.warning("Geolocation service reported an error: %s", reason or "unknown")
            return None
        try:
            return normalize_location(payload)
        except ValidationError as exc:
            logger.warning("Unexpected geolocation payload: %s", exc)
            return None

    def get_location_info(self) -> Optional[LocationInfo]:
        hit, location = self._cached()
        if hit:
            return location
        location = self._fetch()
        self._remember(location)
        return location
