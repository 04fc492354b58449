"""Client-side key/value storage adapters.

The analytics identity needs two stores: a durable one that outlives page
loads (the visitor id) and a session-scoped one that dies with the browser
tab (the cached location). Each adapter below plays one of those roles.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union
from urllib.parse import quote, unquote

from fastapi import Response

logger = logging.getLogger(__name__)


class ClientStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    """Process-local storage, used for session scope and in tests."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value


class JsonFileStorage:
    """Durable storage persisted as a flat JSON object on disk."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable client storage file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self._path)


class CookieStorage:
    """Storage backed by the cookies of one HTTP exchange.

    With ``max_age`` the cookie persists in the browser; without it the
    cookie is a browser-session cookie and disappears with the session.
    """

    def __init__(
        self,
        cookies: Mapping[str, str],
        response: Response,
        max_age: Optional[int] = None,
    ) -> None:
        self._cookies = cookies
        self._response = response
        self._max_age = max_age
        self._written: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        if key in self._written:
            return self._written[key]
        value = self._cookies.get(key)
        if value is None:
            return None
        return unquote(value)

    def set(self, key: str, value: str) -> None:
        self._written[key] = value
        self._response.set_cookie(
            key,
            quote(value, safe=""),
            max_age=self._max_age,
            httponly=True,
            samesite="lax",
        )
