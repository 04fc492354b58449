"""Visitor and session identifiers for one client."""
from __future__ import annotations

import secrets
import string
import time
from typing import Optional

from .storage import ClientStorage

VISITOR_ID_KEY = "gcg_visitor_id"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def _unique_token(prefix: str) -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def generate_session_id() -> str:
    return _unique_token("session")


class ClientIdentity:
    """Visitor/session identity of one client, built once per page load.

    The visitor id comes from ``durable`` storage and is created on first
    use; the session id is fresh for every identity unless an already open
    session is handed in. ``session_storage`` is exposed for collaborators
    that cache per-session data, such as the location probe.
    """

    def __init__(
        self,
        durable: ClientStorage,
        session_storage: ClientStorage,
        session_id: Optional[str] = None,
    ) -> None:
        self.durable = durable
        self.session_storage = session_storage
        self.visitor_id = self.get_or_create_visitor_id()
        self.session_id = session_id or generate_session_id()

    def get_or_create_visitor_id(self) -> str:
        visitor_id = self.durable.get(VISITOR_ID_KEY)
        if not visitor_id:
            visitor_id = _unique_token("visitor")
            self.durable.set(VISITOR_ID_KEY, visitor_id)
        return visitor_id

    generate_session_id = staticmethod(generate_session_id)
