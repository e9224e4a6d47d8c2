"""Login sessions for the HTTP boundary.

Maps opaque tokens to the `Caller` that logged in. Only the API module
holds a registry; the lending workflow receives the resolved caller.
"""

from __future__ import annotations

import secrets
import time
from typing import Dict, Optional, Tuple

from lending_desk.accounts import Caller


class SessionRegistry:
    def __init__(self, ttl_seconds: int) -> None:
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, Tuple[Caller, float]] = {}

    def open(self, caller: Caller) -> str:
        """Start a session and return its token. Expired sessions are dropped first."""
        now = time.monotonic()
        self._sessions = {t: entry for t, entry in self._sessions.items() if entry[1] > now}
        token = secrets.token_hex(16)
        while token in self._sessions:
            token = secrets.token_hex(16)
        self._sessions[token] = (caller, now + self.ttl_seconds)
        return token

    def resolve(self, token: Optional[str]) -> Optional[Caller]:
        """Return the caller for a live token, dropping it if it has expired."""
        if not token:
            return None
        entry = self._sessions.get(token)
        if entry is None:
            return None
        caller, expires_at = entry
        if time.monotonic() >= expires_at:
            self._sessions.pop(token, None)
            return None
        return caller

    def close(self, token: Optional[str]) -> bool:
        return bool(token) and self._sessions.pop(token, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
