"""Namespaced CSRF state storage on top of the host's session.

The session itself is owned by the host (a cookie session, a server-side
store, or a plain dict in tests). Only a single key is read or written.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

Session = MutableMapping[str, Any]


class SessionState:
    """Stores the state token of the current authorization attempt."""

    def __init__(self, session: Session, key: str):
        self._session = session
        self.key = key

    def issue(self, state: str) -> None:
        """Remember ``state`` for the next callback, replacing any previous one."""
        self._session[self.key] = state

    def peek(self) -> str | None:
        return self._session.get(self.key)

    def consume(self) -> str | None:
        """Return the stored state and remove it; tokens are single-use."""
        value = self._session.pop(self.key, None)
        if value is None or value == "":
            return None
        return str(value)
