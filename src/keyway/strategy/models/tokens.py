"""Access token model for the authorization code exchange.

Wraps the token endpoint response (RFC 6749 Section 5.1). The strategy
passes it through to the host without inspecting it further.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


class AccessToken(BaseModel):
    """Credential returned by a successful code exchange."""

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    expires_at: float | None = None  # Unix timestamp
    refresh_token: str | None = None
    scope: str | None = None

    # Full response body, including provider-specific fields
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> AccessToken:
        """Build a token from a token endpoint response body.

        ``expires_at`` is taken from the response when present, otherwise
        derived from ``expires_in``.
        """
        data = dict(response)
        expires_in = data.get("expires_in")
        expires_at = data.get("expires_at")
        if expires_at is None and expires_in is not None:
            expires_at = time.time() + int(expires_in)

        return cls(
            access_token=data.get("access_token") or "",
            token_type=data.get("token_type") or "Bearer",
            expires_in=expires_in,
            expires_at=expires_at,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            params=data,
        )

    def expires(self) -> bool:
        return self.expires_at is not None

    def is_expired(self, buffer_seconds: float = 0.0) -> bool:
        """Check if the token has expired, optionally ahead of time."""
        if self.expires_at is None:
            return False
        return time.time() >= (self.expires_at - buffer_seconds)

    def credentials(self) -> dict[str, Any]:
        """Summary of the token for the host's authenticated session."""
        credentials: dict[str, Any] = {"token": self.access_token}
        if self.refresh_token:
            credentials["refresh_token"] = self.refresh_token
        if self.expires():
            credentials["expires_at"] = int(self.expires_at)
        credentials["expires"] = self.expires()
        return credentials
