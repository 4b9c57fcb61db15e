"""Exception hierarchy for the OAuth2 authorization code strategy.

Provider-reported and CSRF failures are returned as values (see
``CallbackFailure``); these exceptions cover configuration problems,
the structured callback error detail, and token exchange failures.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class FailureCode(str, Enum):
    """Failure codes produced by the strategy itself."""

    CSRF_DETECTED = "csrf_detected"
    MISSING_CODE = "missing_code"
    INVALID_CREDENTIALS = "invalid_credentials"
    TIMEOUT = "timeout"
    FAILED_TO_CONNECT = "failed_to_connect"
    HTTP_ERROR = "http_error"
    INVALID_RESPONSE = "invalid_response"

    def __str__(self) -> str:
        return self.value


def _render(part: Any) -> str:
    if isinstance(part, Enum):
        return str(part.value)
    return str(part)


class OAuth2Error(Exception):
    """Base exception for all strategy errors."""

    pass


class ConfigurationError(OAuth2Error):
    """Raised when strategy configuration is missing or invalid."""

    pass


class CallbackError(OAuth2Error):
    """Error reported on the authorization callback.

    Carries the provider's ``error``, its reason (``error_reason``, or
    ``error_description`` when no reason was sent) and ``error_uri``.
    Also used as the detail of a CSRF failure.
    """

    def __init__(
        self,
        error: Any = None,
        error_reason: Any = None,
        error_uri: str | None = None,
    ):
        self.error = error
        self.error_reason = error_reason
        self.error_uri = error_uri
        super().__init__(self.message)

    @property
    def message(self) -> str:
        parts = (self.error, self.error_reason, self.error_uri)
        return " ".join(_render(part) for part in parts if part)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(error={self.error!r}, "
            f"error_reason={self.error_reason!r}, error_uri={self.error_uri!r})"
        )


class TokenExchangeError(OAuth2Error):
    """Raised when the authorization code to token exchange fails.

    ``reason`` classifies the failure (``invalid_credentials``, ``timeout``,
    ``failed_to_connect``, ``http_error`` or ``invalid_response``) so the
    host can report it without inspecting the chained cause.
    """

    def __init__(self, reason: FailureCode | str, message: str):
        super().__init__(message)
        self.reason = FailureCode(reason)
        self.message = message
