"""Authorization callback input and result models.

The callback phase accepts a single ``CallbackInput``: either the inbound
request parameters (``FromRequest``) or explicit arguments
(``ExplicitCallback``). It is resolved once into ``CallbackData`` and the
phase ends in a ``CallbackResult``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from keyway.strategy.models.errors import CallbackError, FailureCode
from keyway.strategy.models.tokens import AccessToken


@dataclass(frozen=True)
class CallbackData:
    """Parameters returned by the provider on the redirect back."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_reason: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> CallbackData:
        """Pick the callback fields out of a query/body parameter mapping.

        Empty values are treated as absent; anything else in ``params``
        is ignored.
        """

        def get_single_param(key: str) -> str | None:
            value = params.get(key)
            if isinstance(value, (list, tuple)):
                value = value[0] if value else None
            if value is None or value == "":
                return None
            return str(value)

        return cls(**{f.name: get_single_param(f.name) for f in fields(cls)})

    def has_error(self) -> bool:
        return bool(self.error)


@dataclass(frozen=True)
class FromRequest:
    """Callback input taken from the inbound request's parameters."""

    params: Mapping[str, Any] = field(default_factory=dict)

    def resolve(self) -> CallbackData:
        return CallbackData.from_params(self.params)


@dataclass(frozen=True)
class ExplicitCallback:
    """Callback input passed explicitly by the host.

    Fields left as ``None`` fall back to ``request_params`` when given.
    """

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_reason: str | None = None
    error_description: str | None = None
    error_uri: str | None = None
    request_params: Mapping[str, Any] | None = None

    def resolve(self) -> CallbackData:
        base = CallbackData.from_params(self.request_params or {})
        explicit = CallbackData.from_params(
            {f.name: getattr(self, f.name) for f in fields(CallbackData)}
        )
        merged = {
            f.name: getattr(explicit, f.name) or getattr(base, f.name)
            for f in fields(CallbackData)
        }
        return CallbackData(**merged)


CallbackInput = FromRequest | ExplicitCallback


@dataclass(frozen=True)
class CallbackSuccess:
    """The callback validated and the code was exchanged."""

    access_token: AccessToken

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class CallbackFailure:
    """The callback was rejected.

    ``code`` is the provider's reason or one of ``FailureCode``; ``detail``
    carries the structured error when there is one.
    """

    code: str
    detail: Exception | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        if isinstance(self.detail, CallbackError):
            return self.detail.message
        if self.detail is not None:
            return str(self.detail)
        return self.code

    @classmethod
    def csrf_detected(cls) -> CallbackFailure:
        return cls(
            code=FailureCode.CSRF_DETECTED.value,
            detail=CallbackError(FailureCode.CSRF_DETECTED, "CSRF detected"),
        )


CallbackResult = CallbackSuccess | CallbackFailure
