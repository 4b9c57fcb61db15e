"""Strategy configuration models.

Configuration is set once when a strategy is constructed and is read-only
thereafter. Option names listed in ``authorize_options`` / ``token_options``
are resolved through an explicit table of well-known fields, falling back
to the free-form ``extra_options`` mapping.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from keyway.strategy.models.errors import ConfigurationError

AUTH_SCHEMES = {
    "request_body": "client_secret_post",
    "basic_auth": "client_secret_basic",
}


class SSLOptions(BaseModel):
    """TLS settings forwarded to the token exchange connection."""

    model_config = ConfigDict(frozen=True)

    verify: bool = True
    ca_file: str | None = None
    ca_path: str | None = None
    client_cert: str | None = None
    client_key: str | None = None


class ClientOptions(BaseModel):
    """Provider endpoints and transport options."""

    model_config = ConfigDict(frozen=True)

    site: str | None = None
    authorize_url: str = "/oauth/authorize"
    token_url: str = "/oauth/token"
    token_method: str = "POST"
    auth_scheme: str = "request_body"
    timeout: float = Field(default=30.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    ssl: SSLOptions | None = None

    @field_validator("token_method")
    @classmethod
    def validate_token_method(cls, v: str) -> str:
        method = v.upper()
        if method not in {"POST", "GET"}:
            raise ValueError(f"Unsupported token_method: {v}")
        return method

    @field_validator("auth_scheme")
    @classmethod
    def validate_auth_scheme(cls, v: str) -> str:
        if v not in AUTH_SCHEMES:
            raise ValueError(
                f"Unsupported auth_scheme: {v}. Supported: {sorted(AUTH_SCHEMES)}"
            )
        return v

    @property
    def authorize_endpoint(self) -> str:
        return self._resolve(self.authorize_url)

    @property
    def token_endpoint(self) -> str:
        return self._resolve(self.token_url)

    def _resolve(self, url: str) -> str:
        """Resolve a possibly relative endpoint against ``site``."""
        if urlparse(url).scheme or not self.site:
            return url
        return urljoin(self.site, url)


def _scope_value(config: StrategyConfig) -> Any:
    return config.scope


def _redirect_uri_value(config: StrategyConfig) -> Any:
    return config.redirect_uri


def _response_type_value(config: StrategyConfig) -> Any:
    return config.response_type


_WELL_KNOWN_OPTIONS: dict[str, Callable[[StrategyConfig], Any]] = {
    "scope": _scope_value,
    "redirect_uri": _redirect_uri_value,
    "response_type": _response_type_value,
}


class StrategyConfig(BaseModel):
    """Immutable per-strategy settings."""

    model_config = ConfigDict(frozen=True)

    name: str = "oauth2"
    client_id: str | None = None
    client_secret: SecretStr | None = None
    client_options: ClientOptions = Field(default_factory=ClientOptions)

    authorize_params: dict[str, Any] = Field(default_factory=dict)
    authorize_options: list[str] = Field(default_factory=lambda: ["scope"])
    token_params: dict[str, Any] = Field(default_factory=dict)
    token_options: list[str] = Field(default_factory=list)

    # Well-known top-level options that can be lifted into request params
    scope: str | list[str] | None = None
    redirect_uri: str | None = None
    response_type: str | None = None

    session_namespace: str = "keyway"

    # Any other top-level option, addressable from *_options by name
    extra_options: dict[str, Any] = Field(default_factory=dict)

    @property
    def state_session_key(self) -> str:
        return f"{self.session_namespace}.state"

    @property
    def client_secret_value(self) -> str | None:
        if self.client_secret is None:
            return None
        return self.client_secret.get_secret_value()

    def option_value(self, name: str) -> Any:
        """Look up a top-level option by name, or ``None`` when unset."""
        getter = _WELL_KNOWN_OPTIONS.get(name)
        if getter is not None:
            return getter(self)
        return self.extra_options.get(name)

    @classmethod
    def from_options(cls, options: Mapping[Any, Any]) -> StrategyConfig:
        """Build a config from a loose options mapping.

        Keys may be strings or enum members. Top-level keys that are not
        config fields are kept in ``extra_options``; ``client_options`` keys
        (including the ``ssl`` sub-map) are normalized to strings.
        """
        fields = set(cls.model_fields) - {"extra_options"}
        data: dict[str, Any] = {}
        extra: dict[str, Any] = {}

        for key, value in options.items():
            name = _option_name(key)
            if name == "client_options":
                data[name] = _normalize_keys(value)
            elif name in ("authorize_options", "token_options"):
                data[name] = [_option_name(item) for item in value]
            elif name in ("authorize_params", "token_params"):
                data[name] = {
                    _option_name(k): _param_value(v) for k, v in value.items()
                }
            elif name in fields:
                data[name] = value
            elif name == "extra_options":
                extra.update(value)
            else:
                extra[name] = value

        try:
            return cls(**data, extra_options=extra)
        except ValueError as e:
            raise ConfigurationError(f"Invalid strategy options: {e}") from e

    @classmethod
    def from_env(cls, prefix: str = "KEYWAY_") -> StrategyConfig:
        """Create config from environment variables."""

        def get_env(key: str, default: Any = None) -> Any:
            return os.environ.get(f"{prefix}{key}", default)

        client_id = get_env("CLIENT_ID")
        if not client_id:
            raise ConfigurationError(
                f"{prefix}CLIENT_ID environment variable is required"
            )

        client_options: dict[str, Any] = {}
        for key in ("SITE", "AUTHORIZE_URL", "TOKEN_URL"):
            value = get_env(key)
            if value:
                client_options[key.lower()] = value

        return cls(
            name=get_env("NAME", "oauth2"),
            client_id=client_id,
            client_secret=get_env("CLIENT_SECRET"),
            scope=get_env("SCOPE"),
            redirect_uri=get_env("REDIRECT_URI"),
            client_options=ClientOptions(**client_options),
        )


def _option_name(key: Any) -> str:
    value = getattr(key, "value", key)
    return str(value)


def _param_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value
    if isinstance(value, Mapping):
        return {_option_name(k): _normalize_keys(v) for k, v in value.items()}
    return value
