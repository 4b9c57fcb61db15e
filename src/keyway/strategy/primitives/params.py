"""Authorize and token request parameter assembly.

Sources are merged in order, later ones winning:
1. top-level options named in ``authorize_options`` / ``token_options``
2. static ``authorize_params`` / ``token_params``
3. per-call overrides; an override set to ``None`` removes the key
4. (authorize only) a freshly generated state token
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from keyway.strategy.models.config import StrategyConfig
from keyway.strategy.primitives.state import generate_state
from keyway.strategy.services.session import SessionState


def build_authorize_params(
    config: StrategyConfig,
    session_state: SessionState,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """Build the authorize request parameters and issue a new state token.

    The returned ``state`` is always freshly generated and has already
    been stored in the session when this returns.
    """
    params = _merge(
        config, config.authorize_options, config.authorize_params, overrides
    )

    state = generate_state()
    session_state.issue(state)
    params["state"] = state
    return params


def build_token_params(
    config: StrategyConfig,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """Build the token request parameters. No state is injected."""
    return _merge(config, config.token_options, config.token_params, overrides)


def _merge(
    config: StrategyConfig,
    option_names: Iterable[str],
    static_params: Mapping[str, Any],
    overrides: Mapping[str, Any] | None,
) -> dict[str, str]:
    params: dict[str, str] = {}

    for name in option_names:
        value = config.option_value(name)
        if value is not None:
            params[name] = _stringify(value)

    for key, value in static_params.items():
        if value is not None:
            params[str(key)] = _stringify(value)

    for key, value in (overrides or {}).items():
        if value is None:
            params.pop(str(key), None)
        else:
            params[str(key)] = _stringify(value)

    return params


def _stringify(value: Any) -> str:
    # Scope lists are sent space-delimited (RFC 6749 Section 3.3)
    if isinstance(value, (list, tuple, set)):
        return " ".join(str(item) for item in value)
    return str(getattr(value, "value", value))
