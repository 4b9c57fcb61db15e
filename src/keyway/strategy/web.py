"""Starlette routes for mounting a strategy in a host application.

The session is taken from ``request.session``, so the host must install a
session middleware. Success and failure are handed to host callbacks,
which are responsible for completing (or rejecting) the login.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.routing import Route

from keyway.strategy.models.callback import (
    CallbackFailure,
    CallbackSuccess,
    FromRequest,
)
from keyway.strategy.models.errors import TokenExchangeError
from keyway.strategy.oauth2 import OAuth2Strategy

logger = logging.getLogger(__name__)

SuccessHandler = Callable[[Request, CallbackSuccess], Awaitable[Response]]
FailureHandler = Callable[[Request, CallbackFailure], Awaitable[Response]]


def failure_redirect(prefix: str, strategy_name: str) -> FailureHandler:
    """Default failure handler: redirect to ``{prefix}/failure``."""

    async def handle_failure(request: Request, failure: CallbackFailure) -> Response:
        query = urlencode({"message": failure.code, "strategy": strategy_name})
        return RedirectResponse(f"{prefix}/failure?{query}", status_code=302)

    return handle_failure


def oauth_routes(
    strategy: OAuth2Strategy,
    on_success: SuccessHandler,
    on_failure: FailureHandler | None = None,
    prefix: str = "/auth",
) -> list[Route]:
    """Build the request and callback routes for ``strategy``.

    Args:
        strategy: Configured strategy to expose
        on_success: Called with the access token after a successful exchange
        on_failure: Called with the failure; defaults to a redirect to
            ``{prefix}/failure?message=<code>&strategy=<name>``
        prefix: Path prefix for the routes

    Returns:
        ``GET {prefix}/{name}`` and ``GET|POST {prefix}/{name}/callback``
    """
    prefix = prefix.rstrip("/")
    handle_failure = on_failure or failure_redirect(prefix, strategy.name)

    async def request_phase(request: Request) -> Response:
        return strategy.request_phase(request.session)

    async def callback_phase(request: Request) -> Response:
        params: dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            # response_mode=form_post sends the callback parameters as a form
            params.update(await request.form())

        try:
            result = await strategy.callback_phase(request.session, FromRequest(params))
        except TokenExchangeError as e:
            logger.error(f"{strategy.name} token exchange failed: {e.message}")
            result = CallbackFailure(code=e.reason.value, detail=e)

        if isinstance(result, CallbackSuccess):
            return await on_success(request, result)
        return await handle_failure(request, result)

    return [
        Route(f"{prefix}/{strategy.name}", request_phase, methods=["GET"]),
        Route(
            f"{prefix}/{strategy.name}/callback",
            callback_phase,
            methods=["GET", "POST"],
        ),
    ]
