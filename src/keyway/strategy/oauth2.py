"""OAuth2 authorization code strategy.

Sequences the two phases of a login attempt for the host web layer:

- request phase: build authorize params (issuing a CSRF state token into
  the session) and redirect the user agent to the provider;
- callback phase: resolve the callback input, validate it, and exchange
  the authorization code for an access token exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from starlette.responses import RedirectResponse

from keyway.strategy.models.callback import (
    CallbackFailure,
    CallbackInput,
    CallbackResult,
    CallbackSuccess,
)
from keyway.strategy.models.config import StrategyConfig
from keyway.strategy.primitives.params import (
    build_authorize_params,
    build_token_params,
)
from keyway.strategy.services.callback import CallbackValidator
from keyway.strategy.services.client import OAuth2ClientAdapter
from keyway.strategy.services.session import Session, SessionState

logger = logging.getLogger(__name__)


class OAuth2Strategy:
    """Authorization code flow for one configured provider.

    The strategy holds no per-user state: the session is passed into each
    phase by the host, and configuration is immutable.
    """

    def __init__(
        self,
        config: StrategyConfig,
        adapter: OAuth2ClientAdapter | None = None,
    ):
        self.config = config
        self.adapter = adapter or OAuth2ClientAdapter(config)
        self._validator = CallbackValidator()

    @property
    def name(self) -> str:
        return self.config.name

    def session_state(self, session: Session) -> SessionState:
        return SessionState(session, self.config.state_session_key)

    def authorize_params(
        self,
        session: Session,
        overrides: Mapping[str, Any] | None = None,
    ) -> dict[str, str]:
        """Authorize request params; stores the fresh state in ``session``."""
        return build_authorize_params(
            self.config, self.session_state(session), overrides
        )

    def token_params(
        self, overrides: Mapping[str, Any] | None = None
    ) -> dict[str, str]:
        return build_token_params(self.config, overrides)

    def authorize_url(
        self,
        session: Session,
        overrides: Mapping[str, Any] | None = None,
        **url_options: Any,
    ) -> str:
        params = self.authorize_params(session, overrides)
        return self.adapter.authorize_url(params, **url_options)

    def request_phase(
        self,
        session: Session,
        overrides: Mapping[str, Any] | None = None,
        **url_options: Any,
    ) -> RedirectResponse:
        """Start the flow by redirecting to the provider's authorize URL."""
        url = self.authorize_url(session, overrides, **url_options)
        logger.debug(f"Redirecting to {self.name} authorization endpoint")
        return RedirectResponse(url, status_code=302)

    async def callback_phase(
        self,
        session: Session,
        callback: CallbackInput,
        token_overrides: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> CallbackResult:
        """Validate the provider callback and exchange the code.

        Args:
            session: Host session holding the issued state
            callback: Request parameters or explicit callback arguments
            token_overrides: Per-call token request params
            headers: Per-call token request headers

        Returns:
            CallbackSuccess with the access token, or CallbackFailure when
            the provider reported an error or the state did not match

        Raises:
            TokenExchangeError: If the token exchange itself fails
        """
        data = callback.resolve()

        failure: CallbackFailure | None = self._validator.validate(
            data, self.session_state(session)
        )
        if failure is not None:
            logger.info(f"{self.name} callback failed: {failure.code}")
            return failure

        access_token = await self.adapter.build_access_token(
            data.code, self.token_params(token_overrides), headers
        )
        logger.info(f"{self.name} callback completed")
        return CallbackSuccess(access_token=access_token)

    async def aclose(self) -> None:
        await self.adapter.aclose()

    async def __aenter__(self) -> OAuth2Strategy:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
