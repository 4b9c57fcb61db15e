"""OAuth2 client adapter.

Thin facade over authlib's httpx-based ``AsyncOAuth2Client``: builds the
provider authorize URL and exchanges an authorization code for an access
token. Transport failures are classified into ``TokenExchangeError`` and
raised; nothing is retried here.
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import Mapping
from functools import cached_property
from typing import Any

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from pydantic import ValidationError

from keyway.strategy.models.config import AUTH_SCHEMES, SSLOptions, StrategyConfig
from keyway.strategy.models.errors import FailureCode, TokenExchangeError
from keyway.strategy.models.tokens import AccessToken

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
DEFAULT_HEADERS = {"Accept": "application/json"}

# Names fetch_token binds itself or hands to httpx instead of the request body
RESERVED_TOKEN_PARAMS = frozenset(
    {
        "code",
        "url",
        "method",
        "headers",
        "body",
        "auth",
        "grant_type",
        "state",
        "authorization_response",
        *AsyncOAuth2Client.SESSION_REQUEST_PARAMS,
    }
)


class OAuth2ClientAdapter:
    """Builds and caches the configured OAuth2 client for a strategy."""

    def __init__(
        self,
        config: StrategyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.transport = transport

    @cached_property
    def client(self) -> AsyncOAuth2Client:
        """The configured authlib client, created on first use."""
        options = self.config.client_options
        logger.debug(
            f"Creating OAuth2 client {self.config.client_id} for "
            f"{options.token_endpoint}"
        )
        client = AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret_value,
            token_endpoint_auth_method=AUTH_SCHEMES[options.auth_scheme],
            redirect_uri=self.config.redirect_uri,
            **self._transport_options(),
        )
        client.register_compliance_hook(
            "access_token_response", raise_for_server_error
        )
        return client

    def connection_options(self) -> dict[str, Any]:
        """Connection options as configured, TLS settings under ``ssl``."""
        options = self.config.client_options
        connection: dict[str, Any] = {"timeout": options.timeout}
        if options.ssl is not None:
            connection["ssl"] = options.ssl.model_dump(exclude_unset=True)
        return connection

    def authorize_url(self, params: Mapping[str, str], **url_options: Any) -> str:
        """Build the provider authorize URL for the given parameters.

        Args:
            params: Authorize params; must include ``state``
            **url_options: Extra query parameters for this URL only
        """
        state = params["state"]
        query = {
            key: value
            for key, value in {**params, **url_options}.items()
            if key != "state"
        }
        url, _ = self.client.create_authorization_url(
            self.config.client_options.authorize_endpoint, state=state, **query
        )
        return url

    async def build_access_token(
        self,
        code: str,
        token_params: Mapping[str, str],
        headers: Mapping[str, str] | None = None,
    ) -> AccessToken:
        """Exchange an authorization code for an access token.

        Args:
            code: Authorization code from the callback
            token_params: Additional token request parameters. Names the
                client binds itself, such as ``grant_type`` or ``timeout``,
                are ignored.
            headers: Per-call headers, merged over the configured defaults

        Returns:
            AccessToken: Parsed token endpoint response

        Raises:
            TokenExchangeError: If the exchange fails for any reason
        """
        options = self.config.client_options
        logger.debug(f"Exchanging authorization code at {options.token_endpoint}")

        body_params = {}
        for key, value in token_params.items():
            if key in RESERVED_TOKEN_PARAMS:
                logger.warning(f"Ignoring reserved token parameter: {key}")
                continue
            body_params[key] = value

        try:
            response = await self.client.fetch_token(
                options.token_endpoint,
                method=options.token_method,
                headers=self.request_headers(headers),
                grant_type="authorization_code",
                code=code,
                **body_params,
            )
        except OAuthError as e:
            logger.warning(f"Token endpoint rejected the code: {e.error}")
            raise TokenExchangeError(
                FailureCode.INVALID_CREDENTIALS,
                f"Token endpoint returned error: {e.error}",
            ) from e
        except httpx.TimeoutException as e:
            raise TokenExchangeError(
                FailureCode.TIMEOUT, f"Token exchange timed out: {e}"
            ) from e
        except httpx.TransportError as e:
            raise TokenExchangeError(
                FailureCode.FAILED_TO_CONNECT,
                f"Failed to connect to token endpoint: {e}",
            ) from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                FailureCode.HTTP_ERROR, f"HTTP error during token exchange: {e}"
            ) from e
        except ValueError as e:
            raise TokenExchangeError(
                FailureCode.INVALID_RESPONSE, f"Invalid token response format: {e}"
            ) from e

        return self._parse_token_response(response)

    def request_headers(
        self, headers: Mapping[str, str] | None = None
    ) -> dict[str, str]:
        """Merge default, configured and per-call headers.

        ``Content-Type`` always stays form encoded since the body is built
        by the client.
        """
        merged = {**DEFAULT_HEADERS, **self.config.client_options.headers}
        merged.update(headers or {})
        for key in [k for k in merged if k.lower() == "content-type"]:
            del merged[key]
        merged["Content-Type"] = FORM_CONTENT_TYPE
        return merged

    def _parse_token_response(self, response: Any) -> AccessToken:
        if not isinstance(response, Mapping):
            raise TokenExchangeError(
                FailureCode.INVALID_RESPONSE, "Token response is not a JSON object"
            )
        if not response.get("access_token"):
            raise TokenExchangeError(
                FailureCode.INVALID_RESPONSE,
                "Token response missing required access_token",
            )
        try:
            token = AccessToken.from_response(response)
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(
                FailureCode.INVALID_RESPONSE, f"Invalid token response format: {e}"
            ) from e

        logger.info("Token exchange successful")
        return token

    def _transport_options(self) -> dict[str, Any]:
        options = self.config.client_options
        transport: dict[str, Any] = {"timeout": options.timeout}
        if options.ssl is not None:
            transport["verify"] = build_verify(options.ssl)
        if self.transport is not None:
            transport["transport"] = self.transport
        return transport

    async def aclose(self) -> None:
        """Close the cached client, if one was created."""
        client = self.__dict__.pop("client", None)
        if client is not None:
            await client.aclose()


def raise_for_server_error(response: httpx.Response) -> httpx.Response:
    """Surface 5xx token responses as ``httpx.HTTPStatusError``."""
    if response.status_code >= 500:
        response.raise_for_status()
    return response


def build_verify(options: SSLOptions) -> ssl.SSLContext | bool:
    """Translate TLS settings into an httpx ``verify`` value."""
    custom = options.ca_file or options.ca_path or options.client_cert
    if not custom:
        return options.verify

    context = ssl.create_default_context(
        cafile=options.ca_file, capath=options.ca_path
    )
    if not options.verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if options.client_cert:
        context.load_cert_chain(options.client_cert, options.client_key)
    return context
