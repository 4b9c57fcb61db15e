"""Tests for the OAuth2 client adapter.

High-impact tests covering the facade over the authlib client:
- Client construction from configured client options
- Authorize URL generation
- Code for token exchange, header merging and failure classification
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from authlib.integrations.base_client import OAuthError

from keyway.strategy.models.config import StrategyConfig
from keyway.strategy.models.errors import FailureCode, TokenExchangeError
from keyway.strategy.models.tokens import AccessToken
from keyway.strategy.services.client import OAuth2ClientAdapter


class TestClientConstruction:
    """Test client options and connection options."""

    def test_initialized_with_string_keyed_client_options(self):
        adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {"client_options": {"authorize_url": "https://example.com"}}
            )
        )

        assert adapter.config.client_options.authorize_url == "https://example.com"
        assert adapter.config.client_options.authorize_endpoint == "https://example.com"

    def test_sets_ssl_options_as_connection_options(self):
        adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options({"client_options": {"ssl": {"ca_path": "foo"}}})
        )

        assert adapter.connection_options()["ssl"] == {"ca_path": "foo"}

    def test_disabled_verification_reaches_transport(self):
        adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {"client_options": {"ssl": {"verify": False}, "timeout": 5}}
            )
        )

        options = adapter._transport_options()

        assert options["verify"] is False
        assert options["timeout"] == 5

    def test_ca_path_builds_ssl_context(self, tmp_path):
        adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {"client_options": {"ssl": {"ca_path": str(tmp_path)}}}
            )
        )

        verify = adapter._transport_options()["verify"]

        assert verify is not True and verify is not False

    async def test_client_is_cached(self):
        adapter = OAuth2ClientAdapter(StrategyConfig(client_id="abc"))

        assert adapter.client is adapter.client
        assert adapter.client.client_id == "abc"

        await adapter.aclose()


class TestAuthorizeUrl:
    """Test provider authorize URL construction."""

    def setup_method(self):
        # Arrange
        self.adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {
                    "client_id": "client-123",
                    "client_secret": "secret",
                    "redirect_uri": "https://myapp.com/auth/oauth2/callback",
                    "client_options": {
                        "site": "https://provider.example.com",
                        "authorize_url": "/oauth/authorize",
                    },
                }
            )
        )

    async def test_authorize_url_includes_params(self):
        url = self.adapter.authorize_url(
            {"state": "state-abc", "scope": "read write"}, prompt="consent"
        )

        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert parsed.netloc == "provider.example.com"
        assert parsed.path == "/oauth/authorize"
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["client-123"]
        assert query["redirect_uri"] == ["https://myapp.com/auth/oauth2/callback"]
        assert query["state"] == ["state-abc"]
        assert query["scope"] == ["read write"]
        assert query["prompt"] == ["consent"]

        await self.adapter.aclose()

    async def test_url_options_cannot_replace_state(self):
        url = self.adapter.authorize_url({"state": "issued"}, state="other")

        assert parse_qs(urlparse(url).query)["state"] == ["issued"]

        await self.adapter.aclose()


class TestBuildAccessToken:
    """Test authorization code to access token exchange."""

    def setup_method(self):
        # Arrange
        self.adapter = OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {
                    "client_id": "client-123",
                    "client_secret": "secret",
                    "client_options": {
                        "token_url": "https://provider.example.com/oauth/token",
                        "headers": {"User-Agent": "keyway", "Accept": "text/plain"},
                    },
                }
            )
        )
        self.adapter.client = AsyncMock()

    async def test_successful_exchange(self):
        # Arrange
        self.adapter.client.fetch_token.return_value = {
            "access_token": "access-token-xyz",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "refresh-token-abc",
            "scope": "read",
            "id_token": "provider-specific",
        }

        # Act
        token = await self.adapter.build_access_token("4/def", {"audience": "api"})

        # Assert
        assert isinstance(token, AccessToken)
        assert token.access_token == "access-token-xyz"
        assert token.refresh_token == "refresh-token-abc"
        assert token.params["id_token"] == "provider-specific"
        assert not token.is_expired()

        self.adapter.client.fetch_token.assert_awaited_once()
        call_args = self.adapter.client.fetch_token.call_args
        assert call_args[0][0] == "https://provider.example.com/oauth/token"
        assert call_args[1]["code"] == "4/def"
        assert call_args[1]["audience"] == "api"
        assert call_args[1]["method"] == "POST"

    async def test_headers_merge_defaults_config_and_call(self):
        self.adapter.client.fetch_token.return_value = {"access_token": "t"}

        await self.adapter.build_access_token(
            "4/def",
            {},
            headers={"User-Agent": "custom", "content-type": "application/json"},
        )

        headers = self.adapter.client.fetch_token.call_args[1]["headers"]
        assert headers == {
            "Accept": "text/plain",
            "User-Agent": "custom",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    async def test_token_params_cannot_replace_code(self):
        self.adapter.client.fetch_token.return_value = {"access_token": "t"}

        await self.adapter.build_access_token("4/def", {"code": "other"})

        assert self.adapter.client.fetch_token.call_args[1]["code"] == "4/def"

    @pytest.mark.parametrize(
        ("raised", "reason"),
        [
            (
                OAuthError(error="invalid_grant", description="bad code"),
                FailureCode.INVALID_CREDENTIALS,
            ),
            (httpx.ReadTimeout("timed out"), FailureCode.TIMEOUT),
            (httpx.ConnectError("refused"), FailureCode.FAILED_TO_CONNECT),
            (httpx.DecodingError("garbled"), FailureCode.HTTP_ERROR),
            (ValueError("Expecting value"), FailureCode.INVALID_RESPONSE),
        ],
    )
    async def test_transport_failures_are_classified(self, raised, reason):
        self.adapter.client.fetch_token.side_effect = raised

        with pytest.raises(TokenExchangeError) as exc_info:
            await self.adapter.build_access_token("4/def", {})

        assert exc_info.value.reason is reason
        assert exc_info.value.__cause__ is raised

    async def test_missing_access_token_is_invalid_response(self):
        self.adapter.client.fetch_token.return_value = {"token_type": "Bearer"}

        with pytest.raises(TokenExchangeError) as exc_info:
            await self.adapter.build_access_token("4/def", {})

        assert exc_info.value.reason is FailureCode.INVALID_RESPONSE
        assert "access_token" in exc_info.value.message

    async def test_non_object_response_is_invalid_response(self):
        self.adapter.client.fetch_token.return_value = None

        with pytest.raises(TokenExchangeError) as exc_info:
            await self.adapter.build_access_token("4/def", {})

        assert exc_info.value.reason is FailureCode.INVALID_RESPONSE


class TestTokenEndpointExchange:
    """Test the exchange against the token endpoint over a mock transport."""

    def setup_method(self):
        # Arrange
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(
            200,
            json={
                "access_token": "access-token-xyz",
                "token_type": "Bearer",
                "expires_in": 3600,
            },
        )

    def make_adapter(self, **client_options) -> OAuth2ClientAdapter:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.response

        return OAuth2ClientAdapter(
            StrategyConfig.from_options(
                {
                    "client_id": "client-123",
                    "client_secret": "secret",
                    "redirect_uri": "https://app.example.com/auth/callback",
                    "client_options": {
                        "token_url": "https://provider.example.com/oauth/token",
                        "headers": {"User-Agent": "keyway"},
                        **client_options,
                    },
                }
            ),
            transport=httpx.MockTransport(handler),
        )

    def sent_form(self) -> dict[str, list[str]]:
        assert len(self.requests) == 1
        return parse_qs(self.requests[0].content.decode())

    async def test_sends_authorization_code_grant(self):
        # Arrange
        adapter = self.make_adapter()

        # Act
        token = await adapter.build_access_token("4/def", {"audience": "api"})

        # Assert
        assert token.access_token == "access-token-xyz"
        request = self.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://provider.example.com/oauth/token"
        assert self.sent_form() == {
            "grant_type": ["authorization_code"],
            "code": ["4/def"],
            "redirect_uri": ["https://app.example.com/auth/callback"],
            "audience": ["api"],
            "client_id": ["client-123"],
            "client_secret": ["secret"],
        }

        await adapter.aclose()

    async def test_sends_merged_headers(self):
        adapter = self.make_adapter()

        await adapter.build_access_token("4/def", {}, headers={"X-Request-Id": "42"})

        headers = self.requests[0].headers
        assert headers["accept"] == "application/json"
        assert headers["user-agent"] == "keyway"
        assert headers["x-request-id"] == "42"
        assert headers["content-type"] == "application/x-www-form-urlencoded"

        await adapter.aclose()

    async def test_basic_auth_scheme_keeps_secret_out_of_body(self):
        adapter = self.make_adapter(auth_scheme="basic_auth")

        await adapter.build_access_token("4/def", {})

        assert self.requests[0].headers["authorization"].startswith("Basic ")
        form = self.sent_form()
        assert "client_secret" not in form
        assert form["grant_type"] == ["authorization_code"]

        await adapter.aclose()

    async def test_reserved_token_params_are_not_sent(self):
        adapter = self.make_adapter()

        token = await adapter.build_access_token(
            "4/def",
            {
                "grant_type": "client_credentials",
                "state": "abc",
                "timeout": "1",
                "verify": "false",
                "follow_redirects": "true",
                "audience": "api",
            },
        )

        assert token.access_token == "access-token-xyz"
        form = self.sent_form()
        assert form["grant_type"] == ["authorization_code"]
        assert form["redirect_uri"] == ["https://app.example.com/auth/callback"]
        assert form["audience"] == ["api"]
        for name in ("state", "timeout", "verify", "follow_redirects"):
            assert name not in form

        await adapter.aclose()

    @pytest.mark.parametrize(
        ("response", "reason"),
        [
            (
                httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "bad code"},
                ),
                FailureCode.INVALID_CREDENTIALS,
            ),
            (
                httpx.Response(503, text="Service Unavailable"),
                FailureCode.HTTP_ERROR,
            ),
            (
                httpx.Response(502, json={"access_token": "from-a-gateway"}),
                FailureCode.HTTP_ERROR,
            ),
            (
                httpx.Response(200, text="<html>not json</html>"),
                FailureCode.INVALID_RESPONSE,
            ),
            (
                httpx.Response(200, json={"token_type": "Bearer"}),
                FailureCode.INVALID_RESPONSE,
            ),
        ],
    )
    async def test_endpoint_responses_are_classified(self, response, reason):
        self.response = response
        adapter = self.make_adapter()

        with pytest.raises(TokenExchangeError) as exc_info:
            await adapter.build_access_token("4/def", {})

        assert exc_info.value.reason is reason
        assert len(self.requests) == 1

        await adapter.aclose()

    @pytest.mark.parametrize(
        ("raised", "reason"),
        [
            (httpx.ReadTimeout("timed out"), FailureCode.TIMEOUT),
            (httpx.ConnectError("refused"), FailureCode.FAILED_TO_CONNECT),
        ],
    )
    async def test_transport_errors_are_classified(self, raised, reason):
        def handler(request: httpx.Request) -> httpx.Response:
            raise raised

        adapter = self.make_adapter()
        adapter.transport = httpx.MockTransport(handler)

        with pytest.raises(TokenExchangeError) as exc_info:
            await adapter.build_access_token("4/def", {})

        assert exc_info.value.reason is reason

        await adapter.aclose()


class TestAccessToken:
    def test_credentials_summary(self):
        token = AccessToken.from_response(
            {"access_token": "t", "refresh_token": "r", "expires_at": 2000000000}
        )

        assert token.credentials() == {
            "token": "t",
            "refresh_token": "r",
            "expires_at": 2000000000,
            "expires": True,
        }

    def test_non_expiring_token(self):
        token = AccessToken.from_response({"access_token": "t"})

        assert token.credentials() == {"token": "t", "expires": False}
        assert not token.is_expired()

    def test_expired_token(self):
        token = AccessToken.from_response({"access_token": "t", "expires_at": 1})

        assert token.is_expired()
