# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from starlette.requests import Request

from coreason_homepage.config import HomepageSettings
from coreason_homepage.exceptions import ProviderAuthError, UnknownProviderError
from coreason_homepage.models import ProviderName
from coreason_homepage.strategies import (
    GITHUB_EMAILS_URL,
    GITHUB_TOKEN_URL,
    GITHUB_USER_URL,
    StrategyRegistry,
    build_registry,
    callback_url_for,
)


class MockResponse:
    def __init__(self, status_code: int, json_data: Any | None = None, content: bytes | None = None):
        self.status_code = status_code
        self.headers: dict[str, str] = {}
        body = json.dumps(json_data).encode("utf-8") if json_data is not None else (content or b"")
        self.headers["Content-Length"] = str(len(body))
        self._body = body

    async def aiter_bytes(self) -> AsyncGenerator[bytes, None]:
        yield self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("Error", request=None, response=self)  # type: ignore


def setup_stream_mock(mock_client: AsyncMock, responses: list[Any]) -> list[tuple[str, str, dict[str, Any]]]:
    response_iter = iter(responses)
    calls: list[tuple[str, str, dict[str, Any]]] = []

    @asynccontextmanager
    async def mock_stream(method: str, url: str, **kwargs: Any) -> AsyncGenerator[MockResponse, None]:
        calls.append((method, url, kwargs))
        item = next(response_iter)
        if isinstance(item, Exception):
            raise item
        yield item

    mock_client.stream.side_effect = mock_stream
    return calls


def make_request(path: str = "/auth/github", headers: dict[str, str] | None = None, scheme: str = "http") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": scheme,
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "server": ("internal", 8080),
    }
    return Request(scope)


CALLBACK = "https://api.example.com/auth/github/callback"
GITHUB_USER = {
    "id": 583231,
    "login": "octocat",
    "name": "The Octocat",
    "email": "public@github.com",
    "avatar_url": "https://avatars.githubusercontent.com/u/583231",
}


@pytest.fixture
def mock_client() -> AsyncMock:
    return AsyncMock(spec=httpx.AsyncClient)


@pytest.fixture
def registry(settings: HomepageSettings, mock_client: AsyncMock) -> StrategyRegistry:
    return build_registry(settings, mock_client)


def test_registry_has_all_providers(registry: StrategyRegistry) -> None:
    assert set(registry.names()) == set(ProviderName)


@pytest.mark.parametrize("name", ["myspace", "", "GITHUB", "me"])
def test_registry_unknown_provider(registry: StrategyRegistry, name: str) -> None:
    with pytest.raises(UnknownProviderError):
        registry.get(name)


def test_callback_url_prefers_forwarded_proto() -> None:
    request = make_request(headers={"host": "api.example.com", "x-forwarded-proto": "https, http"})
    assert callback_url_for(request, ProviderName.GITHUB) == CALLBACK


def test_callback_url_falls_back_to_request_scheme() -> None:
    request = make_request(headers={"host": "localhost:3000"})
    assert callback_url_for(request, ProviderName.GOOGLE) == "http://localhost:3000/auth/google/callback"


@pytest.mark.parametrize(
    ("provider", "endpoint", "scope", "extra"),
    [
        (ProviderName.GITHUB, "https://github.com/login/oauth/authorize", "user:email", {}),
        (ProviderName.GOOGLE, "https://accounts.google.com/o/oauth2/v2/auth", "openid email profile", {}),
        (
            ProviderName.MICROSOFT,
            "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
            "openid profile email User.Read",
            {},
        ),
        (ProviderName.APPLE, "https://tenant.us.auth0.com/authorize", "openid profile email", {"connection": "apple"}),
    ],
)
def test_authorize_url(
    registry: StrategyRegistry, provider: ProviderName, endpoint: str, scope: str, extra: dict[str, str]
) -> None:
    callback = f"https://api.example.com/auth/{provider}/callback"
    url = registry.get(provider).authorize_url(callback)

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == endpoint
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    assert query["response_type"] == "code"
    assert query["redirect_uri"] == callback
    assert query["scope"] == scope
    assert query["client_id"]
    for key, value in extra.items():
        assert query[key] == value


@pytest.mark.asyncio
async def test_github_exchange(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    calls = setup_stream_mock(
        mock_client,
        [
            MockResponse(200, {"access_token": "gho_token", "token_type": "bearer"}),
            MockResponse(200, GITHUB_USER),
            MockResponse(
                200,
                [
                    {"email": "secondary@example.com", "primary": False, "verified": True},
                    {"email": "primary@example.com", "primary": True, "verified": True},
                ],
            ),
        ],
    )

    identity = await registry.get("github").exchange_callback("the-code", CALLBACK)

    assert identity.id == "github|583231"
    assert identity.email == "primary@example.com"
    assert identity.name == "The Octocat"
    assert identity.picture == "https://avatars.githubusercontent.com/u/583231"

    method, url, kwargs = calls[0]
    assert (method, url) == ("POST", GITHUB_TOKEN_URL)
    assert kwargs["data"]["code"] == "the-code"
    assert kwargs["data"]["redirect_uri"] == CALLBACK
    assert kwargs["data"]["client_secret"] == "gh-secret"
    assert [c[1] for c in calls[1:]] == [GITHUB_USER_URL, GITHUB_EMAILS_URL]
    assert calls[1][2]["headers"]["Authorization"] == "Bearer gho_token"


@pytest.mark.asyncio
async def test_github_email_lookup_failure_uses_public_email(
    registry: StrategyRegistry, mock_client: AsyncMock
) -> None:
    setup_stream_mock(
        mock_client,
        [MockResponse(200, {"access_token": "gho_token"}), MockResponse(200, GITHUB_USER), MockResponse(403, {})],
    )

    identity = await registry.get("github").exchange_callback("code", CALLBACK)

    assert identity.email == "public@github.com"


@pytest.mark.asyncio
async def test_google_exchange(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(
        mock_client,
        [
            MockResponse(200, {"access_token": "ya29.token", "id_token": "x.y.z"}),
            MockResponse(
                200,
                {
                    "sub": "1098765",
                    "name": "Ada Lovelace",
                    "email": "ada@gmail.com",
                    "email_verified": True,
                    "picture": "https://lh3.googleusercontent.com/a/ada",
                },
            ),
        ],
    )

    identity = await registry.get("google").exchange_callback("code", CALLBACK)

    assert identity.id == "google-oauth2|1098765"
    assert identity.email == "ada@gmail.com"
    assert identity.picture == "https://lh3.googleusercontent.com/a/ada"


@pytest.mark.asyncio
async def test_microsoft_exchange_uses_principal_name(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(
        mock_client,
        [
            MockResponse(200, {"access_token": "EwB.token"}),
            MockResponse(
                200, {"id": "abc-123", "displayName": "Grace Hopper", "userPrincipalName": "grace@outlook.com"}
            ),
        ],
    )

    identity = await registry.get("microsoft").exchange_callback("code", CALLBACK)

    assert identity.id == "windowslive|abc-123"
    assert identity.email == "grace@outlook.com"
    assert identity.picture == ""


@pytest.mark.asyncio
async def test_apple_exchange_through_broker(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    calls = setup_stream_mock(
        mock_client,
        [
            MockResponse(200, {"access_token": "broker-token"}),
            MockResponse(
                200, {"sub": "apple|001234.abcdef", "nickname": "tim", "email": "tim@privaterelay.appleid.com"}
            ),
        ],
    )

    identity = await registry.get("apple").exchange_callback("code", CALLBACK)

    assert identity.id == "apple|001234.abcdef"
    assert identity.name == "tim"
    assert identity.email == "tim@privaterelay.appleid.com"
    assert calls[0][1] == "https://tenant.us.auth0.com/oauth/token"
    assert calls[1][1] == "https://tenant.us.auth0.com/userinfo"


@pytest.mark.asyncio
async def test_denied_consent(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    with pytest.raises(ProviderAuthError, match="access_denied"):
        await registry.get("github").exchange_callback(None, CALLBACK, error="access_denied")
    mock_client.stream.assert_not_called()


@pytest.mark.asyncio
async def test_missing_code(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    with pytest.raises(ProviderAuthError, match="missing the authorization code"):
        await registry.get("google").exchange_callback(None, CALLBACK)
    mock_client.stream.assert_not_called()


@pytest.mark.asyncio
async def test_token_endpoint_error_field(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    # GitHub reports bad codes with a 200 and an error field
    setup_stream_mock(mock_client, [MockResponse(200, {"error": "bad_verification_code"})])
    with pytest.raises(ProviderAuthError, match="bad_verification_code"):
        await registry.get("github").exchange_callback("stale", CALLBACK)


@pytest.mark.asyncio
async def test_token_endpoint_http_failure(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(mock_client, [MockResponse(401, {"error": "invalid_client"})])
    with pytest.raises(ProviderAuthError, match="Handshake with google failed"):
        await registry.get("google").exchange_callback("code", CALLBACK)


@pytest.mark.asyncio
async def test_token_response_without_access_token(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(mock_client, [MockResponse(200, {"token_type": "bearer"})])
    with pytest.raises(ProviderAuthError, match="Invalid token response"):
        await registry.get("microsoft").exchange_callback("code", CALLBACK)


@pytest.mark.asyncio
async def test_transport_failure(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(mock_client, [httpx.ConnectTimeout("timed out")])
    with pytest.raises(ProviderAuthError):
        await registry.get("github").exchange_callback("code", CALLBACK)


@pytest.mark.asyncio
async def test_profile_without_subject_rejected(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(
        mock_client,
        [MockResponse(200, {"access_token": "t"}), MockResponse(200, {"name": "Nobody", "email": "n@example.com"})],
    )
    with pytest.raises(ProviderAuthError, match="no user identifier"):
        await registry.get("google").exchange_callback("code", CALLBACK)


@pytest.mark.asyncio
async def test_malformed_profile_rejected(registry: StrategyRegistry, mock_client: AsyncMock) -> None:
    setup_stream_mock(mock_client, [MockResponse(200, {"access_token": "t"}), MockResponse(200, ["not", "a", "dict"])])
    with pytest.raises(ProviderAuthError, match="malformed"):
        await registry.get("microsoft").exchange_callback("code", CALLBACK)
