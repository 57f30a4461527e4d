# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""
Identity strategies: one OAuth 2.0 authorization-code handshake per login provider.

All providers share the same two-step contract (authorization redirect, callback exchange).
Provider differences live in `ProviderSettings` and in the profile fetchers, dispatched on
`ProviderName`.
"""

from collections.abc import Awaitable, Callable, Iterable
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError
from starlette.requests import Request

from coreason_homepage.config import HomepageSettings
from coreason_homepage.exceptions import CoreasonHomepageError, ProviderAuthError, UnknownProviderError
from coreason_homepage.models import CanonicalIdentity, ProviderName
from coreason_homepage.models_internal import ProviderTokenResponse
from coreason_homepage.profile_normalizer import NORMALIZERS, RawProfile, parse_profile
from coreason_homepage.transport import safe_json_fetch
from coreason_homepage.utils.logger import logger

tracer = trace.get_tracer(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

MICROSOFT_AUTHORIZE_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
MICROSOFT_PROFILE_URL = "https://graph.microsoft.com/v1.0/me"


class LoginState(StrEnum):
    """Lifecycle of a single login attempt."""

    STARTED = "started"
    PROVIDER_REDIRECT = "provider_redirect"
    CALLBACK_RECEIVED = "callback_received"
    NORMALIZED = "normalized"
    FAILED = "failed"


class ProviderSettings(BaseModel):
    """
    Immutable handshake parameters for one provider.

    The callback URL is deliberately absent: it is derived from each request because the
    service answers on several hostnames.
    """

    model_config = ConfigDict(frozen=True)

    name: ProviderName
    client_id: str
    client_secret: SecretStr
    scopes: tuple[str, ...]
    authorize_endpoint: str
    token_endpoint: str
    profile_endpoint: str
    extra_authorize_params: dict[str, str] = Field(default_factory=dict)


def callback_url_for(request: Request, provider: ProviderName) -> str:
    """
    Builds `{proto}://{host}/auth/{provider}/callback` from the inbound request.

    The forwarded protocol header wins over the connection's own scheme because TLS
    terminates at the ingress.
    """
    forwarded = request.headers.get("x-forwarded-proto", "")
    proto = forwarded.split(",")[0].strip() or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}/auth/{provider}/callback"


ProfileFetcher = Callable[[httpx.AsyncClient, ProviderSettings, dict[str, str]], Awaitable[dict[str, Any]]]


async def _fetch_github_profile(
    client: httpx.AsyncClient, settings: ProviderSettings, headers: dict[str, str]
) -> dict[str, Any]:
    user = await safe_json_fetch(client, settings.profile_endpoint, headers=headers)
    if not isinstance(user, dict):
        raise ProviderAuthError("GitHub returned a malformed user profile")

    emails: list[dict[str, Any]] = []
    try:
        listed = await safe_json_fetch(client, GITHUB_EMAILS_URL, headers=headers)
    except (httpx.HTTPError, CoreasonHomepageError) as e:
        # Profile is still usable without the address list
        logger.warning(f"GitHub email lookup failed: {e}")
        listed = []
    if isinstance(listed, list):
        ordered = sorted((e for e in listed if isinstance(e, dict)), key=lambda e: not e.get("primary"))
        emails = [{"value": e.get("email"), "verified": e.get("verified")} for e in ordered]
    if not emails and user.get("email"):
        emails = [{"value": user["email"]}]

    return {
        "id": user.get("id"),
        "displayName": user.get("name"),
        "username": user.get("login"),
        "emails": emails,
        "photos": [{"value": user["avatar_url"]}] if user.get("avatar_url") else [],
        "_json": user,
    }


async def _fetch_google_profile(
    client: httpx.AsyncClient, settings: ProviderSettings, headers: dict[str, str]
) -> dict[str, Any]:
    info = await safe_json_fetch(client, settings.profile_endpoint, headers=headers)
    if not isinstance(info, dict):
        raise ProviderAuthError("Google returned a malformed userinfo document")
    return {
        "id": info.get("sub"),
        "displayName": info.get("name"),
        "emails": [{"value": info["email"], "verified": info.get("email_verified")}] if info.get("email") else [],
        "photos": [{"value": info["picture"]}] if info.get("picture") else [],
        "_json": info,
    }


async def _fetch_microsoft_profile(
    client: httpx.AsyncClient, settings: ProviderSettings, headers: dict[str, str]
) -> dict[str, Any]:
    me = await safe_json_fetch(client, settings.profile_endpoint, headers=headers)
    if not isinstance(me, dict):
        raise ProviderAuthError("Microsoft Graph returned a malformed profile")
    email = me.get("mail") or me.get("userPrincipalName")
    return {
        "id": me.get("id"),
        "displayName": me.get("displayName"),
        "emails": [{"value": email}] if email else [],
        "_json": me,
    }


async def _fetch_broker_profile(
    client: httpx.AsyncClient, settings: ProviderSettings, headers: dict[str, str]
) -> dict[str, Any]:
    info = await safe_json_fetch(client, settings.profile_endpoint, headers=headers)
    if not isinstance(info, dict):
        raise ProviderAuthError("Identity broker returned a malformed userinfo document")
    return {
        "id": info.get("user_id") or info.get("sub"),
        "displayName": info.get("name"),
        "nickname": info.get("nickname"),
        "emails": [{"value": info["email"]}] if info.get("email") else [],
        "picture": info.get("picture"),
        "user_id": info.get("user_id"),
        "sub": info.get("sub"),
        "_json": info,
    }


PROFILE_FETCHERS: dict[ProviderName, ProfileFetcher] = {
    ProviderName.GITHUB: _fetch_github_profile,
    ProviderName.GOOGLE: _fetch_google_profile,
    ProviderName.MICROSOFT: _fetch_microsoft_profile,
    ProviderName.APPLE: _fetch_broker_profile,
}


class IdentityStrategy:
    """
    Performs the authorization-code handshake for one provider.

    Attributes:
        settings (ProviderSettings): The provider's immutable handshake parameters.
        client (httpx.AsyncClient): Shared client for token exchange and profile calls.
    """

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client

    @property
    def name(self) -> ProviderName:
        return self.settings.name

    def authorize_url(self, callback_url: str) -> str:
        """
        Returns the provider authorization URL the browser is redirected to.

        Args:
            callback_url: The request-derived callback URL.
        """
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": callback_url,
            "scope": " ".join(self.settings.scopes),
            **self.settings.extra_authorize_params,
        }
        return f"{self.settings.authorize_endpoint}?{urlencode(params)}"

    async def _exchange_code(self, code: str, callback_url: str) -> ProviderTokenResponse:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": callback_url,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret.get_secret_value(),
            "scope": " ".join(self.settings.scopes),
        }
        payload = await safe_json_fetch(
            self.client,
            self.settings.token_endpoint,
            method="POST",
            data=data,
            headers={"Accept": "application/json"},
        )
        if isinstance(payload, dict) and payload.get("error"):
            raise ProviderAuthError(f"Token exchange rejected: {payload.get('error')}")
        return ProviderTokenResponse.model_validate(payload)

    async def exchange_callback(
        self, code: str | None, callback_url: str, error: str | None = None
    ) -> CanonicalIdentity:
        """
        Completes the handshake and returns the normalized identity.

        Emits an OpenTelemetry span `exchange_callback`.

        Args:
            code: The authorization code from the callback query.
            callback_url: The same request-derived callback URL used for the authorization redirect.
            error: The provider's `error` callback parameter, if any (e.g. access_denied).

        Returns:
            CanonicalIdentity: The user's canonical identity.

        Raises:
            ProviderAuthError: On denied consent, failed exchange, or an unusable profile.
        """
        with tracer.start_as_current_span("exchange_callback") as span:
            span.set_attribute("auth.provider", str(self.name))
            try:
                if error:
                    raise ProviderAuthError(f"Provider returned error: {error}")
                if not code:
                    raise ProviderAuthError("Callback is missing the authorization code")

                token = await self._exchange_code(code, callback_url)
                headers = {"Authorization": f"Bearer {token.access_token}", "Accept": "application/json"}
                raw = await PROFILE_FETCHERS[self.name](self.client, self.settings, headers)
                profile = parse_profile(raw)
                self._require_subject(profile)

                identity = NORMALIZERS[self.name](profile)
                span.set_status(Status(StatusCode.OK))
                return identity
            except ProviderAuthError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except ValidationError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "invalid token response"))
                raise ProviderAuthError(f"Invalid token response from {self.name}: {e}") from e
            except (httpx.HTTPError, CoreasonHomepageError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise ProviderAuthError(f"Handshake with {self.name} failed: {e}") from e

    def _require_subject(self, profile: RawProfile) -> None:
        # A missing subject would collapse every such user onto one "{namespace}|" record
        if not (profile.id or profile.user_id or profile.sub):
            raise ProviderAuthError(f"{self.name} profile carries no user identifier")


class StrategyRegistry:
    """
    Explicit lookup of identity strategies by provider name.
    Constructed once at startup and injected into the gateway.
    """

    def __init__(self, strategies: Iterable[IdentityStrategy]) -> None:
        self._strategies: dict[ProviderName, IdentityStrategy] = {s.name: s for s in strategies}

    def get(self, provider: str) -> IdentityStrategy:
        """
        Raises:
            UnknownProviderError: If no strategy is registered under `provider`.
        """
        try:
            return self._strategies[ProviderName(provider)]
        except (ValueError, KeyError) as e:
            raise UnknownProviderError(f"Unknown login provider: {provider!r}") from e

    def names(self) -> list[ProviderName]:
        return list(self._strategies)


def provider_settings_from(settings: HomepageSettings) -> list[ProviderSettings]:
    """Builds the per-provider handshake parameters from application settings."""

    def _secret(value: SecretStr | None) -> SecretStr:
        return value or SecretStr("")

    broker = f"https://{settings.auth0_domain}"
    return [
        ProviderSettings(
            name=ProviderName.GITHUB,
            client_id=settings.github_client_id or "",
            client_secret=_secret(settings.github_client_secret),
            scopes=("user:email",),
            authorize_endpoint=GITHUB_AUTHORIZE_URL,
            token_endpoint=GITHUB_TOKEN_URL,
            profile_endpoint=GITHUB_USER_URL,
        ),
        ProviderSettings(
            name=ProviderName.GOOGLE,
            client_id=settings.google_client_id or "",
            client_secret=_secret(settings.google_client_secret),
            scopes=("openid", "email", "profile"),
            authorize_endpoint=GOOGLE_AUTHORIZE_URL,
            token_endpoint=GOOGLE_TOKEN_URL,
            profile_endpoint=GOOGLE_USERINFO_URL,
        ),
        ProviderSettings(
            name=ProviderName.MICROSOFT,
            client_id=settings.microsoft_client_id or "",
            client_secret=_secret(settings.microsoft_client_secret),
            scopes=("openid", "profile", "email", "User.Read"),
            authorize_endpoint=MICROSOFT_AUTHORIZE_URL,
            token_endpoint=MICROSOFT_TOKEN_URL,
            profile_endpoint=MICROSOFT_PROFILE_URL,
        ),
        ProviderSettings(
            name=ProviderName.APPLE,
            client_id=settings.auth0_apple_client_id or "",
            client_secret=_secret(settings.auth0_apple_client_secret),
            scopes=("openid", "profile", "email"),
            authorize_endpoint=f"{broker}/authorize",
            token_endpoint=f"{broker}/oauth/token",
            profile_endpoint=f"{broker}/userinfo",
            extra_authorize_params={"connection": "apple"},
        ),
    ]


def build_registry(settings: HomepageSettings, client: httpx.AsyncClient) -> StrategyRegistry:
    """Constructs the registry of all four login providers."""
    return StrategyRegistry(IdentityStrategy(p, client) for p in provider_settings_from(settings))
