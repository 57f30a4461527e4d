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
AuthGateway component for orchestrating login, token issuance and token checks.
"""

import re

from pydantic import SecretStr
from starlette.requests import Request
from starlette.responses import RedirectResponse

from coreason_homepage.exceptions import InvalidTokenError, ProviderAuthError
from coreason_homepage.models import SessionClaims
from coreason_homepage.redirect_guard import RedirectTargetGuard
from coreason_homepage.session_issuer import SessionTokenIssuer
from coreason_homepage.session_verifier import SessionTokenVerifier
from coreason_homepage.strategies import LoginState, StrategyRegistry, callback_url_for
from coreason_homepage.utils.logger import anonymize, logger

BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)$")


class AuthGateway:
    """
    Sequences guard, strategy, issuer and verifier for each provider.

    Attributes:
        registry (StrategyRegistry): Login providers.
        guard (RedirectTargetGuard): Post-login destination guard.
        issuer (SessionTokenIssuer | None): Token issuer; None when tokens are minted elsewhere.
        verifier (SessionTokenVerifier): The process' single token verifier.
    """

    def __init__(
        self,
        registry: StrategyRegistry,
        guard: RedirectTargetGuard,
        issuer: SessionTokenIssuer | None,
        verifier: SessionTokenVerifier,
        pii_salt: SecretStr,
    ) -> None:
        self.registry = registry
        self.guard = guard
        self.issuer = issuer
        self.verifier = verifier
        self.pii_salt = pii_salt

    def _log_state(self, provider: str, state: LoginState, detail: str = "") -> None:
        suffix = f": {detail}" if detail else ""
        logger.info(f"Login via {provider} -> {state}{suffix}")

    async def begin_login(self, provider: str, request: Request) -> RedirectResponse:
        """
        Stores the redirect target and sends the browser to the provider.

        Raises:
            UnknownProviderError: If `provider` is not registered.
        """
        strategy = self.registry.get(provider)
        self._log_state(provider, LoginState.STARTED)

        response = RedirectResponse(
            strategy.authorize_url(callback_url_for(request, strategy.name)),
            status_code=302,
        )
        self.guard.store(response, request.query_params.get("redirect_uri"))
        self._log_state(provider, LoginState.PROVIDER_REDIRECT)
        return response

    async def complete_login(self, provider: str, request: Request) -> RedirectResponse:
        """
        Exchanges the callback, mints a session token and redirects to `{target}/#token=...`.

        The token rides in the URL fragment, which browsers never send to servers.
        On any handshake failure the browser lands on the default target without a token.

        Raises:
            UnknownProviderError: If `provider` is not registered.
        """
        strategy = self.registry.get(provider)
        self._log_state(provider, LoginState.CALLBACK_RECEIVED)

        try:
            if self.issuer is None:
                raise ProviderAuthError("Session token issuance is disabled in this deployment")
            identity = await strategy.exchange_callback(
                request.query_params.get("code"),
                callback_url_for(request, strategy.name),
                error=request.query_params.get("error"),
            )
            token = self.issuer.issue(identity)
        except ProviderAuthError as e:
            self._log_state(provider, LoginState.FAILED, str(e))
            response = RedirectResponse(self.guard.default_target, status_code=302)
            self.guard.clear(response)
            return response

        self._log_state(provider, LoginState.NORMALIZED, anonymize(identity.id, self.pii_salt.get_secret_value()))
        target = self.guard.consume(request)
        response = RedirectResponse(f"{target}/#token={token}", status_code=302)
        self.guard.clear(response)
        return response

    async def who_am_i(self, authorization: str | None) -> SessionClaims:
        """
        Verifies the bearer credential of a request.

        The header is checked before any cryptographic work.

        Args:
            authorization: The raw 'Authorization' header value (e.g., "Bearer <token>").

        Raises:
            InvalidTokenError: If the header is missing or malformed, or the token is rejected.
        """
        if not authorization:
            raise InvalidTokenError("Missing Authorization header.")
        match = BEARER_PATTERN.match(authorization.strip())
        if not match:
            raise InvalidTokenError("Invalid Authorization header format. Must start with 'Bearer '.")
        return await self.verifier.verify(match.group(1))
