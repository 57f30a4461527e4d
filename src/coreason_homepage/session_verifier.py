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
Session token verification.

Exactly one verifier runs per process, selected from `VerificationMode` at startup:
  - SelfIssuedVerifier: HS256 tokens minted by SessionTokenIssuer.
  - DelegatedVerifier: broker-signed RS256 tokens, accepted from either the custom or the
    canonical issuer domain (some client networks block the custom domain).
"""

from collections.abc import Mapping
from typing import Any, Protocol, cast

import httpx
from authlib.jose import JsonWebToken
from authlib.jose.errors import ExpiredTokenError, JoseError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr, ValidationError

from coreason_homepage.config import HomepageSettings, VerificationMode
from coreason_homepage.exceptions import (
    ConfigurationError,
    CoreasonHomepageError,
    InvalidTokenError,
    SignatureVerificationError,
    TokenExpiredError,
)
from coreason_homepage.models import SessionClaims
from coreason_homepage.oidc_provider import OIDCProvider
from coreason_homepage.session_issuer import SESSION_TOKEN_ALGORITHM
from coreason_homepage.utils.logger import logger
from coreason_homepage.validator import IssuerValidator

tracer = trace.get_tracer(__name__)


class SessionTokenVerifier(Protocol):
    """Common contract of both verification modes."""

    mode: VerificationMode

    async def verify(self, token: str) -> SessionClaims:
        """
        Returns the identity view carried by a valid token.

        Raises:
            InvalidTokenError: If the token is rejected for any reason.
        """
        ...


def claims_to_session(claims: Mapping[str, Any]) -> SessionClaims:
    """Projects validated claims onto the four identity fields."""
    try:
        return SessionClaims(
            sub=claims.get("sub"),
            email=claims.get("email"),
            name=claims.get("name"),
            picture=claims.get("picture"),
        )
    except ValidationError as e:
        raise InvalidTokenError(f"Token claims are malformed: {e.error_count()} errors") from e


class SelfIssuedVerifier:
    """
    Verifies HS256 tokens with the secret shared with SessionTokenIssuer.
    """

    mode = VerificationMode.SELF_ISSUED

    def __init__(self, secret: SecretStr, leeway: int = 0) -> None:
        self._secret = secret
        self.leeway = leeway
        self.jwt = JsonWebToken([SESSION_TOKEN_ALGORITHM])

    async def verify(self, token: str) -> SessionClaims:
        with tracer.start_as_current_span("verify_session_token") as span:
            span.set_attribute("auth.mode", str(self.mode))
            try:
                jwt_any = cast("Any", self.jwt)
                claims = jwt_any.decode(
                    token.strip(),
                    self._secret.get_secret_value(),
                    claims_options={"exp": {"essential": True}, "sub": {"essential": True}},
                )
                claims.validate(leeway=self.leeway)
            except ExpiredTokenError as e:
                span.set_status(Status(StatusCode.ERROR, "expired"))
                raise TokenExpiredError(f"Token has expired: {e}") from e
            except JoseError as e:
                span.set_status(Status(StatusCode.ERROR, e.error))
                raise InvalidTokenError(f"Token validation failed: {e}") from e
            except (ValueError, TypeError) as e:
                # Malformed segments surface from the decoder as plain value errors
                span.set_status(Status(StatusCode.ERROR, "malformed"))
                raise SignatureVerificationError(f"Malformed token: {e}") from e

            session = claims_to_session(claims)
            span.set_status(Status(StatusCode.OK))
            return session


class DelegatedVerifier:
    """
    Verifies broker-signed tokens, trying each trusted issuer in order.

    Any failure against the first issuer (signature, key fetch, issuer mismatch) falls through
    to the next; success from either is equivalent.

    Attributes:
        validators (tuple[IssuerValidator, ...]): Custom-domain issuer first, canonical second.
    """

    mode = VerificationMode.DELEGATED

    def __init__(self, validators: tuple[IssuerValidator, ...]) -> None:
        if not validators:
            raise ConfigurationError("Delegated verification needs at least one trusted issuer")
        self.validators = validators

    async def verify(self, token: str) -> SessionClaims:
        with tracer.start_as_current_span("verify_session_token") as span:
            span.set_attribute("auth.mode", str(self.mode))
            last_error: CoreasonHomepageError | None = None
            for validator in self.validators:
                try:
                    claims = await validator.validate_token(token)
                except CoreasonHomepageError as e:
                    logger.info(f"Issuer {validator.issuer} rejected token: {type(e).__name__}")
                    span.add_event("issuer_rejected", {"auth.issuer": validator.issuer})
                    last_error = e
                    continue
                span.set_attribute("auth.accepted_issuer", validator.issuer)
                span.set_status(Status(StatusCode.OK))
                return claims_to_session(claims)

            span.set_status(Status(StatusCode.ERROR, "rejected by all issuers"))
            raise InvalidTokenError("Token rejected by all trusted issuers") from last_error


def build_verifier(settings: HomepageSettings, client: httpx.AsyncClient) -> SessionTokenVerifier:
    """
    Constructs the single verifier for the configured mode.

    Raises:
        ConfigurationError: If the mode's required settings are absent.
    """
    if settings.verification_mode == VerificationMode.SELF_ISSUED:
        if settings.jwt_signing_secret is None:
            raise ConfigurationError("jwt_signing_secret is required in self_issued mode")
        return SelfIssuedVerifier(settings.jwt_signing_secret)

    if not settings.auth0_audience:
        raise ConfigurationError("auth0_audience is required in delegated mode")
    validators: list[IssuerValidator] = []
    for domain in dict.fromkeys(settings.issuer_domains):
        validators.append(
            IssuerValidator(
                oidc_provider=OIDCProvider.for_domain(domain, client),
                audience=settings.auth0_audience,
                issuer=f"https://{domain}/",
                pii_salt=settings.pii_salt,
            )
        )
    return DelegatedVerifier(tuple(validators))
