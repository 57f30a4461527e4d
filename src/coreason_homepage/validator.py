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
IssuerValidator component for validating broker-signed JWTs against one issuer's JWKS.
"""

from typing import Any, cast

from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_homepage.exceptions import (
    CoreasonHomepageError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidTokenError,
    SignatureVerificationError,
    TokenExpiredError,
)
from coreason_homepage.oidc_provider import OIDCProvider
from coreason_homepage.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)


class IssuerValidator:
    """
    Validates JWT tokens against one issuer's JWKS and standard claims.

    Attributes:
        oidc_provider (OIDCProvider): Key source of the issuer.
        audience (str): The expected audience claim.
        issuer (str): The expected issuer claim.
    """

    def __init__(
        self,
        oidc_provider: OIDCProvider,
        audience: str,
        issuer: str,
        pii_salt: SecretStr,
        allowed_algorithms: list[str] | None = None,
        leeway: int = 0,
    ) -> None:
        """
        Initialize the IssuerValidator.

        Args:
            oidc_provider: The OIDCProvider instance to fetch JWKS.
            audience: The expected audience (aud) claim.
            issuer: The expected issuer (iss) claim.
            pii_salt: Salt for anonymizing user ids in logs.
            allowed_algorithms: Accepted JWS algorithms. Defaults to RS256 only.
            leeway: Acceptable clock skew in seconds. Defaults to 0.
        """
        self.oidc_provider = oidc_provider
        self.audience = audience
        self.issuer = issuer
        self.pii_salt = pii_salt
        self.allowed_algorithms = allowed_algorithms or ["RS256"]
        self.leeway = leeway
        # A dedicated instance rejects every algorithm outside the allow-list
        self.jwt = JsonWebToken(self.allowed_algorithms)

    async def validate_token(self, token: str) -> dict[str, Any]:
        """
        Validates the JWT signature and claims.

        Emits an OpenTelemetry span `validate_issuer_token`.

        Args:
            token: The raw token string (without "Bearer " prefix).

        Returns:
            dict[str, Any]: The validated claims dictionary.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidAudienceError: If the audience is invalid.
            InvalidIssuerError: If the issuer does not match.
            SignatureVerificationError: If the signature is invalid or key is missing.
            InvalidTokenError: If claims are missing or invalid, or for general JOSE errors.
            CoreasonHomepageError: For network failures and unexpected errors.
        """
        with tracer.start_as_current_span("validate_issuer_token") as span:
            span.set_attribute("auth.issuer", self.issuer)
            token = token.strip()

            claims_options = {
                "exp": {"essential": True},
                "nbf": {"essential": False},
                "aud": {"essential": True, "value": self.audience},
                "iss": {"essential": True, "value": self.issuer},
            }

            def _decode(jwks_data: dict[str, Any]) -> Any:
                jwt_any = cast("Any", self.jwt)
                claims = jwt_any.decode(token, jwks_data, claims_options=claims_options)
                claims.validate(leeway=self.leeway)
                return claims

            try:
                jwks = await self.oidc_provider.get_jwks()

                try:
                    claims = _decode(jwks)
                except (ValueError, BadSignatureError):
                    # Unknown kid or bad signature may mean the issuer rotated keys
                    logger.info("Validation failed with cached keys, refreshing JWKS and retrying...")
                    span.add_event("refreshing_jwks")
                    jwks = await self.oidc_provider.get_jwks(force_refresh=True)
                    claims = _decode(jwks)

                payload = dict(claims)
                user_hash = anonymize(str(payload.get("sub", "unknown")), self.pii_salt.get_secret_value())
                logger.info(f"Token validated for user {user_hash} by issuer {self.issuer}")
                span.set_attribute("enduser.id", user_hash)
                span.set_status(Status(StatusCode.OK))
                return payload

            except ExpiredTokenError as e:
                logger.warning("Validation failed: Token expired")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenExpiredError(f"Token has expired: {e}") from e
            except InvalidClaimError as e:
                logger.warning(f"Validation failed: Invalid claim ({e.error})")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                if "aud" in str(e):
                    raise InvalidAudienceError(f"Invalid audience: {e}") from e
                if "iss" in str(e):
                    raise InvalidIssuerError(f"Invalid issuer: {e}") from e
                raise InvalidTokenError(f"Invalid claim: {e}") from e
            except MissingClaimError as e:
                logger.warning("Validation failed: Missing claim")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise InvalidTokenError(f"Missing claim: {e}") from e
            except BadSignatureError as e:
                logger.warning("Validation failed: Bad signature")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise SignatureVerificationError(f"Invalid signature: {e}") from e
            except JoseError as e:
                logger.warning(f"Validation failed: JOSE error ({e.error})")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise InvalidTokenError(f"Token validation failed: {e}") from e
            except ValueError as e:
                # Authlib raises ValueError when no key in the set matches the token's kid
                logger.warning("Validation failed: signing key not found")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise SignatureVerificationError(f"Invalid signature or key not found: {e}") from e
            except CoreasonHomepageError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except Exception as e:
                logger.exception("Unexpected error during token validation")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CoreasonHomepageError(f"Unexpected error during token validation: {e}") from e
