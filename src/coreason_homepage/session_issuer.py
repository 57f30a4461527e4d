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
SessionTokenIssuer component for minting self-issued session tokens.
"""

import time
from datetime import timedelta

from authlib.jose import JsonWebToken
from opentelemetry import trace
from pydantic import SecretStr

from coreason_homepage.models import CanonicalIdentity, SessionClaims

tracer = trace.get_tracer(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"
SESSION_TOKEN_LIFETIME = timedelta(days=7)


class SessionTokenIssuer:
    """
    Signs `{sub, email, name, picture}` with the process-wide secret.

    Attributes:
        lifetime (timedelta): Validity window of each token.
    """

    def __init__(self, secret: SecretStr, lifetime: timedelta = SESSION_TOKEN_LIFETIME) -> None:
        self._secret = secret
        self.lifetime = lifetime
        self.jwt = JsonWebToken([SESSION_TOKEN_ALGORITHM])

    def issue(self, identity: CanonicalIdentity, now: int | None = None) -> str:
        """
        Mints a compact JWS for `identity`.

        Args:
            identity: The canonical identity to embed.
            now: Issue time as a Unix timestamp. Defaults to the current time.

        Returns:
            str: The encoded token.
        """
        with tracer.start_as_current_span("issue_session_token"):
            issued_at = int(time.time()) if now is None else now
            payload = SessionClaims.from_identity(identity).model_dump()
            payload["iat"] = issued_at
            payload["exp"] = issued_at + int(self.lifetime.total_seconds())
            header = {"alg": SESSION_TOKEN_ALGORITHM, "typ": "JWT"}
            token = self.jwt.encode(header, payload, self._secret.get_secret_value())
            return token.decode("ascii")
