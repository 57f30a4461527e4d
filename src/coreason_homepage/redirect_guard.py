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
Redirect-target guard: keeps the post-login destination on an allow-list across the
provider round trip.
"""

from collections.abc import Sequence

from starlette.requests import Request
from starlette.responses import Response

from coreason_homepage.exceptions import ConfigurationError

COOKIE_NAME = "auth_redirect_uri"
COOKIE_MAX_AGE_SECONDS = 10 * 60


class RedirectTargetGuard:
    """
    Validates the client-supplied redirect target and carries it in a short-lived cookie.

    Attributes:
        allow_list (tuple[str, ...]): Trusted frontends. The first entry is the default target.
    """

    def __init__(self, allow_list: Sequence[str]) -> None:
        if not allow_list:
            raise ConfigurationError("Redirect allow-list must contain at least one URI")
        self.allow_list = tuple(allow_list)

    @property
    def default_target(self) -> str:
        return self.allow_list[0]

    def select(self, candidate: str | None) -> str:
        """
        Returns `candidate` if it equals an allowed URI or is a sub-path of one, else the default.
        Rejected candidates are downgraded silently.
        """
        uri = candidate or ""
        for allowed in self.allow_list:
            if uri == allowed or uri.startswith(allowed + "/"):
                return uri
        return self.default_target

    def store(self, response: Response, candidate: str | None) -> str:
        """
        Selects the effective target and writes it into the redirect cookie.

        Returns:
            str: The effective target.
        """
        target = self.select(candidate)
        response.set_cookie(
            COOKIE_NAME,
            target,
            max_age=COOKIE_MAX_AGE_SECONDS,
            httponly=True,
            secure=True,
            samesite="lax",
        )
        return target

    def consume(self, request: Request) -> str:
        """
        Reads the stored target, re-validated against the allow-list.
        The caller must `clear` the cookie afterwards regardless of outcome.
        """
        return self.select(request.cookies.get(COOKIE_NAME))

    def clear(self, response: Response) -> None:
        response.delete_cookie(COOKIE_NAME, httponly=True, secure=True, samesite="lax")
