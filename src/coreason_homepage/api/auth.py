# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""HTTP routes for login and identity."""

from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse

from coreason_homepage.gateway import AuthGateway
from coreason_homepage.models import SessionClaims

UserDependency = Callable[..., Awaitable[SessionClaims]]


def create_user_dependency(gateway: AuthGateway) -> UserDependency:
    """
    Builds the `require_user` dependency for protected routes.

    Rejections raise InvalidTokenError, which the error handlers turn into a uniform 401.
    """

    async def require_user(authorization: str | None = Header(default=None)) -> SessionClaims:
        return await gateway.who_am_i(authorization)

    return require_user


def create_auth_router(gateway: AuthGateway, login_enabled: bool = True) -> APIRouter:
    """
    Create auth router with injected gateway.

    Args:
        gateway: The process' AuthGateway.
        login_enabled: Mount the provider login routes. Off when tokens are minted by the broker.
    """
    router = APIRouter(tags=["auth"])
    require_user = create_user_dependency(gateway)

    # Registered before the provider routes so "me" is never taken for a provider name
    @router.get("/me")
    async def me(user: SessionClaims = Depends(require_user)) -> dict[str, str]:
        return user.model_dump()

    if not login_enabled:
        return router

    @router.get("/{provider}")
    async def begin_login(provider: str, request: Request) -> RedirectResponse:
        return await gateway.begin_login(provider, request)

    @router.get("/{provider}/callback")
    async def complete_login(provider: str, request: Request) -> RedirectResponse:
        return await gateway.complete_login(provider, request)

    return router
