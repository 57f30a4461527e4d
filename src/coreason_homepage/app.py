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
Application assembly and two-phase startup.

Phase 1 starts listening immediately and answers `/health` so platform startup probes pass.
Phase 2 awaits the ConfigSource, builds the dependency graph, mounts the authenticated
routes and flips readiness. A configuration error in phase 2 is fatal.
"""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_homepage.api.auth import create_auth_router, create_user_dependency
from coreason_homepage.api.bookmarks import create_bookmarks_router
from coreason_homepage.api.errors import register_error_handlers
from coreason_homepage.api.middleware import AccessLogMiddleware, SecurityHeadersMiddleware
from coreason_homepage.bookmarks import BookmarkService, BookmarkStore, MemoryBookmarkStore, iso_timestamp
from coreason_homepage.config import ConfigSource, EnvironmentConfigSource, HomepageSettings, VerificationMode
from coreason_homepage.exceptions import ConfigurationError
from coreason_homepage.gateway import AuthGateway
from coreason_homepage.redirect_guard import RedirectTargetGuard
from coreason_homepage.session_issuer import SessionTokenIssuer
from coreason_homepage.session_verifier import build_verifier
from coreason_homepage.strategies import StrategyRegistry, build_registry
from coreason_homepage.utils.logger import logger


def create_http_client(settings: HomepageSettings) -> httpx.AsyncClient:
    """The single outbound client shared by strategies and key providers."""
    client = httpx.AsyncClient(timeout=settings.http_timeout)
    # Instrument the client for distributed tracing
    HTTPXClientInstrumentor().instrument_client(client)
    return client


def mount_routes(
    app: FastAPI,
    settings: HomepageSettings,
    store: BookmarkStore,
    client: httpx.AsyncClient,
) -> AuthGateway:
    """
    Builds the immutable startup state, mounts the authenticated routes and marks the app ready.

    Login routes are only mounted when this process mints its own tokens.

    Returns:
        AuthGateway: The gateway the routes were bound to.

    Raises:
        ConfigurationError: If the settings cannot produce a working dependency graph.
    """
    issuer: SessionTokenIssuer | None = None
    registry = StrategyRegistry([])
    if settings.verification_mode == VerificationMode.SELF_ISSUED:
        if settings.jwt_signing_secret is None:
            raise ConfigurationError("jwt_signing_secret is required in self_issued mode")
        issuer = SessionTokenIssuer(settings.jwt_signing_secret)
        registry = build_registry(settings, client)

    gateway = AuthGateway(
        registry=registry,
        guard=RedirectTargetGuard(settings.redirect_allow_list),
        issuer=issuer,
        verifier=build_verifier(settings, client),
        pii_salt=settings.pii_salt,
    )
    service = BookmarkService(store, settings.database_name, settings.container_name)

    app.include_router(create_auth_router(gateway, login_enabled=issuer is not None), prefix="/auth")
    app.include_router(create_bookmarks_router(service, create_user_dependency(gateway)), prefix="/api")

    app.state.settings = settings
    app.state.bookmarks = service
    app.state.ready = True
    logger.info(
        f"Server ready ({settings.verification_mode} mode, providers: {', '.join(registry.names()) or 'none'})"
    )
    logger.info(f"Database: {settings.database_name}, container: {settings.container_name}")
    return gateway


async def initialize_app(app: FastAPI, source: ConfigSource, store: BookmarkStore | None = None) -> AuthGateway:
    """
    Second startup phase.

    Raises:
        ConfigurationError: If the configuration cannot be loaded or is incomplete.
    """
    settings = await source.load()
    client = create_http_client(settings)
    app.state.http_client = client
    try:
        return mount_routes(app, settings, store or MemoryBookmarkStore(), client)
    except Exception:
        await client.aclose()
        app.state.http_client = None
        raise


async def _run_startup(app: FastAPI, source: ConfigSource, store: BookmarkStore | None) -> None:
    try:
        await initialize_app(app, source, store)
    except ConfigurationError as e:
        logger.critical(f"Fatal startup error: {e}")
        raise SystemExit(1) from e
    except Exception as e:
        logger.critical(f"Unexpected startup failure: {e}")
        raise SystemExit(1) from e


def create_app(config_source: ConfigSource | None = None, store: BookmarkStore | None = None) -> FastAPI:
    """Return a FastAPI application that serves /health and completes its setup in the background."""
    source = config_source or EnvironmentConfigSource()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task = asyncio.create_task(_run_startup(app, source, store))
        logger.info("Listening, initializing...")
        try:
            yield
        finally:
            if not task.done():
                task.cancel()
            client = app.state.http_client
            if client is not None:
                await client.aclose()

    app = FastAPI(title="coreason-homepage", lifespan=lifespan, docs_url=None, redoc_url=None)
    app.state.ready = False
    app.state.settings = None
    app.state.bookmarks = None
    app.state.http_client = None

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)
    # Any origin is reflected
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        state = request.app.state
        if not state.ready:
            return {"status": "initializing"}
        return {
            "status": "healthy",
            "timestamp": iso_timestamp(),
            "database": state.bookmarks.database_name,
            "container": state.bookmarks.container_name,
        }

    return app


def main() -> None:  # pragma: no cover
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    main()
