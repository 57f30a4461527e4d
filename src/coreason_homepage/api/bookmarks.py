# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_homepage

"""HTTP routes for the signed-in user's bookmarks."""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import TypeAdapter, ValidationError

from coreason_homepage.api.auth import UserDependency
from coreason_homepage.api.errors import error_response
from coreason_homepage.bookmark_markup import clean_bookmarks, parse_bookmarks, serialize_bookmarks
from coreason_homepage.bookmarks import BookmarkService
from coreason_homepage.exceptions import StorageError
from coreason_homepage.models import BookmarkNode, InitDatabaseRequest, SessionClaims
from coreason_homepage.utils.logger import logger

BOOKMARK_LIST: TypeAdapter[list[BookmarkNode]] = TypeAdapter(list[BookmarkNode])


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _saved(document: dict[str, Any]) -> dict[str, Any]:
    return {"bookmarks": document.get("bookmarks", []), "updatedAt": document.get("updatedAt")}


def create_bookmarks_router(service: BookmarkService, require_user: UserDependency) -> APIRouter:
    """Create bookmarks router with injected service and user dependency."""
    router = APIRouter(tags=["bookmarks"])

    @router.get("/bookmarks", response_model=None)
    async def get_bookmarks(user: SessionClaims = Depends(require_user)) -> dict[str, Any] | JSONResponse:
        try:
            bookmarks = await service.get_bookmarks(user.sub)
        except StorageError:
            logger.exception("Error fetching bookmarks")
            return error_response(500, "Failed to fetch bookmarks")
        return {"bookmarks": bookmarks}

    @router.put("/bookmarks", response_model=None)
    async def put_bookmarks(
        request: Request, user: SessionClaims = Depends(require_user)
    ) -> dict[str, Any] | JSONResponse:
        body = await _json_body(request)
        if not isinstance(body, dict) or not isinstance(body.get("bookmarks"), list):
            return error_response(400, "Request body must contain a bookmarks array")
        try:
            bookmarks = BOOKMARK_LIST.validate_python(body["bookmarks"])
        except ValidationError as e:
            return error_response(400, f"Malformed bookmarks: {e.error_count()} errors")

        try:
            document = await service.save_bookmarks(user.sub, bookmarks)
        except StorageError:
            logger.exception("Error saving bookmarks")
            return error_response(500, "Failed to save bookmarks")
        return _saved(document)

    @router.get("/bookmarks/export", response_model=None)
    async def export_bookmarks(user: SessionClaims = Depends(require_user)) -> PlainTextResponse | JSONResponse:
        try:
            bookmarks = await service.get_bookmarks(user.sub)
        except StorageError:
            logger.exception("Error exporting bookmarks")
            return error_response(500, "Failed to fetch bookmarks")
        return PlainTextResponse(serialize_bookmarks(bookmarks))

    @router.put("/bookmarks/import", response_model=None)
    async def import_bookmarks(
        request: Request, user: SessionClaims = Depends(require_user)
    ) -> dict[str, Any] | JSONResponse:
        try:
            text = (await request.body()).decode("utf-8")
        except UnicodeDecodeError:
            return error_response(400, "Import must be UTF-8 text")

        cleaned = clean_bookmarks(parse_bookmarks(text))
        if not cleaned:
            return error_response(400, "No bookmarks found in the supplied text")

        try:
            document = await service.save_bookmarks(user.sub, BOOKMARK_LIST.validate_python(cleaned))
        except StorageError:
            logger.exception("Error importing bookmarks")
            return error_response(500, "Failed to save bookmarks")
        return _saved(document)

    @router.post("/admin/init-database", response_model=None)
    async def init_database(
        request: Request, user: SessionClaims = Depends(require_user)
    ) -> dict[str, Any] | JSONResponse:
        body = await _json_body(request)
        try:
            payload = InitDatabaseRequest.model_validate(body or {})
        except ValidationError as e:
            return error_response(400, f"Malformed request: {e.error_count()} errors")

        try:
            seeded = await service.initialize(user.sub, payload.bookmarks)
        except StorageError:
            logger.exception("Error initializing database")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Failed to initialize database"},
            )

        return {
            "success": True,
            "message": "Database initialized successfully",
            "database": service.database_name,
            "container": service.container_name,
            "seeded": seeded,
        }

    return router
