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
Global exception handlers translating domain errors into the `{"error": ...}` envelope.
"""

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from coreason_homepage.exceptions import InvalidTokenError, StorageError, UnknownProviderError
from coreason_homepage.utils.logger import logger

UNAUTHORIZED = {"error": "Unauthorized"}
NOT_FOUND = {"error": "Not found"}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvalidTokenError)
    async def invalid_token_handler(request: Request, exc: InvalidTokenError) -> JSONResponse:
        # Every credential failure looks the same to the caller
        logger.info(f"Rejected credential on {request.url.path}: {type(exc).__name__}")
        return JSONResponse(status_code=401, content=UNAUTHORIZED)

    @app.exception_handler(UnknownProviderError)
    async def unknown_provider_handler(request: Request, exc: UnknownProviderError) -> JSONResponse:
        return JSONResponse(status_code=404, content=NOT_FOUND)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.opt(exception=exc).error(f"Storage failure on {request.method} {request.url.path}")
        return error_response(500, "Storage operation failed")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error("Unhandled exception")
        return error_response(500, "Internal server error")
