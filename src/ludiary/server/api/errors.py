"""Mapping of ludiary errors to HTTP responses.

Every error body is ``{"detail": str, "code": str}`` so clients can
rebuild the typed error from ``code``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ludiary.core.errors import LudiaryError

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[str, int] = {
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "invalid-argument": status.HTTP_400_BAD_REQUEST,
    "permission-denied": status.HTTP_403_FORBIDDEN,
    "not-found": status.HTTP_404_NOT_FOUND,
    "failed-precondition": status.HTTP_409_CONFLICT,
    "unimplemented": status.HTTP_501_NOT_IMPLEMENTED,
    "unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: LudiaryError) -> int:
    """HTTP status for an error code (500 when unknown)."""
    return STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def install_error_handlers(app: FastAPI) -> None:
    """Register the error handlers on an application."""

    @app.exception_handler(LudiaryError)
    async def handle_ludiary_error(request: Request, exc: LudiaryError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        detail = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid')}"
            for e in errors
        ) or "Invalid request"
        return JSONResponse(
            status_code=422,
            content={"detail": detail, "code": "invalid-argument"},
        )
