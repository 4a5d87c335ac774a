"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from spotit.api.request_id import get_request_id
from spotit.domain.spots.exceptions import (
    BackendError,
    InvalidCoordinate,
    InvalidDuration,
    MalformedSpot,
    NotFound,
    SpotError,
    SyncFailed,
    Unauthenticated,
)


def status_for(exc: SpotError) -> int:
    if isinstance(exc, (InvalidCoordinate, InvalidDuration, MalformedSpot)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, Unauthenticated):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (BackendError, SyncFailed)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": rid}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(SpotError)
    async def spot_exc_handler(request: Request, exc: SpotError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.reason, "request_id": rid}
        return JSONResponse(status_code=status_for(exc), content=payload)
