"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from hoteria.domain.errors import (
    ConflictError,
    ForbiddenError,
    HoteriaError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from hoteria.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from hoteria.observability.logging import get_logger
from hoteria.observability.redaction import safe_log_context

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)

# Most specific family first
_STATUS_BY_ERROR: tuple[tuple[type[HoteriaError], int], ...] = (
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageUnavailableError, 503),
)


def status_for_error(exc: HoteriaError) -> int:
    """HTTP status for a domain error family."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def hoteria_error_handler(request: Request, exc: HoteriaError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(
            "request failed",
            extra={"extra_fields": safe_log_context(path=request.url.path, code=exc.code)},
        )
    headers = {"Retry-After": "1"} if isinstance(exc, StorageUnavailableError) else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(
        title="Hoteria",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.add_exception_handler(HoteriaError, hoteria_error_handler)

    # Mount public routes (always)
    app.include_router(public.router)

    # Mount worker routes only for worker role
    if role == "worker":
        app.include_router(worker.router)

    return app
