"""Maps domain exceptions onto HTTP responses."""

from typing import cast

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from idplane.core.exceptions import (
    AlreadyExistsError,
    IdplaneError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    PolicyEngineError,
    UnauthenticatedError,
)

logger = structlog.get_logger()

# Checked in order; the first matching base class wins
STATUS_CODES: list[tuple[type[IdplaneError], int]] = [
    (NotFoundError, 404),
    (InvalidArgumentError, 400),
    (UnauthenticatedError, 401),
    (PermissionDeniedError, 403),
    (AlreadyExistsError, 409),
    (PolicyEngineError, 503),
    (InternalError, 500),
]


def status_for(exc: IdplaneError) -> int:
    """HTTP status code for a domain exception."""
    for exc_type, status in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


async def idplane_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render an IdplaneError as ``{"detail": message}``."""
    error = cast(IdplaneError, exc)
    status = status_for(error)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None

    if status >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error_type=type(error).__name__,
            error=str(error),
        )
        detail = "Internal error" if not isinstance(error, InternalError) else str(error)
    else:
        detail = str(error)

    return JSONResponse(status_code=status, content={"detail": detail}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Install the domain exception handler."""
    app.add_exception_handler(IdplaneError, idplane_error_handler)
