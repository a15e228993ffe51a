"""Error handling for FastAPI — maps the domain error kinds onto HTTP status codes."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.core.exceptions import ErrorKind, GuardBaseError
from src.core.logging import get_logger

log = get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNAVAILABLE: 503,
}


async def guard_error_handler(request: Request, exc: GuardBaseError) -> JSONResponse:
    """Return ``{"detail", "kind"}`` for any GuardBaseError."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)

    log_method = log.warning if exc.kind is ErrorKind.VALIDATION else log.error
    log_method(
        "request_failed",
        path=request.url.path,
        method=request.method,
        kind=exc.kind.value,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register domain exception handlers on the FastAPI app."""
    app.add_exception_handler(GuardBaseError, guard_error_handler)  # type: ignore[arg-type]
