"""Error responses -- WisdomError -> JSON ``{"error": {"code", "message"}}``

Routes let engine errors propagate; the handlers registered here pick the
status code and error code from the exception class.
"""

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from wisdomos.core.exceptions import (
    ConflictError,
    DependencyCycleError,
    NotFoundError,
    TimeLockViolation,
    UnauthorizedError,
    ValidationError,
    WisdomError,
)

log = structlog.get_logger()

# first match wins, subclasses before their bases
_ERROR_MAP: list[tuple[type[WisdomError], int, str]] = [
    (ValidationError, 422, "VALIDATION_ERROR"),
    (DependencyCycleError, 422, "DEPENDENCY_CYCLE"),
    (NotFoundError, 404, "NOT_FOUND"),
    (UnauthorizedError, 403, "UNAUTHORIZED"),
    (TimeLockViolation, 423, "TIME_LOCKED"),
    (ConflictError, 409, "CONFLICT"),
]


def error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, **extra}},
    )


async def wisdom_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, WisdomError)
    for error_type, status_code, code in _ERROR_MAP:
        if isinstance(exc, error_type):
            if isinstance(exc, ValidationError):
                return error_response(
                    status_code,
                    code,
                    exc.message,
                    fields=[e.model_dump() for e in exc.errors],
                )
            return error_response(status_code, code, exc.message)

    log.error("request_failed", error=str(exc), error_type=type(exc).__name__)
    if exc.retryable:
        return error_response(503, "UNAVAILABLE", exc.message)
    return error_response(500, "INTERNAL_ERROR", exc.message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WisdomError, wisdom_error_handler)
