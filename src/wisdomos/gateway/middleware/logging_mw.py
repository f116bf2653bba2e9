"""LoggingMiddleware -- request-scoped structlog context

Every request gets a request_id (the caller's X-Request-ID when it sends a
usable one, a fresh ULID otherwise), bound to structlog contextvars and echoed
back in the response header.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 64

# Probe endpoints are polled constantly; keep them out of INFO logs
_QUIET_PATHS = frozenset({"/health", "/ready"})


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if incoming and len(incoming) <= _MAX_REQUEST_ID_LENGTH and incoming.isprintable():
        return incoming
    return str(ULID())


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = _request_id(request)
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
        )

        log = structlog.get_logger()
        quiet = path in _QUIET_PATHS
        started = time.perf_counter()
        if not quiet:
            await log.ainfo("request_started")

        response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        if quiet:
            await log.adebug("request_completed", status_code=response.status_code)
        elif response.status_code >= 500:
            await log.awarning(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )
        else:
            await log.ainfo(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
