"""TraceMiddleware -- binds job_id / user_id found in the request path

Logs of a request touching one job or one user carry those ids, so a job can
be followed from the HTTP hand-off to its execution logs.
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_PATH_KEYS = {"jobs": "job_id", "users": "user_id"}


class TraceMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        parts = [p for p in request.url.path.split("/") if p]
        bound: dict[str, str] = {}
        for i, part in enumerate(parts[:-1]):
            key = _PATH_KEYS.get(part)
            if key is not None and key not in bound:
                bound[key] = parts[i + 1]
        if bound:
            structlog.contextvars.bind_contextvars(**bound)

        return await call_next(request)
