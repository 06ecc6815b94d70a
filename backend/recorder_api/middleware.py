from __future__ import annotations

from time import perf_counter
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = structlog.get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 128


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs one line per response.

    The log carries the matched route template (``/v1/meetings/{meeting_id}``)
    so meeting ids stay out of the path field.
    """

    def __init__(self, app, service: str = "backend") -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self._service = service

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        incoming = request.headers.get("X-Request-ID", "").strip()
        request_id = incoming[:MAX_REQUEST_ID_LENGTH] or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(service=self._service, request_id=request_id)

        started = perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "http_request_completed",
                method=request.method,
                route=_route_template(request),
                status_code=response.status_code,
                duration_ms=round((perf_counter() - started) * 1000, 2),
            )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response
