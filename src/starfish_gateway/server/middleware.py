"""Request context middleware for the HTTP server."""

import uuid
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from starfish_gateway.observability import RequestContext, Timer, emit_counter, emit_timer, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-amz-request-id"

# Paths that are not bucket names
INTERNAL_PATHS = frozenset({"health", "ping", "_gateway"})


def bucket_from_path(path: str) -> str | None:
    """First path segment, or None for the service root and internal paths."""
    segment = path.lstrip("/").split("/", 1)[0]
    if not segment or segment in INTERNAL_PATHS:
        return None
    return segment


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id and bucket to the logging context.

    Logs one line per request with its duration and echoes the request id
    in the `x-amz-request-id` response header.
    """

    def __init__(self, app: Any, header_name: str = REQUEST_ID_HEADER) -> None:
        """Initialize request context middleware.

        Args:
            app: The ASGI application
            header_name: Header carrying the request id in both directions
        """
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex.upper()
        bucket = bucket_from_path(request.url.path)

        async with RequestContext(request_id=request_id, bucket=bucket):
            request.state.request_id = request_id
            with Timer() as timer:
                response = await call_next(request)

            logger.info(
                "Request handled",
                context={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                },
                duration_ms=timer.duration_ms,
            )
            labels = {"method": request.method, "status": response.status_code}
            emit_counter("gateway_requests", dict(labels))
            emit_timer("gateway_request_duration_ms", timer.duration_ms, labels)

        response.headers[self.header_name] = request_id
        return response
