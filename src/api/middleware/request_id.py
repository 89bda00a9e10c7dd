"""Request ID middleware for request tracing."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an X-Request-ID and log its outcome.

    Reuses an incoming X-Request-ID header, otherwise generates a UUID4.
    The id is stored in request.state for error responses and echoed back.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.monotonic()

        response: Response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"request_completed: method={request.method}, path={request.url.path}, "
            f"status={response.status_code}, duration_ms={(time.monotonic() - start) * 1000:.0f}, "
            f"user={request.headers.get('X-User-Id', '-')}, request_id={request_id}"
        )
        return response
