"""Error handling middleware mapping the AI error taxonomy to HTTP responses."""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from src.ai.exceptions import (
    AIServiceError,
    AuthenticationRequiredError,
    QuotaExceededError,
    RateLimitError,
    UpstreamExhaustedError,
    UpstreamProviderError,
    ValidationError,
)
from src.api.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

# First match wins; unlisted AIServiceError subclasses map to 503
STATUS_BY_ERROR: list[tuple[type[AIServiceError], int]] = [
    (ValidationError, 400),
    (AuthenticationRequiredError, 401),
    (QuotaExceededError, 402),
    (RateLimitError, 429),
    (UpstreamExhaustedError, 502),
    (UpstreamProviderError, 502),
]


def status_for(error: AIServiceError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 503


def _json_error(
    status_code: int,
    error: ErrorResponse,
    retry_after: Optional[int] = None,
) -> JSONResponse:
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return JSONResponse(status_code=status_code, content=error.model_dump(), headers=headers)


async def error_handling_middleware(request: Request, call_next: Callable) -> Response:
    """
    Catch exceptions and return standardized JSON error responses.

    - AIServiceError → status from STATUS_BY_ERROR, details from to_dict(),
      Retry-After when the error carries retry_after_seconds
    - ValueError → 400 Bad Request
    - HTTPException → passthrough with original status
    - Exception → 500 Internal Server Error

    Upstream bodies and tracebacks are logged, never returned.
    """
    try:
        return await call_next(request)

    except AIServiceError as e:
        # Set by RequestIdMiddleware, which runs inside this middleware
        request_id = getattr(request.state, "request_id", None)
        status_code = status_for(e)
        logger.warning(
            f"ai_error: path={request.url.path}, status={status_code}, "
            f"error={e.error_code}, message={e.message}, request_id={request_id}"
        )
        details = e.to_dict()
        error_code = details.pop("error")
        message = details.pop("message")
        return _json_error(
            status_code,
            ErrorResponse(
                error=error_code,
                message=message,
                details=details or None,
                request_id=request_id,
            ),
            retry_after=getattr(e, "retry_after_seconds", None),
        )

    except ValueError as e:
        request_id = getattr(request.state, "request_id", None)
        logger.warning(
            f"validation_error: path={request.url.path}, error={str(e)}, request_id={request_id}"
        )
        return _json_error(
            400,
            ErrorResponse(error="validation_error", message=str(e), request_id=request_id),
        )

    except HTTPException as e:
        request_id = getattr(request.state, "request_id", None)
        logger.info(
            f"http_exception: path={request.url.path}, status={e.status_code}, "
            f"detail={e.detail}, request_id={request_id}"
        )
        return _json_error(
            e.status_code,
            ErrorResponse(error="http_error", message=str(e.detail), request_id=request_id),
        )

    except Exception as e:
        request_id = getattr(request.state, "request_id", None)
        logger.exception(
            f"internal_error: path={request.url.path}, error={str(e)}, request_id={request_id}"
        )
        return _json_error(
            500,
            ErrorResponse(
                error="internal_error",
                message="An unexpected error occurred",
                request_id=request_id,
            ),
        )
