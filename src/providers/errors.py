"""Classification of upstream provider failures."""

import enum
from typing import Optional

import httpx
import openai


class ProviderErrorKind(str, enum.Enum):
    """Failure classes for upstream chat-completion calls."""

    RATE_LIMITED = "rate_limited"
    AUTH_INVALID = "auth_invalid"
    BAD_REQUEST = "bad_request"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NETWORK_ERROR = "network_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient (worth trying the same upstream later)."""
        return self in _TRANSIENT_KINDS


_TRANSIENT_KINDS: frozenset[ProviderErrorKind] = frozenset(
    {
        ProviderErrorKind.RATE_LIMITED,
        ProviderErrorKind.UPSTREAM_UNAVAILABLE,
        ProviderErrorKind.NETWORK_ERROR,
        ProviderErrorKind.INVALID_RESPONSE,
    }
)


def classify_status(status_code: int) -> ProviderErrorKind:
    """Map an upstream HTTP status code to a failure kind."""
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ProviderErrorKind.AUTH_INVALID
    if status_code in (400, 404, 409, 413, 422):
        return ProviderErrorKind.BAD_REQUEST
    if status_code >= 500:
        return ProviderErrorKind.UPSTREAM_UNAVAILABLE
    return ProviderErrorKind.UNKNOWN


def classify_exception(error: Exception) -> ProviderErrorKind:
    """Map an openai SDK or transport-level exception to a failure kind.

    Timeouts are network errors so they follow the same fallback path.
    """
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(error, openai.APIConnectionError):
        return ProviderErrorKind.NETWORK_ERROR
    if isinstance(error, openai.RateLimitError):
        return ProviderErrorKind.RATE_LIMITED
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderErrorKind.AUTH_INVALID
    if isinstance(error, (openai.BadRequestError, openai.NotFoundError)):
        return ProviderErrorKind.BAD_REQUEST
    if isinstance(error, openai.APIStatusError):
        return classify_status(error.status_code)
    if isinstance(error, openai.APIResponseValidationError):
        return ProviderErrorKind.INVALID_RESPONSE
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ProviderErrorKind.NETWORK_ERROR
    if isinstance(error, (KeyError, IndexError, TypeError, ValueError)):
        return ProviderErrorKind.INVALID_RESPONSE
    return ProviderErrorKind.UNKNOWN


def status_error_message(error: openai.APIStatusError) -> str:
    """Short "HTTP <status>: <detail>" message for an upstream error response.

    Only the provider's own error message is kept; non-JSON bodies (HTML
    error pages and the like) fall back to the reason phrase.
    """
    body = error.body
    detail = body.get("message") if isinstance(body, dict) else None
    detail = detail or error.response.reason_phrase or "error"
    return f"HTTP {error.status_code}: {str(detail)[:200]}"


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None
