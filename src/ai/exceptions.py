"""Error taxonomy for the AI routing engine.

Every error carries a short, caller-safe message; upstream response bodies
and stack traces stay in the logs.
"""

from datetime import datetime
from typing import Any, Optional

from src.providers.errors import ProviderErrorKind


class AIServiceError(Exception):
    """Base class for errors raised by the AI engine."""

    error_code: str = "ai_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message}


class ValidationError(AIServiceError, ValueError):
    """Bad input: empty or oversized message, unknown model or context."""

    error_code = "validation_error"


class AuthenticationRequiredError(AIServiceError):
    """AI features were called without an authenticated user."""

    error_code = "authentication_required"

    def __init__(self, message: str = "Authentication required for AI features") -> None:
        super().__init__(message)


class _RetryableAfter(AIServiceError):
    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        reset_time: Optional[datetime] = None,
    ) -> None:
        super().__init__(message)
        self.retry_after_seconds: Optional[int] = retry_after_seconds
        self.reset_time: Optional[datetime] = reset_time

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after_seconds
        data["reset_time"] = self.reset_time.isoformat() if self.reset_time else None
        return data


class QuotaExceededError(_RetryableAfter):
    """The daily token ceiling blocks every viable candidate model."""

    error_code = "quota_exceeded"

    def __init__(
        self,
        message: str,
        model_id: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        reset_time: Optional[datetime] = None,
    ) -> None:
        super().__init__(message, retry_after_seconds, reset_time)
        self.model_id: Optional[str] = model_id


class RateLimitError(_RetryableAfter):
    """An admission gate (window or daily ceiling) rejected the request."""

    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        message: str,
        limit_kind: str,
        limit: int,
        retry_after_seconds: Optional[int] = None,
        reset_time: Optional[datetime] = None,
    ) -> None:
        super().__init__(message, retry_after_seconds, reset_time)
        self.limit_kind: str = limit_kind
        self.limit: int = limit

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["limit_kind"] = self.limit_kind
        data["limit"] = self.limit
        return data


class UpstreamProviderError(AIServiceError):
    """A single provider call failed."""

    error_code = "upstream_error"

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind,
        model_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind: ProviderErrorKind = kind
        self.model_id: Optional[str] = model_id
        self.status_code: Optional[int] = status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class UpstreamExhaustedError(AIServiceError):
    """Every candidate model failed upstream."""

    error_code = "upstream_exhausted"

    def __init__(self, last_error: UpstreamProviderError, attempted: list[str]) -> None:
        super().__init__(
            f"All AI models failed ({', '.join(attempted)}). "
            f"Last error from {last_error.model_id}: {last_error.message}"
        )
        self.last_error: UpstreamProviderError = last_error
        self.attempted: list[str] = attempted

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempted_models"] = self.attempted
        data["last_error_kind"] = self.last_error.kind.value
        return data
