"""AI orchestration: admission control, model fallback and usage accounting."""

from src.ai.admission import AdmissionResult, AIRateLimit
from src.ai.exceptions import (
    AIServiceError,
    AuthenticationRequiredError,
    QuotaExceededError,
    RateLimitError,
    UpstreamExhaustedError,
    UpstreamProviderError,
    ValidationError,
)
from src.ai.models import ChatResponse, RoutingInfo
from src.ai.service import AIService

__all__ = [
    "AIRateLimit",
    "AIService",
    "AIServiceError",
    "AdmissionResult",
    "AuthenticationRequiredError",
    "ChatResponse",
    "QuotaExceededError",
    "RateLimitError",
    "RoutingInfo",
    "UpstreamExhaustedError",
    "UpstreamProviderError",
    "ValidationError",
]
