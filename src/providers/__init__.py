"""Upstream chat-completion providers behind a single gateway."""

from src.providers.base import (
    ContentDelta,
    GatewayFailure,
    GatewayResult,
    GatewaySuccess,
    ProviderCallError,
    ProviderClient,
    StreamCompleted,
    StreamEvent,
)
from src.providers.errors import ProviderErrorKind, classify_exception, classify_status
from src.providers.gateway import ProviderGateway
from src.providers.openai import OpenAIClient
from src.providers.openrouter import OpenRouterClient

__all__ = [
    "ContentDelta",
    "GatewayFailure",
    "GatewayResult",
    "GatewaySuccess",
    "OpenAIClient",
    "OpenRouterClient",
    "ProviderCallError",
    "ProviderClient",
    "ProviderErrorKind",
    "ProviderGateway",
    "StreamCompleted",
    "StreamEvent",
    "classify_exception",
    "classify_status",
]
