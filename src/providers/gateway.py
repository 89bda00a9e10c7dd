"""Provider gateway: dispatches a model descriptor to its provider client."""

import logging
from typing import AsyncIterator, Optional, Union

from src.providers.base import (
    ContentDelta,
    GatewayFailure,
    GatewaySuccess,
    ProviderCallError,
    ProviderClient,
    StreamCompleted,
)
from src.providers.errors import ProviderErrorKind
from src.providers.openai import OpenAIClient
from src.providers.openrouter import OpenRouterClient
from src.routing.models import ModelDescriptor
from src.settings import Settings

logger = logging.getLogger(__name__)


class ProviderGateway:
    """Uniform completion interface over the configured providers.

    A descriptor whose provider has no client (no API key configured) gets
    an AUTH_INVALID failure instead of an exception, so the orchestrator
    falls through to the next candidate.

    Attributes:
        _clients: Provider id -> client.
    """

    def __init__(self, clients: Optional[dict[str, ProviderClient]] = None) -> None:
        self._clients: dict[str, ProviderClient] = dict(clients or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderGateway":
        """Build clients for every provider with an API key."""
        clients: dict[str, ProviderClient] = {}
        if settings.openai_api_key:
            clients["openai"] = OpenAIClient(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.provider_timeout_seconds,
            )
        if settings.openrouter_api_key:
            clients["openrouter"] = OpenRouterClient(
                api_key=settings.openrouter_api_key,
                base_url=settings.openrouter_base_url,
                timeout=settings.provider_timeout_seconds,
                app_url=settings.openrouter_app_url,
                app_title=settings.openrouter_app_title,
            )
        logger.info(f"provider_gateway_initialized: providers={sorted(clients)}")
        return cls(clients)

    @property
    def configured_providers(self) -> set[str]:
        return set(self._clients)

    def is_configured(self, provider: str) -> bool:
        return provider in self._clients

    async def chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> Union[GatewaySuccess, GatewayFailure]:
        """Run a completion on the descriptor's provider."""
        client = self._clients.get(descriptor.provider)
        if client is None:
            logger.warning(
                f"provider_not_configured: provider={descriptor.provider}, model={descriptor.id}"
            )
            return GatewayFailure(
                model_id=descriptor.id,
                kind=ProviderErrorKind.AUTH_INVALID,
                message=f"Provider {descriptor.provider} is not configured",
            )
        return await client.chat_completion(descriptor, messages, max_tokens)

    async def stream_chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> AsyncIterator[Union[ContentDelta, StreamCompleted]]:
        """Stream a completion on the descriptor's provider.

        Raises:
            ProviderCallError: When the provider is missing or the stream fails.
        """
        client = self._clients.get(descriptor.provider)
        if client is None:
            raise ProviderCallError(
                ProviderErrorKind.AUTH_INVALID,
                f"Provider {descriptor.provider} is not configured",
            )
        async for event in client.stream_chat_completion(descriptor, messages, max_tokens):
            yield event

    async def aclose(self) -> None:
        """Close every provider client's SDK connection pool."""
        for provider, client in self._clients.items():
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"provider_close_error: provider={provider}, error={str(e)}")
