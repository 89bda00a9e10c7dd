"""Shared fixtures for AI service and admission tests."""

from typing import AsyncIterator, Optional, Union

import pytest

from src.ai.admission import AIRateLimit
from src.ai.service import AIService
from src.cache.counter_store import InMemoryCounterStore
from src.cache.rate_limiter import RateLimiter
from src.cache.response_cache import ResponseCache
from src.providers.base import (
    ContentDelta,
    GatewayFailure,
    GatewaySuccess,
    ProviderCallError,
    StreamCompleted,
)
from src.providers.errors import ProviderErrorKind
from src.providers.gateway import ProviderGateway
from src.routing.model_registry import ModelRegistry
from src.routing.models import ModelDescriptor
from src.usage.ledger import UsageLedger

StreamStep = Union[str, StreamCompleted, ProviderCallError]


class FakeGateway(ProviderGateway):
    """Scripted gateway: per-model queues of outcomes, recorded calls.

    Unscripted calls succeed with a short answer. Providers outside
    `providers` fail with AUTH_INVALID like the real gateway.
    """

    def __init__(self, providers: Optional[set[str]] = None) -> None:
        super().__init__()
        self._providers: set[str] = providers if providers is not None else {
            "openai",
            "openrouter",
        }
        self.results: dict[str, list[Union[GatewaySuccess, GatewayFailure]]] = {}
        self.streams: dict[str, list[list[StreamStep]]] = {}
        self.calls: list[str] = []
        self.messages: list[list[dict[str, str]]] = []
        self.max_tokens: list[int] = []

    @property
    def configured_providers(self) -> set[str]:
        return set(self._providers)

    def fail(
        self,
        model_id: str,
        kind: ProviderErrorKind = ProviderErrorKind.UPSTREAM_UNAVAILABLE,
        status_code: Optional[int] = 500,
        message: str = "HTTP 500: upstream exploded",
    ) -> None:
        self.results.setdefault(model_id, []).append(
            GatewayFailure(model_id=model_id, kind=kind, message=message, status_code=status_code)
        )

    def succeed(
        self,
        model_id: str,
        content: str = "Here is the answer.",
        input_tokens: int = 100,
        output_tokens: int = 50,
        partial: bool = False,
    ) -> None:
        self.results.setdefault(model_id, []).append(
            GatewaySuccess(
                model_id=model_id,
                content=content,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                partial=partial,
                latency_ms=10.0,
            )
        )

    def script_stream(self, model_id: str, steps: list[StreamStep]) -> None:
        self.streams.setdefault(model_id, []).append(steps)

    def _not_configured(self, descriptor: ModelDescriptor) -> bool:
        return descriptor.provider not in self._providers

    async def chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> Union[GatewaySuccess, GatewayFailure]:
        if self._not_configured(descriptor):
            return GatewayFailure(
                model_id=descriptor.id,
                kind=ProviderErrorKind.AUTH_INVALID,
                message=f"Provider {descriptor.provider} is not configured",
            )
        self.calls.append(descriptor.id)
        self.messages.append(messages)
        self.max_tokens.append(max_tokens)
        queue = self.results.get(descriptor.id)
        if queue:
            return queue.pop(0)
        return GatewaySuccess(
            model_id=descriptor.id,
            content=f"Answer from {descriptor.id}",
            input_tokens=100,
            output_tokens=50,
            latency_ms=10.0,
        )

    async def stream_chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> AsyncIterator[Union[ContentDelta, StreamCompleted]]:
        if self._not_configured(descriptor):
            raise ProviderCallError(
                ProviderErrorKind.AUTH_INVALID,
                f"Provider {descriptor.provider} is not configured",
            )
        self.calls.append(descriptor.id)
        self.messages.append(messages)
        queue = self.streams.get(descriptor.id)
        steps: list[StreamStep] = (
            queue.pop(0)
            if queue
            else [
                "Hello",
                " there",
                StreamCompleted(
                    model_id=descriptor.id,
                    input_tokens=80,
                    output_tokens=20,
                    cost=descriptor.cost_for(80, 20),
                ),
            ]
        )
        for step in steps:
            if isinstance(step, ProviderCallError):
                raise step
            if isinstance(step, StreamCompleted):
                yield step
            else:
                yield ContentDelta(content=step)


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def ledger(counter_store: InMemoryCounterStore) -> UsageLedger:
    return UsageLedger(counter_store)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture
def service(
    registry: ModelRegistry,
    gateway: FakeGateway,
    ledger: UsageLedger,
    counter_store: InMemoryCounterStore,
) -> AIService:
    return AIService(
        registry=registry,
        gateway=gateway,
        ledger=ledger,
        cache=ResponseCache(counter_store),
    )


@pytest.fixture
def admission(counter_store: InMemoryCounterStore, ledger: UsageLedger) -> AIRateLimit:
    return AIRateLimit(RateLimiter(counter_store), ledger)


@pytest.fixture
def gateway_factory() -> type[FakeGateway]:
    """FakeGateway class, for tests that need a custom set of configured providers."""
    return FakeGateway
