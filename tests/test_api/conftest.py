"""Shared fixtures for API router tests."""

from typing import AsyncGenerator, AsyncIterator, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient

from src.ai.admission import AIRateLimit
from src.ai.service import AIService
from src.api.app import create_app
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
from src.settings import Settings
from src.usage.ledger import UsageLedger


class StubGateway(ProviderGateway):
    """Gateway answering from memory instead of calling providers.

    `failing` models always fail with UPSTREAM_UNAVAILABLE. A stream for a
    model in `break_stream_after` emits that many chunks and then fails.
    """

    def __init__(self) -> None:
        super().__init__()
        self.providers: set[str] = {"openai", "openrouter"}
        self.failing: set[str] = set()
        self.break_stream_after: dict[str, int] = {}
        self.calls: list[str] = []

    @property
    def configured_providers(self) -> set[str]:
        return set(self.providers)

    async def chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> Union[GatewaySuccess, GatewayFailure]:
        self.calls.append(descriptor.id)
        if descriptor.id in self.failing:
            return GatewayFailure(
                model_id=descriptor.id,
                kind=ProviderErrorKind.UPSTREAM_UNAVAILABLE,
                message="HTTP 503: Service Unavailable",
                status_code=503,
            )
        return GatewaySuccess(
            model_id=descriptor.id,
            content=f"Answer from {descriptor.id}",
            input_tokens=120,
            output_tokens=30,
            latency_ms=5.0,
        )

    async def stream_chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> AsyncIterator[Union[ContentDelta, StreamCompleted]]:
        self.calls.append(descriptor.id)
        if descriptor.id in self.failing:
            raise ProviderCallError(
                ProviderErrorKind.UPSTREAM_UNAVAILABLE, "HTTP 503: Service Unavailable", 503
            )
        chunks = ["Streaming ", "answer ", "here"]
        break_after: Optional[int] = self.break_stream_after.get(descriptor.id)
        for index, chunk in enumerate(chunks):
            if break_after is not None and index == break_after:
                raise ProviderCallError(ProviderErrorKind.NETWORK_ERROR, "connection reset")
            yield ContentDelta(content=chunk)
        yield StreamCompleted(
            model_id=descriptor.id,
            input_tokens=60,
            output_tokens=15,
            cost=descriptor.cost_for(60, 15),
        )


@pytest.fixture
def user_headers() -> dict[str, str]:
    """Identity headers as set by the upstream auth layer."""
    return {"X-User-Id": "user-123", "X-User-Plan": "free"}


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def ai_service(stub_gateway: StubGateway, counter_store: InMemoryCounterStore) -> AIService:
    return AIService(
        registry=ModelRegistry(),
        gateway=stub_gateway,
        ledger=UsageLedger(counter_store),
        cache=ResponseCache(counter_store),
    )


@pytest.fixture
async def app(ai_service: AIService, counter_store: InMemoryCounterStore):
    """FastAPI application with app.state populated as the lifespan would.

    ASGITransport does not run the lifespan, so the service, admission gate
    and in-process counter store are wired here.

    Yields:
        Configured FastAPI application.
    """
    test_app = create_app()
    test_app.state.settings = Settings(openai_api_key="sk-test", openrouter_api_key="or-test")
    test_app.state.redis = None
    test_app.state.ai_service = ai_service
    test_app.state.ai_rate_limit = AIRateLimit(RateLimiter(counter_store), ai_service.ledger)

    yield test_app

    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient without identity headers.

    Args:
        app: FastAPI application fixture.

    Yields:
        An AsyncClient bound to the test app.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def user_client(app, user_headers: dict[str, str]) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient with identity headers pre-configured."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=user_headers
    ) as ac:
        yield ac
