"""Shared fixtures for provider client tests."""

import json
from typing import Any, Callable

import httpx
import pytest

from src.providers.openai import OpenAIClient
from src.routing.model_registry import ModelRegistry
from src.routing.models import ModelDescriptor


class RecordedTransport:
    """Route every outgoing request to `handler` and keep the requests.

    Provider clients get an httpx.AsyncClient on this transport through
    their `http_client` argument, so the openai SDK runs unmodified.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(500)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def http_mock() -> RecordedTransport:
    return RecordedTransport()


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


@pytest.fixture
def mini(registry: ModelRegistry) -> ModelDescriptor:
    model = registry.get("gpt-4o-mini")
    assert model is not None
    return model


@pytest.fixture
def deepseek(registry: ModelRegistry) -> ModelDescriptor:
    model = registry.get("deepseek-r1")
    assert model is not None
    return model


@pytest.fixture
def openai_client(http_mock: RecordedTransport) -> OpenAIClient:
    """OpenAIClient talking to the recorded transport."""
    return OpenAIClient(api_key="sk-test", http_client=http_mock.client())
