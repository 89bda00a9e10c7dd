"""Tests for the application factory and lifespan wiring."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI

from src.ai.admission import AIRateLimit
from src.ai.service import AIService
from src.api.app import create_app, lifespan
from src.settings import Settings


class TestLifespan:
    @pytest.mark.asyncio
    async def test_lifespan_without_redis_uses_in_process_counters(self) -> None:
        settings = Settings(openai_api_key="sk-test", openrouter_api_key=None, redis_url=None)
        app = FastAPI()

        with patch("src.api.app.load_settings", return_value=settings):
            async with lifespan(app):
                assert app.state.redis is None
                assert isinstance(app.state.ai_service, AIService)
                assert isinstance(app.state.ai_rate_limit, AIRateLimit)
                assert app.state.ai_service.configured_providers == {"openai"}

    @pytest.mark.asyncio
    async def test_lifespan_with_unreachable_redis_degrades(self) -> None:
        settings = Settings(openai_api_key="sk-test", redis_url="redis://down:6379/0")
        unreachable = AsyncMock()
        unreachable.ping = AsyncMock(side_effect=ConnectionRefusedError("refused"))
        app = FastAPI()

        with patch("src.api.app.load_settings", return_value=settings), patch(
            "src.cache.client.aioredis.from_url", return_value=unreachable
        ):
            async with lifespan(app):
                assert app.state.redis is None
                status = await app.state.ai_rate_limit.get_status("u1", "general")
                assert status.window.remaining == 50

    def test_create_app_registers_routes(self) -> None:
        app = create_app()
        paths = {route.path for route in app.routes}

        assert {"/health", "/ready", "/v1/ai/chat", "/v1/ai/chat/stream"} <= paths
        assert "/v1/ai/rate-limit" in paths
