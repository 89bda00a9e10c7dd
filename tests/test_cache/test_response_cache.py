"""Unit tests for ResponseCache in src/cache/response_cache.py."""

from unittest.mock import AsyncMock

import pytest
from fakeredis import FakeAsyncRedis

from src.cache.client import RedisManager
from src.cache.counter_store import InMemoryCounterStore, RedisCounterStore
from src.cache.response_cache import ResponseCache

ENVELOPE = {"content": "Use a list comprehension.", "tokens": 42, "model": "gpt-4o-mini"}


class TestResponseCache:
    """Exact-repeat caching."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, store) -> None:
        cache = ResponseCache(store)
        assert await cache.get("u1", "How do I loop?", "general", "gpt-4o-mini") is None

        await cache.set("u1", "How do I loop?", "general", "gpt-4o-mini", ENVELOPE)

        assert await cache.get("u1", "How do I loop?", "general", "gpt-4o-mini") == ENVELOPE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id,message,context,model_id",
        [
            ("u2", "How do I loop?", "general", "gpt-4o-mini"),
            ("u1", "How do I loop? ", "general", "gpt-4o-mini"),
            ("u1", "How do I loop?", "learning", "gpt-4o-mini"),
            ("u1", "How do I loop?", "general", "qwen3-coder"),
        ],
    )
    async def test_key_covers_user_message_context_and_model(
        self, store, user_id, message, context, model_id
    ) -> None:
        cache = ResponseCache(store)
        await cache.set("u1", "How do I loop?", "general", "gpt-4o-mini", ENVELOPE)

        assert await cache.get(user_id, message, context, model_id) is None

    @pytest.mark.asyncio
    async def test_clear_flushes_only_cached_responses(self, store) -> None:
        cache = ResponseCache(store)
        await cache.set("u1", "a", "general", "gpt-4o-mini", ENVELOPE)
        await cache.set("u2", "b", "debugging", "deepseek-r1", ENVELOPE)
        await store.hincr("usage:model:u1:gpt-4o-mini:2026-01-01", {"tokens_used": 1})

        deleted = await cache.clear()

        assert deleted == 2
        assert await cache.get("u1", "a", "general", "gpt-4o-mini") is None
        assert await store.hgetall("usage:model:u1:gpt-4o-mini:2026-01-01") != {}

    @pytest.mark.asyncio
    async def test_ttl_applied_in_redis(
        self, redis_manager: RedisManager, fake_redis: FakeAsyncRedis
    ) -> None:
        cache = ResponseCache(RedisCounterStore(redis_manager), ttl_seconds=120)
        await cache.set("u1", "hello", "general", "gpt-4o-mini", ENVELOPE)

        keys = await fake_redis.keys("test:ai:cache:u1:general:gpt-4o-mini:*")
        assert len(keys) == 1
        assert 0 < await fake_redis.ttl(keys[0]) <= 120


class TestResponseCacheFailures:
    """Store errors are treated as misses."""

    @pytest.mark.asyncio
    async def test_get_error_is_a_miss(self) -> None:
        store = InMemoryCounterStore()
        store.get_json = AsyncMock(side_effect=RuntimeError("down"))  # type: ignore[method-assign]
        cache = ResponseCache(store)

        assert await cache.get("u1", "hello", "general", "gpt-4o-mini") is None

    @pytest.mark.asyncio
    async def test_set_error_is_swallowed(self, unavailable_redis_manager) -> None:
        cache = ResponseCache(RedisCounterStore(unavailable_redis_manager))
        await cache.set("u1", "hello", "general", "gpt-4o-mini", ENVELOPE)
