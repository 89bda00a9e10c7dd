"""Shared fixtures for cache layer tests."""

from typing import AsyncGenerator

import pytest
from fakeredis import FakeAsyncRedis

from src.cache.client import RedisManager
from src.cache.counter_store import CounterStore, InMemoryCounterStore, RedisCounterStore


@pytest.fixture
async def fake_redis() -> AsyncGenerator[FakeAsyncRedis, None]:
    """Fresh fakeredis client (decode_responses=True), flushed and closed after each test."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    pool = getattr(client, "connection_pool", None)
    if pool is not None:
        await pool.disconnect(inuse_connections=True)
    await client.aclose()


@pytest.fixture
async def redis_manager(fake_redis: FakeAsyncRedis) -> AsyncGenerator[RedisManager, None]:
    """RedisManager already "connected" to fakeredis, keys prefixed with "test:"."""
    manager = RedisManager(redis_url="redis://fake:6379/0", key_prefix="test:")
    manager._client = fake_redis
    manager._available = True
    yield manager
    await manager.close()


@pytest.fixture
def unavailable_redis_manager() -> RedisManager:
    """RedisManager with Redis disabled: get_client() is always None."""
    return RedisManager(redis_url=None, key_prefix="test:")


@pytest.fixture(params=["redis", "memory"])
def store(request, redis_manager: RedisManager) -> CounterStore:
    """Each CounterStore backend in turn (Redis via fakeredis, then in-process)."""
    if request.param == "redis":
        return RedisCounterStore(redis_manager)
    return InMemoryCounterStore()
