"""Redis-backed counters, rate limiting and response caching."""

from src.cache.client import RedisManager
from src.cache.counter_store import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    create_counter_store,
)
from src.cache.rate_limiter import RateLimiter, RateLimitResult
from src.cache.response_cache import ResponseCache

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RateLimiter",
    "RateLimitResult",
    "RedisCounterStore",
    "RedisManager",
    "ResponseCache",
    "create_counter_store",
]
