"""Counter store abstraction shared by the rate limiter, usage ledger and response cache.

Two backends:
- RedisCounterStore: shared across processes; every mutation is a single
  Redis command or a MULTI/EXEC pipeline.
- InMemoryCounterStore: single-process fallback guarded by an asyncio.Lock.
  Counters are lost on restart and are not shared between workers.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.cache.client import RedisManager

logger = logging.getLogger(__name__)


class WindowHit(BaseModel):
    """Outcome of recording one hit in a sliding-window log.

    Args:
        accepted: Whether the hit fit inside the window budget (and was kept).
        count: Hits inside the window after this call (rejected hits excluded).
        oldest_at: Epoch seconds of the oldest hit still inside the window.
    """

    accepted: bool
    count: int = Field(ge=0)
    oldest_at: float


class CounterStore(ABC):
    """Minimal key/counter store used by quota and admission components."""

    backend: str = "abstract"

    @abstractmethod
    async def hincr(self, key: str, increments: dict[str, float]) -> dict[str, float]:
        """Atomically add each increment to its hash field (creating the hash).

        Returns:
            All fields of the hash after the increment.
        """

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, float]:
        """Return every numeric field of a hash ({} when absent)."""

    @abstractmethod
    async def window_hit(
        self, key: str, now: float, window_seconds: int, limit: int
    ) -> WindowHit:
        """Record a hit in a sliding window of `window_seconds`, admitting at most `limit`."""

    @abstractmethod
    async def window_count(self, key: str, now: float, window_seconds: int) -> int:
        """Count hits currently inside the window without recording one."""

    @abstractmethod
    async def block(self, key: str, seconds: int, reset_key: Optional[str] = None) -> None:
        """Mark `key` as blocked for `seconds`, dropping the `reset_key` window log with it."""

    @abstractmethod
    async def blocked_for(self, key: str) -> float:
        """Seconds left on a block (0.0 when not blocked)."""

    @abstractmethod
    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        """Fetch a JSON document (None when absent or expired)."""

    @abstractmethod
    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store a JSON document with a TTL."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with `prefix`. Returns the number deleted."""


class RedisCounterStore(CounterStore):
    """Counter store on Redis, shared by every worker process.

    Key format: {redis prefix}{key}

    Attributes:
        _redis_manager: RedisManager instance for Redis operations.
    """

    backend = "redis"

    def __init__(self, redis_manager: RedisManager) -> None:
        self._redis_manager: RedisManager = redis_manager

    def _key(self, key: str) -> str:
        return self._redis_manager.key(key)

    async def _client(self):  # type: ignore[no-untyped-def]
        client = await self._redis_manager.get_client()
        if client is None:
            raise RuntimeError("Redis counter store is unavailable")
        return client

    async def hincr(self, key: str, increments: dict[str, float]) -> dict[str, float]:
        client = await self._client()
        full_key = self._key(key)
        async with client.pipeline(transaction=True) as pipe:  # type: ignore[union-attr]
            for field, amount in increments.items():
                pipe.hincrbyfloat(full_key, field, amount)  # type: ignore[union-attr]
            pipe.hgetall(full_key)  # type: ignore[union-attr]
            results = await pipe.execute()  # type: ignore[union-attr]
        return {field: float(value) for field, value in results[-1].items()}

    async def hgetall(self, key: str) -> dict[str, float]:
        client = await self._client()
        raw = await client.hgetall(self._key(key))  # type: ignore[misc, union-attr]
        return {field: float(value) for field, value in raw.items()}

    async def window_hit(
        self, key: str, now: float, window_seconds: int, limit: int
    ) -> WindowHit:
        client = await self._client()
        full_key = self._key(key)
        member = f"{now:.6f}:{uuid4().hex}"

        # Trim, add and count in one transaction so two concurrent hits are
        # serialized and never both observe the last free slot.
        async with client.pipeline(transaction=True) as pipe:  # type: ignore[union-attr]
            pipe.zremrangebyscore(full_key, 0, now - window_seconds)  # type: ignore[union-attr]
            pipe.zadd(full_key, {member: now})  # type: ignore[union-attr]
            pipe.zcard(full_key)  # type: ignore[union-attr]
            pipe.zrange(full_key, 0, 0, withscores=True)  # type: ignore[union-attr]
            pipe.expire(full_key, window_seconds)  # type: ignore[union-attr]
            results = await pipe.execute()  # type: ignore[union-attr]

        count: int = int(results[2])
        oldest: list[tuple[str, float]] = results[3]
        oldest_at = float(oldest[0][1]) if oldest else now

        if count > limit:
            await client.zrem(full_key, member)  # type: ignore[misc, union-attr]
            return WindowHit(accepted=False, count=count - 1, oldest_at=oldest_at)
        return WindowHit(accepted=True, count=count, oldest_at=oldest_at)

    async def window_count(self, key: str, now: float, window_seconds: int) -> int:
        client = await self._client()
        return int(
            await client.zcount(self._key(key), now - window_seconds, "+inf")  # type: ignore[misc, union-attr]
        )

    async def block(self, key: str, seconds: int, reset_key: Optional[str] = None) -> None:
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:  # type: ignore[union-attr]
            pipe.set(self._key(key), "1", ex=seconds)  # type: ignore[union-attr]
            if reset_key is not None:
                pipe.delete(self._key(reset_key))  # type: ignore[union-attr]
            await pipe.execute()  # type: ignore[union-attr]

    async def blocked_for(self, key: str) -> float:
        client = await self._client()
        ttl_ms: int = await client.pttl(self._key(key))  # type: ignore[misc, union-attr]
        return max(ttl_ms, 0) / 1000.0

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        client = await self._client()
        raw = await client.get(self._key(key))  # type: ignore[misc, union-attr]
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"counter_store_decode_error: key={key}, error={str(e)}")
            return None

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        client = await self._client()
        await client.set(self._key(key), json.dumps(value), ex=ttl_seconds)  # type: ignore[misc, union-attr]

    async def delete_prefix(self, prefix: str) -> int:
        client = await self._client()
        pattern = f"{self._key(prefix)}*"
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await client.scan(cursor, match=pattern, count=100)  # type: ignore[misc, union-attr]
            if keys:
                deleted += await client.delete(*keys)  # type: ignore[misc, union-attr]
            if cursor == 0:
                break
        return deleted


class InMemoryCounterStore(CounterStore):
    """Process-local counter store.

    All operations hold one asyncio.Lock, which serializes concurrent
    coroutines in this process. Not shared across processes.

    Window logs, blocks and documents carry an expiry like their Redis
    counterparts. Expired entries are swept on writes, at most once per
    `sweep_interval` seconds, so quiet users do not accumulate.

    Args:
        clock: Epoch-seconds clock. Defaults to time.time.
        sweep_interval: Minimum seconds between expiry sweeps.
    """

    backend = "memory"

    def __init__(
        self, clock: Callable[[], float] = time.time, sweep_interval: float = 60.0
    ) -> None:
        self._clock: Callable[[], float] = clock
        self._sweep_interval: float = sweep_interval
        self._next_sweep: float = 0.0
        self._hashes: dict[str, dict[str, float]] = {}
        # key -> (expires_at, hit timestamps)
        self._windows: dict[str, tuple[float, deque[float]]] = {}
        self._blocks: dict[str, float] = {}
        self._documents: dict[str, tuple[float, str]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    def _sweep(self) -> None:
        """Drop expired windows, blocks and documents. Caller holds the lock."""
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        for key in [k for k, (expires_at, _) in self._windows.items() if expires_at <= now]:
            del self._windows[key]
        for key in [k for k, until in self._blocks.items() if until <= now]:
            del self._blocks[key]
        for key in [k for k, (expires_at, _) in self._documents.items() if expires_at <= now]:
            del self._documents[key]

    async def hincr(self, key: str, increments: dict[str, float]) -> dict[str, float]:
        async with self._lock:
            fields = self._hashes.setdefault(key, {})
            for field, amount in increments.items():
                fields[field] = fields.get(field, 0.0) + amount
            return dict(fields)

    async def hgetall(self, key: str) -> dict[str, float]:
        async with self._lock:
            return dict(self._hashes.get(key, {}))

    async def window_hit(
        self, key: str, now: float, window_seconds: int, limit: int
    ) -> WindowHit:
        async with self._lock:
            self._sweep()
            _, hits = self._windows.get(key, (0.0, deque()))
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                if not hits:
                    return WindowHit(accepted=False, count=0, oldest_at=now)
                self._windows[key] = (hits[-1] + window_seconds, hits)
                return WindowHit(accepted=False, count=len(hits), oldest_at=hits[0])
            hits.append(now)
            self._windows[key] = (now + window_seconds, hits)
            return WindowHit(accepted=True, count=len(hits), oldest_at=hits[0])

    async def window_count(self, key: str, now: float, window_seconds: int) -> int:
        async with self._lock:
            entry = self._windows.get(key)
            if entry is None:
                return 0
            return sum(1 for hit in entry[1] if hit > now - window_seconds)

    async def block(self, key: str, seconds: int, reset_key: Optional[str] = None) -> None:
        async with self._lock:
            self._sweep()
            self._blocks[key] = self._clock() + seconds
            if reset_key is not None:
                self._windows.pop(reset_key, None)

    async def blocked_for(self, key: str) -> float:
        async with self._lock:
            until = self._blocks.get(key)
            if until is None:
                return 0.0
            remaining = until - self._clock()
            if remaining <= 0:
                del self._blocks[key]
                return 0.0
            return remaining

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            entry = self._documents.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= self._clock():
                del self._documents[key]
                return None
            return json.loads(raw)

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        async with self._lock:
            self._sweep()
            self._documents[key] = (self._clock() + ttl_seconds, json.dumps(value))

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            deleted = 0
            for store in (self._hashes, self._windows, self._blocks, self._documents):
                stale = [k for k in store if k.startswith(prefix)]
                for k in stale:
                    del store[k]  # type: ignore[attr-defined]
                deleted += len(stale)
            return deleted


async def create_counter_store(redis_manager: Optional[RedisManager]) -> CounterStore:
    """Pick the shared Redis store when reachable, else the in-process store.

    Args:
        redis_manager: Optional RedisManager. None or unreachable Redis
            selects InMemoryCounterStore.

    Returns:
        A ready-to-use CounterStore.
    """
    if redis_manager is not None:
        client = await redis_manager.get_client()
        if client is not None:
            logger.info("counter_store_selected: backend=redis")
            return RedisCounterStore(redis_manager)

    logger.warning(
        "counter_store_degraded_mode: backend=memory, "
        "limits are enforced per process only"
    )
    return InMemoryCounterStore()
