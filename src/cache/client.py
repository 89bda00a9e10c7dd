"""Redis connection for the shared counter store."""

import logging
import time
from typing import Any, Optional

import redis.asyncio as aioredis

from src.settings import Settings

logger = logging.getLogger(__name__)

# Seconds to wait after a failed connect before trying Redis again
RECONNECT_INTERVAL_SECONDS: float = 5.0


class RedisManager:
    """Lazily connected Redis client shared by every counter, limiter and cache key.

    A failed connect is remembered for `reconnect_interval_seconds` so the
    admission hot path does not pay a connect timeout on every request while
    Redis is down. Callers treat a None client as "use the in-process store".

    Attributes:
        _redis_url: Connection URL, or None when Redis is disabled.
        _key_prefix: Namespace prepended to every counter key.
        _client: Connected client, once a ping has succeeded.
        _available: Whether the last connect attempt succeeded.
        _failed_at: Monotonic time of the last failed connect.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "devlink:",
        reconnect_interval_seconds: float = RECONNECT_INTERVAL_SECONDS,
    ) -> None:
        self._redis_url: Optional[str] = redis_url
        self._key_prefix: str = key_prefix
        self._reconnect_interval: float = reconnect_interval_seconds
        self._client: Optional[aioredis.Redis] = None
        self._available: bool = False
        self._failed_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisManager":
        return cls(redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix)

    @property
    def available(self) -> bool:
        return self._available and self._redis_url is not None

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    def key(self, name: str) -> str:
        """Namespaced Redis key for a counter store key."""
        return f"{self._key_prefix}{name}"

    def _cooling_down(self) -> bool:
        if self._failed_at is None:
            return False
        return time.monotonic() - self._failed_at < self._reconnect_interval

    async def get_client(self) -> Optional[aioredis.Redis]:
        """Connected client, or None when Redis is disabled or unreachable."""
        if self._redis_url is None:
            return None
        if self._client is not None and self._available:
            return self._client
        if self._cooling_down():
            return None

        client = aioredis.from_url(
            self._redis_url,
            decode_responses=True,
            socket_connect_timeout=5.0,
            socket_timeout=5.0,
            retry_on_timeout=True,
        )
        try:
            await client.ping()  # type: ignore[misc]
        except (aioredis.ConnectionError, aioredis.TimeoutError, OSError) as e:
            self._failed_at = time.monotonic()
            self._available = False
            self._client = None
            logger.warning(
                f"redis_unavailable: error={str(e)}, retry_in={self._reconnect_interval}s"
            )
            return None

        self._client = client
        self._available = True
        self._failed_at = None
        logger.info(f"redis_connected: url={self._redis_url[:20]}..., prefix={self._key_prefix}")
        return client

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
            logger.info("redis_closed: pool closed gracefully")
        except Exception as e:
            logger.warning(f"redis_close_error: error={str(e)}")
        finally:
            self._client = None
            self._available = False

    async def health_check(self) -> dict[str, Any]:
        """Ping Redis and report {"status", "latency_ms"}.

        Status is "not_configured", "ok" or "unavailable".
        """
        if self._redis_url is None:
            return {"status": "not_configured", "latency_ms": 0.0}

        start = time.monotonic()
        client = await self.get_client()
        if client is None:
            return {"status": "unavailable", "latency_ms": 0.0}
        try:
            await client.ping()  # type: ignore[misc]
        except Exception as e:
            logger.warning(f"redis_health_check_failed: error={str(e)}")
            self._available = False
            return {
                "status": "unavailable",
                "latency_ms": round((time.monotonic() - start) * 1000.0, 2),
            }
        return {"status": "ok", "latency_ms": round((time.monotonic() - start) * 1000.0, 2)}
