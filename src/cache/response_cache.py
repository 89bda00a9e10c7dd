"""Exact-repeat cache for AI response envelopes."""

import hashlib
import logging
from typing import Any, Optional

from src.cache.counter_store import CounterStore

logger = logging.getLogger(__name__)

# Default TTL: 1 hour
_DEFAULT_TTL: int = 3600

_PREFIX: str = "ai:cache:"


class ResponseCache:
    """Time-boxed cache keyed by (user, exact message, context, model).

    Failures are logged and treated as a miss; the cache never blocks a
    chat request.
    Key format: ai:cache:{user_id}:{context}:{model_id}:{sha256(message)}

    Attributes:
        _store: CounterStore holding the JSON envelopes.
        _ttl_seconds: Lifetime of each entry.
    """

    def __init__(self, store: CounterStore, ttl_seconds: int = _DEFAULT_TTL) -> None:
        self._store: CounterStore = store
        self._ttl_seconds: int = ttl_seconds

    async def get(
        self, user_id: str, message: str, context: str, model_id: str
    ) -> Optional[dict[str, Any]]:
        """Cached envelope for an exact repeat, or None on miss/error."""
        key = self._key(user_id, message, context, model_id)
        try:
            envelope = await self._store.get_json(key)
        except Exception as e:
            logger.warning(f"response_cache_get_error: key={key}, error={str(e)}")
            return None

        if envelope is None:
            logger.debug(f"response_cache_miss: user={user_id}, model={model_id}")
            return None
        logger.info(f"response_cache_hit: user={user_id}, context={context}, model={model_id}")
        return envelope

    async def set(
        self,
        user_id: str,
        message: str,
        context: str,
        model_id: str,
        envelope: dict[str, Any],
    ) -> None:
        """Store an envelope for later exact repeats."""
        key = self._key(user_id, message, context, model_id)
        try:
            await self._store.set_json(key, envelope, self._ttl_seconds)
        except Exception as e:
            logger.warning(f"response_cache_set_error: key={key}, error={str(e)}")

    async def clear(self) -> int:
        """Flush every cached response. Returns the number of entries removed."""
        deleted = await self._store.delete_prefix(_PREFIX)
        logger.info(f"response_cache_cleared: deleted={deleted}")
        return deleted

    @staticmethod
    def _key(user_id: str, message: str, context: str, model_id: str) -> str:
        digest = hashlib.sha256(message.encode("utf-8")).hexdigest()
        return f"{_PREFIX}{user_id}:{context}:{model_id}:{digest}"
