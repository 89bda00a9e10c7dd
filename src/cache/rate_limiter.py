"""Sliding-window rate limiter with a block period after exhaustion."""

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import BaseModel, Field

from src.cache.counter_store import CounterStore

logger = logging.getLogger(__name__)


class RateLimitResult(BaseModel):
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of remaining requests in the window.
        reset_at: When the next point frees up (or the block ends).
        limit: The maximum number of requests allowed per window.
        retry_after_seconds: Seconds to wait before retrying (0 when allowed).
        blocked: Whether the rejection comes from an active block period.
    """

    allowed: bool
    remaining: int = Field(ge=0)
    reset_at: datetime
    limit: int = Field(gt=0)
    retry_after_seconds: int = Field(default=0, ge=0)
    blocked: bool = False


class RateLimiter:
    """Per-key sliding-window limiter on a CounterStore.

    Algorithm:
    1. If a block marker exists for the key, deny with its remaining TTL.
    2. Record the hit in the sliding log (atomic trim + add + count).
    3. If the log is already full, the hit is discarded and, when a block
       duration is configured, the key is blocked for that long. The block
       resets the log, so the full budget is back once the block ends.

    When the store fails: returns allowed=True (degraded mode, logs warning).
    Key format: rate:{resource}:{subject} and rate:block:{resource}:{subject}

    Args:
        store: CounterStore used for window logs and block markers.
        clock: Epoch-seconds clock. Defaults to time.time.
    """

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time) -> None:
        self._store: CounterStore = store
        self._clock: Callable[[], float] = clock

    async def check_rate_limit(
        self,
        subject: str,
        resource: str,
        limit: int,
        window_seconds: int,
        block_seconds: Optional[int] = None,
    ) -> RateLimitResult:
        """Consume one point for `subject` on `resource` if the window allows it.

        Args:
            subject: Identity the limit applies to (e.g. a user id).
            resource: Resource name (e.g. "ai:codeReview").
            limit: Maximum requests per window.
            window_seconds: Window duration in seconds.
            block_seconds: Block duration applied once the window is exhausted.

        Returns:
            RateLimitResult with allowed, remaining, reset_at, limit, retry_after.
        """
        now = self._clock()
        now_dt = datetime.fromtimestamp(now, tz=timezone.utc)

        try:
            blocked_for = await self._store.blocked_for(self._block_key(subject, resource))
            if blocked_for > 0:
                retry_after = max(1, math.ceil(blocked_for))
                logger.info(
                    f"rate_limit_blocked: subject={subject}, resource={resource}, "
                    f"retry_after={retry_after}s"
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=now_dt + timedelta(seconds=blocked_for),
                    limit=limit,
                    retry_after_seconds=retry_after,
                    blocked=True,
                )

            hit = await self._store.window_hit(
                self._key(subject, resource), now, window_seconds, limit
            )
        except Exception as e:
            logger.warning(
                f"rate_limit_check_error: subject={subject}, resource={resource}, error={str(e)}"
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit,
                reset_at=now_dt + timedelta(seconds=window_seconds),
                limit=limit,
            )

        window_reset = max(0.0, hit.oldest_at + window_seconds - now)

        if hit.accepted:
            remaining = max(0, limit - hit.count)
            logger.info(
                f"rate_limit_check: subject={subject}, resource={resource}, "
                f"count={hit.count}, limit={limit}, allowed=True, remaining={remaining}"
            )
            return RateLimitResult(
                allowed=True,
                remaining=remaining,
                reset_at=now_dt + timedelta(seconds=window_reset),
                limit=limit,
            )

        wait = float(block_seconds) if block_seconds else window_reset
        if block_seconds:
            try:
                await self._store.block(
                    self._block_key(subject, resource),
                    block_seconds,
                    reset_key=self._key(subject, resource),
                )
            except Exception as e:
                logger.warning(
                    f"rate_limit_block_error: subject={subject}, resource={resource}, "
                    f"error={str(e)}"
                )

        retry_after = max(1, math.ceil(wait))
        logger.warning(
            f"rate_limit_exceeded: subject={subject}, resource={resource}, "
            f"limit={limit}, retry_after={retry_after}s"
        )
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=now_dt + timedelta(seconds=wait),
            limit=limit,
            retry_after_seconds=retry_after,
            blocked=bool(block_seconds),
        )

    async def peek(self, subject: str, resource: str, limit: int, window_seconds: int) -> int:
        """Remaining points in the window without consuming one (0 while blocked)."""
        try:
            if await self._store.blocked_for(self._block_key(subject, resource)) > 0:
                return 0
            used = await self._store.window_count(
                self._key(subject, resource), self._clock(), window_seconds
            )
        except Exception as e:
            logger.warning(
                f"rate_limit_peek_error: subject={subject}, resource={resource}, error={str(e)}"
            )
            return limit
        return max(0, limit - used)

    def _key(self, subject: str, resource: str) -> str:
        return f"rate:{resource}:{subject}"

    def _block_key(self, subject: str, resource: str) -> str:
        return f"rate:block:{resource}:{subject}"
