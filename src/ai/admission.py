"""Admission control for AI requests: sliding window plus daily ceiling."""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from src.ai.exceptions import AuthenticationRequiredError, RateLimitError, ValidationError
from src.cache.rate_limiter import RateLimiter
from src.routing.token_limits import next_reset_time
from src.usage.ledger import UsageLedger

logger = logging.getLogger(__name__)

# Points per usage context per window
WINDOW_LIMITS: dict[str, int] = {
    "general": 50,
    "codeReview": 20,
    "debugging": 30,
    "learning": 40,
    "projectHelp": 25,
}

WINDOW_SECONDS: int = 3600
BLOCK_SECONDS: int = 1800

# Hard request ceiling per usage context per day
DAILY_LIMITS: dict[str, int] = {
    "general": 200,
    "codeReview": 50,
    "debugging": 100,
    "learning": 150,
    "projectHelp": 75,
}


def limits_overview() -> dict[str, Any]:
    """Configured window and daily limits, per usage context."""
    return {
        "window": {
            context: {
                "points": points,
                "window_seconds": WINDOW_SECONDS,
                "block_seconds": BLOCK_SECONDS,
            }
            for context, points in WINDOW_LIMITS.items()
        },
        "daily": dict(DAILY_LIMITS),
    }


class GateStatus(BaseModel):
    """Budget left on one admission gate."""

    limit: int = Field(gt=0)
    remaining: int = Field(ge=0)
    reset_time: datetime


class AdmissionResult(BaseModel):
    """Outcome of an admission check.

    Args:
        allowed: Whether both gates passed.
        limit_kind: Gate that rejected the request ("window" or "daily").
        remaining: Smallest remaining budget across both gates.
        limit: Limit of the binding gate.
        reset_time: When the binding gate frees up.
        retry_after_seconds: Seconds to wait before retrying (0 when allowed).
        window: Sliding-window gate status.
        daily: Daily-ceiling gate status.
    """

    allowed: bool
    limit_kind: Optional[Literal["window", "daily"]] = None
    remaining: int = Field(ge=0)
    limit: int = Field(gt=0)
    reset_time: datetime
    retry_after_seconds: int = Field(default=0, ge=0)
    window: GateStatus
    daily: GateStatus

    def headers(self) -> dict[str, str]:
        """Machine-readable remaining-budget headers for both gates."""
        headers = {
            "X-RateLimit-Limit": str(self.window.limit),
            "X-RateLimit-Remaining": str(self.window.remaining),
            "X-RateLimit-Reset": str(int(self.window.reset_time.timestamp())),
            "X-DailyLimit-Limit": str(self.daily.limit),
            "X-DailyLimit-Remaining": str(self.daily.remaining),
            "X-DailyLimit-Reset": str(int(self.daily.reset_time.timestamp())),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


class AIRateLimit:
    """Two AND-ed admission gates keyed by (user, usage context).

    1. Sliding window: WINDOW_LIMITS points per hour, then a 30 minute block.
    2. Daily ceiling: DAILY_LIMITS requests per local day, counted by the
       context ledger's admitted field at admission time.

    The daily slot is reserved first so a request it rejects never consumes a
    window point. Rejections are counted in the ledger's rate_limit_hits.

    Args:
        limiter: Sliding-window limiter on the shared counter store.
        ledger: Usage ledger holding the per-context daily admission counter.
    """

    def __init__(self, limiter: RateLimiter, ledger: UsageLedger) -> None:
        self._limiter: RateLimiter = limiter
        self._ledger: UsageLedger = ledger

    @staticmethod
    def _validate(user_id: Optional[str], context: str) -> str:
        if not user_id:
            raise AuthenticationRequiredError()
        if context not in WINDOW_LIMITS:
            raise ValidationError(f"Unknown usage context: {context}")
        return user_id

    @staticmethod
    def _resource(context: str) -> str:
        return f"ai:{context}"

    def _daily_gate(self, limit: int, admitted: int) -> GateStatus:
        return GateStatus(
            limit=limit,
            remaining=max(0, limit - admitted),
            reset_time=next_reset_time().astimezone(timezone.utc),
        )

    async def _daily_status(self, user_id: str, context: str) -> GateStatus:
        limit = DAILY_LIMITS[context]
        try:
            record = await self._ledger.get_context_usage(user_id, context)
            admitted = record.admitted
        except Exception as e:
            logger.warning(
                f"admission_daily_read_error: user={user_id}, context={context}, error={str(e)}"
            )
            admitted = 0
        return self._daily_gate(limit, admitted)

    async def _reserve_daily(self, user_id: str, context: str) -> tuple[bool, GateStatus]:
        """Take a daily slot. Store errors admit the request."""
        limit = DAILY_LIMITS[context]
        try:
            reserved, record = await self._ledger.reserve_request(user_id, context, limit)
        except Exception as e:
            logger.warning(
                f"admission_daily_reserve_error: user={user_id}, context={context}, "
                f"error={str(e)}"
            )
            return True, self._daily_gate(limit, 1)
        return reserved, self._daily_gate(limit, record.admitted)

    async def _release_daily(self, user_id: str, context: str) -> None:
        try:
            await self._ledger.release_request(user_id, context)
        except Exception as e:
            logger.warning(
                f"admission_daily_release_error: user={user_id}, context={context}, "
                f"error={str(e)}"
            )

    async def check_rate_limit(self, user_id: Optional[str], context: str) -> AdmissionResult:
        """Admit or reject one AI request.

        The daily slot is reserved atomically first; a request it rejects
        never consumes a window point. A window rejection hands the daily
        slot back.

        Args:
            user_id: Authenticated user id.
            context: Usage context of the request.

        Returns:
            AdmissionResult for both gates.

        Raises:
            AuthenticationRequiredError: When no user id is supplied.
            ValidationError: When the context is unknown.
        """
        user_id = self._validate(user_id, context)
        now = datetime.now(timezone.utc)

        reserved, daily = await self._reserve_daily(user_id, context)
        if not reserved:
            window_left = await self._limiter.peek(
                user_id, self._resource(context), WINDOW_LIMITS[context], WINDOW_SECONDS
            )
            result = AdmissionResult(
                allowed=False,
                limit_kind="daily",
                remaining=0,
                limit=daily.limit,
                reset_time=daily.reset_time,
                retry_after_seconds=max(1, math.ceil((daily.reset_time - now).total_seconds())),
                window=GateStatus(
                    limit=WINDOW_LIMITS[context],
                    remaining=window_left,
                    reset_time=now + timedelta(seconds=WINDOW_SECONDS),
                ),
                daily=daily,
            )
            await self._record_rejection(user_id, context, result)
            return result

        window_check = await self._limiter.check_rate_limit(
            user_id,
            self._resource(context),
            WINDOW_LIMITS[context],
            WINDOW_SECONDS,
            block_seconds=BLOCK_SECONDS,
        )
        window = GateStatus(
            limit=window_check.limit,
            remaining=window_check.remaining,
            reset_time=window_check.reset_at,
        )

        if not window_check.allowed:
            await self._release_daily(user_id, context)
            daily = daily.model_copy(
                update={"remaining": min(daily.limit, daily.remaining + 1)}
            )
            result = AdmissionResult(
                allowed=False,
                limit_kind="window",
                remaining=0,
                limit=window.limit,
                reset_time=window.reset_time,
                retry_after_seconds=window_check.retry_after_seconds,
                window=window,
                daily=daily,
            )
            await self._record_rejection(user_id, context, result)
            return result

        binding = window if window.remaining <= daily.remaining else daily
        return AdmissionResult(
            allowed=True,
            remaining=binding.remaining,
            limit=binding.limit,
            reset_time=binding.reset_time,
            window=window,
            daily=daily,
        )


    async def enforce(self, user_id: Optional[str], context: str) -> AdmissionResult:
        """check_rate_limit, raising RateLimitError on rejection."""
        result = await self.check_rate_limit(user_id, context)
        if not result.allowed:
            kind = result.limit_kind or "window"
            if kind == "daily":
                message = f"Daily AI request limit of {result.limit} for {context} reached"
            else:
                message = (
                    f"Too many AI requests for {context}. "
                    f"Try again in {result.retry_after_seconds} seconds"
                )
            raise RateLimitError(
                message,
                limit_kind=kind,
                limit=result.limit,
                retry_after_seconds=result.retry_after_seconds,
                reset_time=result.reset_time,
            )
        return result

    async def get_status(self, user_id: Optional[str], context: str) -> AdmissionResult:
        """Current budget on both gates without consuming a point."""
        user_id = self._validate(user_id, context)
        now = datetime.now(timezone.utc)

        daily = await self._daily_status(user_id, context)
        window_left = await self._limiter.peek(
            user_id, self._resource(context), WINDOW_LIMITS[context], WINDOW_SECONDS
        )
        window = GateStatus(
            limit=WINDOW_LIMITS[context],
            remaining=window_left,
            reset_time=now + timedelta(seconds=WINDOW_SECONDS),
        )
        binding = window if window.remaining <= daily.remaining else daily
        return AdmissionResult(
            allowed=window.remaining > 0 and daily.remaining > 0,
            remaining=binding.remaining,
            limit=binding.limit,
            reset_time=binding.reset_time,
            window=window,
            daily=daily,
        )

    def limits_overview(self) -> dict[str, Any]:
        return limits_overview()

    async def _record_rejection(
        self, user_id: str, context: str, result: AdmissionResult
    ) -> None:
        logger.warning(
            f"ai_admission_rejected: user={user_id}, context={context}, "
            f"limit_kind={result.limit_kind}, retry_after={result.retry_after_seconds}s"
        )
        try:
            await self._ledger.record_rate_limit_hit(user_id, context)
        except Exception as e:
            logger.warning(
                f"admission_hit_record_error: user={user_id}, context={context}, error={str(e)}"
            )
