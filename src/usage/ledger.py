"""Daily usage ledger: per-model token counters and per-context request counters."""

import calendar
import logging
from datetime import date
from typing import Callable, Iterable, Optional

from src.cache.counter_store import CounterStore
from src.routing.models import USAGE_CONTEXTS
from src.usage.models import (
    ContextUsageBreakdown,
    DailyTokenSummary,
    ModelUsageBreakdown,
    MonthlyUsage,
    UsageRecord,
)

logger = logging.getLogger(__name__)


class UsageLedger:
    """Append/increment-only usage counters keyed by local calendar day.

    Two independent ledgers share one CounterStore:
    - model ledger: tokens/requests/cost per (user, model, day), used for
      daily token quotas.
    - context ledger: requests/tokens/cost/errors/rate-limit hits and response
      time per (user, context, day), used for the daily request ceiling.

    Every increment is a single atomic multi-field add, so concurrent
    requests for the same key never lose updates. Records are never deleted.

    Key format: usage:{model|context}:{user_id}:{id}:{YYYY-MM-DD}

    Args:
        store: Counter store backend.
        today: Clock returning the current local date. Defaults to date.today.
    """

    def __init__(self, store: CounterStore, today: Callable[[], date] = date.today) -> None:
        self._store: CounterStore = store
        self._today: Callable[[], date] = today

    def _day(self, day: Optional[date]) -> date:
        return day if day is not None else self._today()

    @staticmethod
    def _model_key(user_id: str, model_id: str, day: date) -> str:
        return f"usage:model:{user_id}:{model_id}:{day.isoformat()}"

    @staticmethod
    def _context_key(user_id: str, context: str, day: date) -> str:
        return f"usage:context:{user_id}:{context}:{day.isoformat()}"

    # ------------------------------------------------------------------
    # Model ledger
    # ------------------------------------------------------------------

    async def get_model_usage(
        self, user_id: str, model_id: str, day: Optional[date] = None
    ) -> UsageRecord:
        """Usage of one model on one day (zero record when absent)."""
        fields = await self._store.hgetall(self._model_key(user_id, model_id, self._day(day)))
        return UsageRecord.from_fields(fields)

    async def record_model_usage(
        self,
        user_id: str,
        model_id: str,
        tokens: int,
        cost: float,
        day: Optional[date] = None,
    ) -> UsageRecord:
        """Charge a completed request to a model's daily counters."""
        fields = await self._store.hincr(
            self._model_key(user_id, model_id, self._day(day)),
            {"tokens_used": tokens, "requests_count": 1, "total_cost": cost},
        )
        record = UsageRecord.from_fields(fields)
        logger.info(
            f"ledger_model_recorded: user={user_id}, model={model_id}, tokens={tokens}, "
            f"cost={cost:.6f}, daily_tokens={record.tokens_used}"
        )
        return record

    # ------------------------------------------------------------------
    # Context ledger
    # ------------------------------------------------------------------

    async def get_context_usage(
        self, user_id: str, context: str, day: Optional[date] = None
    ) -> UsageRecord:
        """Usage of one context on one day (zero record when absent)."""
        fields = await self._store.hgetall(
            self._context_key(user_id, context, self._day(day))
        )
        return UsageRecord.from_fields(fields)

    async def record_context_usage(
        self,
        user_id: str,
        context: str,
        tokens: int = 0,
        cost: float = 0.0,
        response_time_ms: float = 0.0,
        error: bool = False,
        day: Optional[date] = None,
    ) -> UsageRecord:
        """Count one completed request (successful or errored) against a context."""
        increments: dict[str, float] = {
            "requests_count": 1,
            "tokens_used": tokens,
            "total_cost": cost,
            "total_response_time_ms": response_time_ms,
        }
        if error:
            increments["errors"] = 1
        fields = await self._store.hincr(
            self._context_key(user_id, context, self._day(day)), increments
        )
        record = UsageRecord.from_fields(fields)
        logger.info(
            f"ledger_context_recorded: user={user_id}, context={context}, "
            f"requests_today={record.requests_count}, error={error}"
        )
        return record

    async def record_rate_limit_hit(
        self, user_id: str, context: str, day: Optional[date] = None
    ) -> UsageRecord:
        """Count one admission rejection for a context."""
        fields = await self._store.hincr(
            self._context_key(user_id, context, self._day(day)), {"rate_limit_hits": 1}
        )
        return UsageRecord.from_fields(fields)

    async def reserve_request(
        self, user_id: str, context: str, limit: int, day: Optional[date] = None
    ) -> tuple[bool, UsageRecord]:
        """Atomically take one of today's `limit` admissions for a context.

        The admitted counter is incremented first and rolled back when the
        new value overshoots `limit`, so two concurrent callers can never
        both take the last slot.

        Args:
            user_id: User the request belongs to.
            context: Usage context being admitted.
            limit: Daily request ceiling for the context.
            day: Ledger day. Defaults to today.

        Returns:
            (reserved, record) where record reflects the counter after the call.
        """
        key = self._context_key(user_id, context, self._day(day))
        record = UsageRecord.from_fields(await self._store.hincr(key, {"admitted": 1}))
        if record.admitted <= limit:
            return True, record

        record = UsageRecord.from_fields(await self._store.hincr(key, {"admitted": -1}))
        return False, record

    async def release_request(
        self, user_id: str, context: str, day: Optional[date] = None
    ) -> None:
        """Give back a slot taken by reserve_request for a request that never ran."""
        await self._store.hincr(
            self._context_key(user_id, context, self._day(day)), {"admitted": -1}
        )

    # ------------------------------------------------------------------
    # Aggregations
    # ------------------------------------------------------------------

    async def get_daily_token_summary(
        self, user_id: str, model_ids: Iterable[str], day: Optional[date] = None
    ) -> DailyTokenSummary:
        """Totals and per-model breakdown of today's token usage."""
        target = self._day(day)
        summary = DailyTokenSummary(day=target)
        for model_id in model_ids:
            record = await self.get_model_usage(user_id, model_id, target)
            summary.model_breakdown.append(
                ModelUsageBreakdown(
                    model=model_id,
                    tokens=record.tokens_used,
                    requests=record.requests_count,
                    cost=record.total_cost,
                )
            )
            summary.total_tokens += record.tokens_used
            summary.total_requests += record.requests_count
            summary.total_cost += record.total_cost
        return summary

    async def get_monthly_usage(
        self,
        user_id: str,
        year: int,
        month: int,
        contexts: Iterable[str] = USAGE_CONTEXTS,
    ) -> MonthlyUsage:
        """Aggregate the context ledger over a calendar month.

        The context breakdown is sorted by request count, busiest first.
        """
        days_in_month = calendar.monthrange(year, month)[1]
        usage = MonthlyUsage(year=year, month=month)
        total_response_time = 0.0

        for context in contexts:
            breakdown = ContextUsageBreakdown(context=context, requests=0, tokens=0, cost=0.0)
            for day_number in range(1, days_in_month + 1):
                record = await self.get_context_usage(
                    user_id, context, date(year, month, day_number)
                )
                breakdown.requests += record.requests_count
                breakdown.tokens += record.tokens_used
                breakdown.cost += record.total_cost
                usage.total_errors += record.errors
                usage.total_rate_limit_hits += record.rate_limit_hits
                total_response_time += record.total_response_time_ms
            usage.context_breakdown.append(breakdown)
            usage.total_requests += breakdown.requests
            usage.total_tokens += breakdown.tokens
            usage.total_cost += breakdown.cost

        if usage.total_requests:
            usage.average_response_time = total_response_time / usage.total_requests
        usage.context_breakdown.sort(key=lambda b: b.requests, reverse=True)
        return usage
