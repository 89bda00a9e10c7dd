"""Pydantic models for the daily usage ledger."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class UsageRecord(BaseModel):
    """Per-day counters for one (user, model) or (user, context) key.

    Absent keys are represented by an all-zero record so callers can do
    arithmetic without null checks.

    Args:
        tokens_used: Tokens consumed today.
        requests_count: Completed requests today.
        total_cost: USD spent today.
        errors: Requests that ended in an error.
        rate_limit_hits: Admission rejections (context ledger only).
        admitted: Requests admitted today, the daily ceiling counter (context
            ledger only). Counted at admission, so it also covers requests
            still in flight.
        total_response_time_ms: Sum of response times, for the running average.
    """

    tokens_used: int = Field(default=0, ge=0)
    requests_count: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    errors: int = Field(default=0, ge=0)
    rate_limit_hits: int = Field(default=0, ge=0)
    admitted: int = Field(default=0, ge=0)
    total_response_time_ms: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_response_time(self) -> float:
        """Running mean response time in ms.

        Equal to applying (old_avg * (n - 1) + sample) / n for each sample.
        """
        if self.requests_count == 0:
            return 0.0
        return self.total_response_time_ms / self.requests_count

    @classmethod
    def from_fields(cls, fields: dict[str, float]) -> "UsageRecord":
        """Build a record from raw counter-store hash fields."""
        return cls(
            tokens_used=int(round(fields.get("tokens_used", 0.0))),
            requests_count=int(round(fields.get("requests_count", 0.0))),
            total_cost=max(0.0, fields.get("total_cost", 0.0)),
            errors=int(round(fields.get("errors", 0.0))),
            rate_limit_hits=int(round(fields.get("rate_limit_hits", 0.0))),
            admitted=max(0, int(round(fields.get("admitted", 0.0)))),
            total_response_time_ms=max(0.0, fields.get("total_response_time_ms", 0.0)),
        )


class ModelUsageBreakdown(BaseModel):
    """Today's usage of a single model."""

    model: str
    tokens: int = Field(ge=0)
    requests: int = Field(ge=0)
    cost: float = Field(ge=0.0)


class DailyTokenSummary(BaseModel):
    """Totals across all models for one user and day."""

    day: date
    total_tokens: int = Field(default=0, ge=0)
    total_requests: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    model_breakdown: list[ModelUsageBreakdown] = Field(default_factory=list)


class ContextUsageBreakdown(BaseModel):
    """Monthly usage of a single usage context."""

    context: str
    requests: int = Field(ge=0)
    tokens: int = Field(ge=0)
    cost: float = Field(ge=0.0)


class MonthlyUsage(BaseModel):
    """Aggregated context-ledger usage for one calendar month."""

    year: int
    month: int = Field(ge=1, le=12)
    total_requests: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    average_response_time: float = Field(default=0.0, ge=0.0)
    total_errors: int = Field(default=0, ge=0)
    total_rate_limit_hits: int = Field(default=0, ge=0)
    context_breakdown: list[ContextUsageBreakdown] = Field(default_factory=list)

    @property
    def favorite_context(self) -> Optional[str]:
        """Context with the most requests this month, if any."""
        if not self.context_breakdown or self.context_breakdown[0].requests == 0:
            return None
        return self.context_breakdown[0].context
