"""Response envelopes and reports returned by the AI service."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.usage.models import DailyTokenSummary, MonthlyUsage, UsageRecord


class RoutingInfo(BaseModel):
    """Routing transparency for one chat call.

    Args:
        candidates: Ordered candidate list the router produced.
        attempted: Models whose Gateway call was actually made, in order.
        skipped: Models passed over before any Gateway call (plan/quota gate).
        requested_model: Model explicitly requested by the caller, if any.
        scores: Router total score per ranked model.
    """

    candidates: list[str]
    attempted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    requested_model: Optional[str] = None
    scores: dict[str, float] = Field(default_factory=dict)


class ChatResponse(BaseModel):
    """Normalized response envelope for every chat operation."""

    content: str
    tokens: int = Field(ge=0)
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost: float = Field(ge=0.0)
    model: str
    model_name: str
    timestamp: datetime
    context: str
    used_fallback: bool = False
    original_model: Optional[str] = None
    routing_info: RoutingInfo
    cached: bool = False
    partial: bool = False
    response_time_ms: float = Field(default=0.0, ge=0.0)


class ModelInfo(BaseModel):
    """Public view of a model available on a plan."""

    id: str
    name: str
    provider: str
    premium_required: bool
    daily_token_limit: int
    max_tokens: int
    cost_per_1k_input: float
    cost_per_1k_output: float
    capabilities: list[str]
    context_specialties: list[str]
    configured: bool


class ModelTokenUsage(BaseModel):
    """Today's token usage of one model against its plan ceiling.

    `limit` and `remaining` are -1 when unlimited, in which case
    `percentage` is 0.
    """

    model: str
    name: str
    used: int = Field(ge=0)
    limit: int
    remaining: int
    percentage: float = Field(ge=0.0)
    unlimited: bool = False


class TokenUsageReport(BaseModel):
    """Per-model token usage for one user today."""

    plan: str
    day: date
    reset_time: datetime
    total_tokens: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0.0)
    models: list[ModelTokenUsage] = Field(default_factory=list)


class UsageStats(BaseModel):
    """Daily and monthly usage statistics with the configured limits."""

    daily: DailyTokenSummary
    today_by_context: dict[str, UsageRecord] = Field(default_factory=dict)
    monthly: MonthlyUsage
    favorite_context: Optional[str] = None
    limits: dict[str, Any] = Field(default_factory=dict)
