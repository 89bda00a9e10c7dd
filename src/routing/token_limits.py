"""Daily token ceilings per subscription plan and model.

A limit of -1 means unlimited; 0 means the model is unavailable on that plan.
"""

from datetime import datetime, timedelta
from typing import Optional

UNLIMITED: int = -1

DEFAULT_PLAN: str = "free"

# Plans that pass premium gating regardless of the table values.
PREMIUM_PLANS: frozenset[str] = frozenset({"premium", "pro"})

# Models gated behind a paid plan.
PREMIUM_ONLY_MODELS: frozenset[str] = frozenset({"gpt-4o"})

TOKEN_LIMITS: dict[str, dict[str, int]] = {
    "free": {
        "gpt-4o-mini": 3000,
        "gpt-3.5-turbo": 5000,
        "deepseek-r1": 50000,
        "qwen3-coder": 50000,
        "gpt-4o": 0,
    },
    "premium": {
        "gpt-4o-mini": 50000,
        "gpt-3.5-turbo": 75000,
        "deepseek-r1": 200000,
        "qwen3-coder": 200000,
        "gpt-4o": 50000,
    },
    "pro": {
        "gpt-4o-mini": UNLIMITED,
        "gpt-3.5-turbo": UNLIMITED,
        "deepseek-r1": UNLIMITED,
        "qwen3-coder": UNLIMITED,
        "gpt-4o": UNLIMITED,
    },
}


def _plan_table(plan: str) -> dict[str, int]:
    return TOKEN_LIMITS.get(plan, TOKEN_LIMITS[DEFAULT_PLAN])


def get_token_limit(model_id: str, plan: str = DEFAULT_PLAN) -> int:
    """Daily token ceiling for a model on a plan.

    Args:
        model_id: Registry model id (e.g. "gpt-4o-mini").
        plan: Subscription plan. Unknown plans fall back to the free table.

    Returns:
        Token ceiling, UNLIMITED (-1), or 0 when the model is not offered
        on the plan (unknown models included).
    """
    return _plan_table(plan).get(model_id, 0)


def requires_premium(model_id: str, plan: str = DEFAULT_PLAN) -> bool:
    """True when the plan is not premium/pro and the model is premium-only."""
    if plan in PREMIUM_PLANS:
        return False
    return model_id in PREMIUM_ONLY_MODELS


def get_available_models(plan: str = DEFAULT_PLAN) -> list[str]:
    """List the models a plan may use.

    Args:
        plan: Subscription plan.

    Returns:
        Model ids with a non-zero ceiling, in table order. Unlimited models
        are included.
    """
    return [
        model_id
        for model_id, limit in _plan_table(plan).items()
        if limit == UNLIMITED or limit > 0
    ]


def is_model_accessible(model_id: str, plan: str = DEFAULT_PLAN) -> bool:
    """Whether the plan may use the model at all (non-zero limit, premium gate passed)."""
    return get_token_limit(model_id, plan) != 0 and not requires_premium(model_id, plan)


def has_exceeded_limit(usage: int, model_id: str, plan: str = DEFAULT_PLAN) -> bool:
    """Check today's usage against the model's ceiling.

    Args:
        usage: Tokens already used today on this model.
        model_id: Registry model id.
        plan: Subscription plan.

    Returns:
        True once usage has reached the ceiling. Never True for unlimited
        models.
    """
    limit = get_token_limit(model_id, plan)
    if limit == UNLIMITED:
        return False
    return usage >= limit


def get_remaining_tokens(usage: int, model_id: str, plan: str = DEFAULT_PLAN) -> int:
    """Tokens left today for a model.

    Args:
        usage: Tokens already used today on this model.
        model_id: Registry model id.
        plan: Subscription plan.

    Returns:
        Remaining tokens (never negative), or UNLIMITED (-1).
    """
    limit = get_token_limit(model_id, plan)
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - usage)


def next_reset_time(now: Optional[datetime] = None) -> datetime:
    """Next local midnight, when daily counters roll over."""
    now = now or datetime.now()
    tomorrow = now.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day)
