"""FastAPI dependency injection for identity, Redis and AI services."""

import logging
from typing import Optional

from fastapi import Request
from pydantic import BaseModel

from src.ai.admission import AIRateLimit
from src.ai.exceptions import AuthenticationRequiredError
from src.ai.service import AIService
from src.cache.client import RedisManager
from src.routing.token_limits import DEFAULT_PLAN, TOKEN_LIMITS

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """Caller identity resolved by the upstream auth layer."""

    user_id: str
    plan: str = DEFAULT_PLAN


def get_redis_manager(request: Request) -> Optional[RedisManager]:
    """
    Get Redis manager from app.state.redis.

    Returns None when Redis is not configured or unavailable (in-process counters).
    """
    redis_manager = getattr(request.app.state, "redis", None)
    if redis_manager is None:
        logger.debug("get_redis_manager: redis not configured")
    return redis_manager


def get_identity(request: Request) -> Identity:
    """
    Resolve the caller from the X-User-Id and X-User-Plan headers.

    Unknown plans fall back to the free plan.

    Raises:
        AuthenticationRequiredError: If X-User-Id is missing.
    """
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        logger.info(f"identity_missing: path={request.url.path}")
        raise AuthenticationRequiredError()

    plan = request.headers.get("X-User-Plan", DEFAULT_PLAN).strip().lower()
    if plan not in TOKEN_LIMITS:
        logger.info(f"identity_unknown_plan: user={user_id}, plan={plan}, fallback={DEFAULT_PLAN}")
        plan = DEFAULT_PLAN
    return Identity(user_id=user_id, plan=plan)


def get_ai_service(request: Request) -> AIService:
    """
    Get the long-lived AIService from app.state.ai_service.

    Raises:
        RuntimeError: If the lifespan has not initialized the service.
    """
    service = getattr(request.app.state, "ai_service", None)
    if service is None:
        logger.error("get_ai_service_error: reason=service_not_initialized")
        raise RuntimeError("AI service not initialized. Ensure the app lifespan has run.")
    return service


def get_ai_rate_limit(request: Request) -> AIRateLimit:
    """
    Get the admission gate from app.state.ai_rate_limit.

    Raises:
        RuntimeError: If the lifespan has not initialized the gate.
    """
    rate_limit = getattr(request.app.state, "ai_rate_limit", None)
    if rate_limit is None:
        logger.error("get_ai_rate_limit_error: reason=rate_limit_not_initialized")
        raise RuntimeError("AI rate limit not initialized. Ensure the app lifespan has run.")
    return rate_limit
