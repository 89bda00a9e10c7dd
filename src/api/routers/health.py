"""Health check endpoints for liveness and readiness probes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from src.ai.service import AIService
from src.api.dependencies import get_ai_service, get_redis_manager
from src.api.schemas.common import HealthResponse, ServiceStatus
from src.cache.client import RedisManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Liveness check endpoint (always returns 200 OK).

    Returns immediately without checking dependencies.
    """
    logger.debug("health_check: status=ok")
    return HealthResponse(status="ok", version="0.1.0")


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    service: AIService = Depends(get_ai_service),
    redis_manager: Optional[RedisManager] = Depends(get_redis_manager),
) -> HealthResponse:
    """
    Readiness check endpoint with dependency health status.

    Requires at least one configured AI provider. Redis unavailability does
    NOT fail readiness: counters fall back to the in-process store and the
    response reports "degraded".

    Raises:
        HTTPException: 503 if no AI provider is configured.
    """
    services: dict[str, ServiceStatus] = {}
    overall = "ok"

    providers = sorted(service.configured_providers)
    for provider in ("openai", "openrouter"):
        services[f"provider:{provider}"] = ServiceStatus(
            status="configured" if provider in providers else "unavailable"
        )

    if redis_manager is not None:
        try:
            redis_health = await redis_manager.health_check()
        except Exception as e:
            logger.warning(f"readiness_check: redis=error, error={str(e)}")
            redis_health = {"status": "unavailable", "latency_ms": 0.0}
        if redis_health["status"] == "ok":
            services["redis"] = ServiceStatus(status="connected")
            logger.info(f"readiness_check: redis=connected, latency_ms={redis_health['latency_ms']}")
        else:
            services["redis"] = ServiceStatus(
                status="unavailable", error="Redis unreachable, using in-process counters"
            )
            overall = "degraded"
    else:
        services["redis"] = ServiceStatus(status="degraded", error="in-process counters")
        overall = "degraded"

    if not providers:
        logger.error("readiness_check: status=error, reason=no_providers")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No AI provider configured",
        )

    logger.info(f"readiness_check: status={overall}, providers={providers}")
    return HealthResponse(status=overall, version="0.1.0", services=services)
