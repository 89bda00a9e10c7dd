"""FastAPI application factory with async lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.ai.admission import AIRateLimit
from src.ai.service import AIService
from src.cache.client import RedisManager
from src.cache.counter_store import create_counter_store
from src.cache.rate_limiter import RateLimiter
from src.settings import Settings, load_settings

logger = logging.getLogger(__name__)


async def _connect_redis(settings: Settings) -> Optional[RedisManager]:
    """RedisManager when redis_url is set and reachable, else None."""
    if not settings.redis_url:
        logger.info("redis_skipped: redis_url not configured, counters are in-process")
        return None
    manager = RedisManager.from_settings(settings)
    try:
        client = await manager.get_client()
    except Exception as e:
        logger.exception(f"redis_init_error: error={str(e)}")
        return None
    if client is None:
        logger.warning("redis_connection_failed: falling back to in-process counters")
        return None
    logger.info(f"redis_initialized: prefix={settings.redis_key_prefix}")
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire the AI engine into app.state for the application's lifetime.

    Startup connects Redis when configured, picks the counter store (Redis,
    or in-process when Redis is unreachable) and builds the long-lived
    AIService and AIRateLimit on it. Shutdown closes the provider clients
    and the Redis pool.
    """
    settings = load_settings()
    app.state.settings = settings
    logger.info(f"app_startup: env={settings.app_env}")

    redis_manager = await _connect_redis(settings)
    app.state.redis = redis_manager

    store = await create_counter_store(redis_manager)
    service = AIService.from_settings(settings, store)
    app.state.ai_service = service
    app.state.ai_rate_limit = AIRateLimit(RateLimiter(store), service.ledger)
    logger.info(
        f"app_startup_complete: counter_store={store.backend}, "
        f"providers={sorted(service.configured_providers)}"
    )
    if not service.configured_providers:
        logger.warning("app_no_providers: set OPENAI_API_KEY or OPENROUTER_API_KEY")

    yield

    await service.aclose()
    if redis_manager is not None:
        await redis_manager.close()
    logger.info("app_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure FastAPI application instance.

    Returns:
        Configured FastAPI application with lifespan, CORS, routes, and middleware.
    """
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    app = FastAPI(
        title="DevLink AI API",
        version="0.1.0",
        description="Model routing, quota and fallback engine for DevLink AI",
        lifespan=lifespan,
    )

    # Middleware registration order: Starlette executes in LIFO (last registered = first to run).
    # Execution order: CORS -> ErrorHandler -> RequestID
    from src.api.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)

    from src.api.middleware.error_handler import error_handling_middleware

    app.middleware("http")(error_handling_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "X-DailyLimit-Limit",
            "X-DailyLimit-Remaining",
            "X-DailyLimit-Reset",
            "Retry-After",
            "X-Request-ID",
        ],
    )

    from src.api.routers import ai_router, health_router

    app.include_router(health_router, tags=["health"])
    app.include_router(ai_router)

    logger.info(
        "app_created: title=DevLink AI API, version=0.1.0, routers=2, "
        "middleware=cors,error_handler,request_id"
    )
    return app
