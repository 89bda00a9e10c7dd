"""FastAPI REST API package."""

from src.api.app import create_app, lifespan
from src.api.dependencies import (
    get_ai_rate_limit,
    get_ai_service,
    get_identity,
    get_redis_manager,
)

__all__ = [
    "create_app",
    "lifespan",
    "get_ai_rate_limit",
    "get_ai_service",
    "get_identity",
    "get_redis_manager",
]
