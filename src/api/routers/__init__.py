"""FastAPI routers for the DevLink AI API."""

from src.api.routers.ai import router as ai_router
from src.api.routers.health import router as health_router

__all__ = [
    "ai_router",
    "health_router",
]
