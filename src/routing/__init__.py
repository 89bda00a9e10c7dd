"""Model catalog, plan limits and seven-signal model routing."""

from src.routing.model_registry import DEFAULT_MODELS, ModelRegistry
from src.routing.model_router import ModelRouter, RouterState
from src.routing.models import (
    ModelDescriptor,
    ModelScore,
    RoutingDecision,
    UserProfile,
)

__all__ = [
    "DEFAULT_MODELS",
    "ModelDescriptor",
    "ModelRegistry",
    "ModelRouter",
    "ModelScore",
    "RouterState",
    "RoutingDecision",
    "UserProfile",
]
