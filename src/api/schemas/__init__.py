"""API request/response schemas."""

from src.api.schemas.ai import (
    CacheClearResponse,
    ChatRequest,
    CodeReviewRequest,
    DebugRequest,
    HistoryTurn,
    LearningRequest,
    ProjectAdviceRequest,
    RecommendationRequest,
    StreamChunk,
)
from src.api.schemas.common import ErrorResponse, HealthResponse, ServiceStatus

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    "ServiceStatus",
    # AI
    "CacheClearResponse",
    "ChatRequest",
    "CodeReviewRequest",
    "DebugRequest",
    "HistoryTurn",
    "LearningRequest",
    "ProjectAdviceRequest",
    "RecommendationRequest",
    "StreamChunk",
]
