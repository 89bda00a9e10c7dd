"""AI endpoint schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.ai.models import ChatResponse
from src.routing.models import UsageContext, UserProfile


class HistoryTurn(BaseModel):
    """One prior conversation turn.

    System turns are accepted but never forwarded upstream.
    """

    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Send a message to DevLink AI.

    Args:
        message: User's message text (1-4,000 characters)
        context: Usage context ("general", "codeReview", "debugging", "learning", "projectHelp")
        model: Optional model id to try first
        history: Optional prior turns, oldest first
        user_profile: Optional skills, level and preferences
    """

    message: str = Field(..., min_length=1, max_length=4000)
    context: UsageContext = "general"
    model: Optional[str] = None
    history: list[HistoryTurn] = Field(default_factory=list)
    user_profile: Optional[UserProfile] = None


class CodeReviewRequest(BaseModel):
    code: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1, max_length=50)
    focus: str = "all"
    model: Optional[str] = None
    user_profile: Optional[UserProfile] = None


class DebugRequest(BaseModel):
    code: str = Field(..., min_length=1)
    error: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1, max_length=50)
    model: Optional[str] = None
    user_profile: Optional[UserProfile] = None


class LearningRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    level: Optional[str] = None
    focus: str = "all"
    model: Optional[str] = None
    user_profile: Optional[UserProfile] = None


class ProjectAdviceRequest(BaseModel):
    project_description: str = Field(..., min_length=1)
    project_id: Optional[str] = None
    aspect: str = "all"
    model: Optional[str] = None
    user_profile: Optional[UserProfile] = None


class RecommendationRequest(BaseModel):
    context: UsageContext = "general"
    user_profile: Optional[UserProfile] = None


class StreamChunk(BaseModel):
    """Server-Sent Events chunk for AI chat streaming.

    Args:
        type: "content" (text delta), "done" (final envelope) or "error"
        content: Text delta for content chunks, error message for error chunks
        response: Final envelope (done chunk only)
        error: Error code (error chunk only)
    """

    type: Literal["content", "done", "error"]
    content: str = ""
    response: Optional[ChatResponse] = None
    error: Optional[str] = None


class CacheClearResponse(BaseModel):
    deleted: int = Field(ge=0)
