"""DevLink AI endpoints: chat, prompt-template helpers and usage introspection."""

import logging
from typing import AsyncIterator, Union

from fastapi import APIRouter, Depends, Query, Response, status
from starlette.responses import StreamingResponse

from src.ai.admission import AdmissionResult, AIRateLimit
from src.ai.exceptions import AIServiceError
from src.ai.models import (
    ChatResponse,
    ModelInfo,
    TokenUsageReport,
    UsageStats,
)
from src.ai.service import AIService
from src.api.dependencies import Identity, get_ai_rate_limit, get_ai_service, get_identity
from src.api.schemas.ai import (
    CacheClearResponse,
    ChatRequest,
    CodeReviewRequest,
    DebugRequest,
    LearningRequest,
    ProjectAdviceRequest,
    RecommendationRequest,
    StreamChunk,
)
from src.providers.base import ContentDelta
from src.routing.models import ModelHealth, ModelRecommendation, UsageContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/ai", tags=["ai"])


async def _admit(
    rate_limit: AIRateLimit, identity: Identity, context: str, response: Response
) -> AdmissionResult:
    """Apply both admission gates and attach the remaining-budget headers."""
    admission = await rate_limit.enforce(identity.user_id, context)
    response.headers.update(admission.headers())
    return admission


@router.post("/chat", response_model=ChatResponse, status_code=status.HTTP_200_OK)
async def chat(
    body: ChatRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> ChatResponse:
    """Answer a message with the best available model for the context."""
    await _admit(rate_limit, identity, body.context, response)
    return await service.chat(
        identity.user_id,
        body.message,
        body.context,
        body.user_profile,
        requested_model=body.model,
        history=[turn.model_dump() for turn in body.history],
        plan=identity.plan,
    )


@router.post("/chat/stream", status_code=status.HTTP_200_OK)
async def stream_chat(
    body: ChatRequest,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> StreamingResponse:
    """Stream an answer via Server-Sent Events.

    Request errors, and failures before the first chunk, are returned as
    regular HTTP errors. Only failures after the stream has opened arrive
    as SSE error events.

    SSE event types:
    - {"type": "content", "content": "..."} - text delta
    - {"type": "done", "response": {...}} - final envelope with usage and cost
    - {"type": "error", "error": "...", "content": "..."} - failure after the stream opened

    Args:
        body: Chat request.
        identity: Caller identity from the request headers.
        service: AI orchestrator.
        rate_limit: Admission gates.

    Returns:
        text/event-stream response carrying the rate-limit headers.
    """
    admission = await rate_limit.enforce(identity.user_id, body.context)
    chat_plan = await service.prepare_stream(
        identity.user_id,
        body.message,
        body.context,
        body.user_profile,
        requested_model=body.model,
        history=[turn.model_dump() for turn in body.history],
        plan=identity.plan,
    )
    stream = service.stream_prepared(chat_plan)
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = None

    def _frame(event: Union[ContentDelta, ChatResponse]) -> str:
        if isinstance(event, ContentDelta):
            chunk = StreamChunk(type="content", content=event.content)
        else:
            chunk = StreamChunk(type="done", response=event)
        return f"data: {chunk.model_dump_json()}\n\n"

    async def event_generator() -> AsyncIterator[str]:
        try:
            if first is not None:
                yield _frame(first)
            async for event in stream:
                yield _frame(event)
        except AIServiceError as e:
            logger.warning(
                f"ai_stream_error: user={identity.user_id}, error={e.error_code}, "
                f"message={e.message}"
            )
            chunk = StreamChunk(type="error", error=e.error_code, content=e.message)
            yield f"data: {chunk.model_dump_json()}\n\n"
        finally:
            await stream.aclose()

    return StreamingResponse(
        event_generator(), media_type="text/event-stream", headers=admission.headers()
    )


@router.post("/code-review", response_model=ChatResponse)
async def code_review(
    body: CodeReviewRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> ChatResponse:
    """Review a code snippet for bugs, style and performance.

    Admission runs against the codeReview context (20 per hour, 30 minute
    block once exhausted).

    Args:
        body: Code, language and optional review focus.
        response: Outgoing response; receives the X-RateLimit-* headers.
        identity: Caller resolved from the identity headers.
        service: Shared AIService.
        rate_limit: Admission dependency.

    Returns:
        ChatResponse with the review and routing metadata.
    """
    await _admit(rate_limit, identity, "codeReview", response)
    return await service.code_review(
        identity.user_id,
        body.code,
        body.language,
        body.user_profile,
        focus=body.focus,
        plan=identity.plan,
        requested_model=body.model,
    )


@router.post("/debug", response_model=ChatResponse)
async def debug_code(
    body: DebugRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> ChatResponse:
    """Explain an error message against the code that produced it.

    Args:
        body: Failing code, the error text and the language.
        response: Outgoing response; receives the X-RateLimit-* headers.
        identity: Caller resolved from the identity headers.
        service: Shared AIService.
        rate_limit: Admission dependency.

    Returns:
        ChatResponse with the diagnosis and a suggested fix.
    """
    await _admit(rate_limit, identity, "debugging", response)
    return await service.debug_code(
        identity.user_id,
        body.code,
        body.error,
        body.language,
        body.user_profile,
        plan=identity.plan,
        requested_model=body.model,
    )


@router.post("/learning", response_model=ChatResponse)
async def learning_help(
    body: LearningRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> ChatResponse:
    """Teach a topic at the requested level (learning context).

    Returns:
        ChatResponse with the explanation.
    """
    await _admit(rate_limit, identity, "learning", response)
    return await service.learning_help(
        identity.user_id,
        body.topic,
        body.user_profile,
        level=body.level,
        focus=body.focus,
        plan=identity.plan,
        requested_model=body.model,
    )


@router.post("/project-advice", response_model=ChatResponse)
async def project_advice(
    body: ProjectAdviceRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> ChatResponse:
    """Advise on a project description (projectHelp context).

    Args:
        body: Project description plus optional project id and aspect.
        response: Outgoing response; receives the X-RateLimit-* headers.
        identity: Caller resolved from the identity headers.
        service: Shared AIService.
        rate_limit: Admission dependency.

    Returns:
        ChatResponse with the advice.
    """
    await _admit(rate_limit, identity, "projectHelp", response)
    return await service.project_advice(
        identity.user_id,
        body.project_description,
        body.user_profile,
        project_id=body.project_id,
        aspect=body.aspect,
        plan=identity.plan,
        requested_model=body.model,
    )


@router.get("/models", response_model=list[ModelInfo])
async def list_models(
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
) -> list[ModelInfo]:
    """Models available on the caller's plan."""
    return service.get_available_models(identity.plan)


@router.post("/model-recommendations", response_model=list[ModelRecommendation])
async def model_recommendations(
    body: RecommendationRequest,
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
) -> list[ModelRecommendation]:
    """Rank the caller's accessible models for a usage context.

    Args:
        body: Target context and optional user profile.
        identity: Caller resolved from the identity headers.
        service: Shared AIService.

    Returns:
        Recommendations ordered by routing score, best first.
    """
    return await service.get_model_recommendations(
        identity.user_id, body.context, body.user_profile, identity.plan
    )


@router.get("/models/health", response_model=list[ModelHealth])
async def models_health(service: AIService = Depends(get_ai_service)) -> list[ModelHealth]:
    """Live health, load and latency per registered model."""
    return service.get_models_health()


@router.get("/contexts", response_model=list[str])
async def contexts(service: AIService = Depends(get_ai_service)) -> list[str]:
    """Usage contexts accepted by the chat endpoints."""
    return service.get_available_contexts()


@router.get("/token-usage", response_model=TokenUsageReport)
async def token_usage(
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
) -> TokenUsageReport:
    """Today's per-model token usage against the plan's ceilings.

    Returns:
        TokenUsageReport with used, limit and remaining per model, plus
        the next reset time.
    """
    return await service.get_token_usage(identity.user_id, identity.plan)


@router.get("/stats", response_model=UsageStats)
async def usage_stats(
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
) -> UsageStats:
    """Today's and this month's usage summary for the caller."""
    return await service.get_usage_stats(identity.user_id)


@router.get("/rate-limit", response_model=AdmissionResult)
async def rate_limit_status(
    response: Response,
    context: UsageContext = Query(default="general"),
    identity: Identity = Depends(get_identity),
    rate_limit: AIRateLimit = Depends(get_ai_rate_limit),
) -> AdmissionResult:
    """Current budget on both admission gates, without consuming a point."""
    result = await rate_limit.get_status(identity.user_id, context)
    response.headers.update(result.headers())
    return result


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    identity: Identity = Depends(get_identity),
    service: AIService = Depends(get_ai_service),
) -> CacheClearResponse:
    """Flush the response cache (administrative)."""
    deleted = await service.clear_cache()
    logger.info(f"ai_cache_cleared: user={identity.user_id}, deleted={deleted}")
    return CacheClearResponse(deleted=deleted)
