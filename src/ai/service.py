"""AI service: validation, routing, cache-first fallback and usage accounting."""

import logging
import time
from datetime import date, datetime, timezone
from typing import AsyncIterator, Optional, Union

from src.ai.admission import limits_overview
from src.ai.exceptions import (
    AIServiceError,
    AuthenticationRequiredError,
    QuotaExceededError,
    UpstreamExhaustedError,
    UpstreamProviderError,
    ValidationError,
)
from src.ai.fallback import CandidateSkipped, FallbackResult, try_candidates
from src.ai.models import (
    ChatResponse,
    ModelInfo,
    ModelTokenUsage,
    RoutingInfo,
    TokenUsageReport,
    UsageStats,
)
from src.cache.counter_store import CounterStore
from src.cache.response_cache import ResponseCache
from src.prompts import (
    SYSTEM_PROMPTS,
    build_system_prompt,
    code_review_message,
    debug_message,
    learning_message,
    max_tokens_for,
    project_advice_message,
)
from src.providers.base import (
    ContentDelta,
    GatewayFailure,
    GatewaySuccess,
    ProviderCallError,
    StreamCompleted,
    estimate_message_tokens,
    estimate_tokens,
)
from src.providers.gateway import ProviderGateway
from src.routing.model_registry import ModelRegistry
from src.routing.model_router import ModelRouter, RouterState
from src.routing.models import (
    USAGE_CONTEXTS,
    ModelDescriptor,
    ModelHealth,
    ModelRecommendation,
    RoutingDecision,
    UserProfile,
)
from src.routing.token_limits import (
    DEFAULT_PLAN,
    UNLIMITED,
    get_available_models,
    get_remaining_tokens,
    get_token_limit,
    is_model_accessible,
    next_reset_time,
    requires_premium,
)
from src.settings import Settings
from src.usage.ledger import UsageLedger

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH: int = 4000

# Prompt overhead added to the message length when estimating tokens
_PROMPT_OVERHEAD_CHARS: int = 500

_HISTORY_ROLES: frozenset[str] = frozenset({"user", "assistant"})


def estimate_request_tokens(message: str) -> int:
    """Pre-flight token estimate used by the daily-token gate."""
    return (len(message) + _PROMPT_OVERHEAD_CHARS) // 4


def _seconds_until(moment: datetime) -> int:
    return max(1, int((moment - datetime.now()).total_seconds()))


class ChatPlan:
    """Everything resolved before the candidate loop of one request.

    Built by AIService.prepare_stream (and internally by chat) once the
    request has passed validation, the plan gate and routing.
    """

    def __init__(
        self,
        user_id: str,
        message: str,
        context: str,
        profile: UserProfile,
        plan: str,
        decision: RoutingDecision,
        usage: dict[str, int],
        history: list[dict[str, str]],
    ) -> None:
        self.user_id = user_id
        self.message = message
        self.context = context
        self.profile = profile
        self.plan = plan
        self.decision = decision
        self.usage = usage
        self.history = history
        self.estimated_tokens = estimate_request_tokens(message)
        self.attempted: list[str] = []
        self.skipped: list[str] = []
        self.started: float = time.monotonic()

    def routing_info(self) -> RoutingInfo:
        return RoutingInfo(
            candidates=list(self.decision.candidates),
            attempted=list(self.attempted),
            skipped=list(self.skipped),
            requested_model=self.decision.requested_model,
            scores={
                model_id: round(score.total, 4)
                for model_id, score in self.decision.scores.items()
            },
        )


class AIService:
    """Top-level AI entry point.

    One long-lived instance owns the router state; every dependency is
    injected so tests can swap the counter store and the gateway.

    Args:
        registry: Model catalog.
        gateway: Provider gateway.
        ledger: Daily usage ledger.
        cache: Exact-repeat response cache.
        router: Model router. Built on `registry` with a fresh RouterState when omitted.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        gateway: ProviderGateway,
        ledger: UsageLedger,
        cache: ResponseCache,
        router: Optional[ModelRouter] = None,
    ) -> None:
        self._registry: ModelRegistry = registry
        self._gateway: ProviderGateway = gateway
        self._ledger: UsageLedger = ledger
        self._cache: ResponseCache = cache
        self._router: ModelRouter = router if router is not None else ModelRouter(
            registry, RouterState()
        )

    @classmethod
    def from_settings(cls, settings: Settings, store: CounterStore) -> "AIService":
        """Wire the service from settings and a counter store."""
        registry = ModelRegistry()
        return cls(
            registry=registry,
            gateway=ProviderGateway.from_settings(settings),
            ledger=UsageLedger(store),
            cache=ResponseCache(store, ttl_seconds=settings.ai_cache_ttl_seconds),
            router=ModelRouter(registry, RouterState()),
        )

    @property
    def router(self) -> ModelRouter:
        return self._router

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    @property
    def configured_providers(self) -> set[str]:
        return self._gateway.configured_providers

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def _validate(
        self,
        user_id: Optional[str],
        message: str,
        context: str,
        requested_model: Optional[str],
    ) -> str:
        if not user_id:
            raise AuthenticationRequiredError()
        if not message or not message.strip():
            raise ValidationError("Message is required")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message too long ({len(message)} characters, max {MAX_MESSAGE_LENGTH})"
            )
        if context not in USAGE_CONTEXTS:
            raise ValidationError(f"Unknown usage context: {context}")
        if requested_model is not None and not self._registry.is_known_model(requested_model):
            raise ValidationError(f"Unknown model: {requested_model}")
        return user_id

    @staticmethod
    def _clean_history(history: Optional[list[dict[str, str]]]) -> list[dict[str, str]]:
        """Prior turns without system messages or malformed entries."""
        cleaned: list[dict[str, str]] = []
        for turn in history or []:
            role = turn.get("role")
            content = turn.get("content")
            if role in _HISTORY_ROLES and isinstance(content, str) and content:
                cleaned.append({"role": role, "content": content})
        return cleaned

    async def _read_model_usage(self, user_id: str, model_ids: list[str]) -> dict[str, int]:
        """Today's token usage per model. Read failures count as zero usage."""
        usage: dict[str, int] = {}
        for model_id in model_ids:
            try:
                record = await self._ledger.get_model_usage(user_id, model_id)
                usage[model_id] = record.tokens_used
            except Exception as e:
                logger.warning(
                    f"ledger_read_error: user={user_id}, model={model_id}, error={str(e)}"
                )
                usage[model_id] = 0
        return usage

    async def _prepare(
        self,
        user_id: Optional[str],
        message: str,
        context: str,
        user_profile: Optional[UserProfile],
        requested_model: Optional[str],
        history: Optional[list[dict[str, str]]],
        plan: str,
    ) -> ChatPlan:
        user_id = self._validate(user_id, message, context, requested_model)
        profile = user_profile or UserProfile()

        if requested_model is not None and not is_model_accessible(requested_model, plan):
            reason = (
                "requires a premium plan"
                if requires_premium(requested_model, plan)
                else f"is not available on the {plan} plan"
            )
            logger.info(
                f"ai_requested_model_denied: user={user_id}, model={requested_model}, plan={plan}"
            )
            raise QuotaExceededError(f"Model {requested_model} {reason}", model_id=requested_model)

        pool = self._registry.available(self._gateway.configured_providers)
        model_ids = [m.id for m in self._registry.all()]
        usage = await self._read_model_usage(user_id, model_ids)
        remaining_budget = {
            model_id: get_remaining_tokens(usage[model_id], model_id, plan)
            for model_id in model_ids
        }

        decision = self._router.rank(
            context,
            profile,
            plan,
            remaining_budget,
            user_id=user_id,
            requested_model=requested_model,
            models=pool,
        )
        if not decision.candidates:
            logger.error(f"ai_no_candidates: user={user_id}, context={context}, plan={plan}")
            raise AIServiceError("No AI models are available")

        return ChatPlan(
            user_id=user_id,
            message=message,
            context=context,
            profile=profile,
            plan=plan,
            decision=decision,
            usage=usage,
            history=self._clean_history(history),
        )

    def _gate(self, chat_plan: ChatPlan, model_id: str) -> Union[ModelDescriptor, CandidateSkipped]:
        """Plan access and daily-token checks for one candidate, before any provider call."""
        descriptor = self._registry.get(model_id)
        if descriptor is None:
            return CandidateSkipped(model_id, "unknown_model")
        if not is_model_accessible(model_id, chat_plan.plan):
            return CandidateSkipped(model_id, "plan_access")

        remaining = get_remaining_tokens(chat_plan.usage.get(model_id, 0), model_id, chat_plan.plan)
        if remaining != UNLIMITED and chat_plan.estimated_tokens > remaining:
            logger.info(
                f"ai_candidate_over_quota: user={chat_plan.user_id}, model={model_id}, "
                f"estimated={chat_plan.estimated_tokens}, remaining={remaining}"
            )
            return CandidateSkipped(model_id, "daily_token_limit")
        return descriptor

    def _messages(self, chat_plan: ChatPlan, descriptor: ModelDescriptor) -> list[dict[str, str]]:
        system_prompt = build_system_prompt(chat_plan.context, descriptor.id, chat_plan.profile)
        return (
            [{"role": "system", "content": system_prompt}]
            + chat_plan.history
            + [{"role": "user", "content": chat_plan.message}]
        )

    async def _cached(self, chat_plan: ChatPlan, model_id: str) -> Optional[ChatResponse]:
        envelope = await self._cache.get(
            chat_plan.user_id, chat_plan.message, chat_plan.context, model_id
        )
        if envelope is None:
            return None
        try:
            response = ChatResponse.model_validate(envelope)
        except ValueError as e:
            logger.warning(f"response_cache_invalid_envelope: model={model_id}, error={str(e)}")
            return None
        return response.model_copy(update={"cached": True})

    # ------------------------------------------------------------------
    # Bookkeeping (never fails the request)
    # ------------------------------------------------------------------

    async def _credit(
        self,
        chat_plan: ChatPlan,
        descriptor: ModelDescriptor,
        tokens: int,
        cost: float,
        response_time_ms: float,
    ) -> None:
        try:
            await self._ledger.record_model_usage(chat_plan.user_id, descriptor.id, tokens, cost)
            await self._ledger.record_context_usage(
                chat_plan.user_id,
                chat_plan.context,
                tokens=tokens,
                cost=cost,
                response_time_ms=response_time_ms,
            )
        except Exception as e:
            logger.warning(
                f"ledger_write_error: user={chat_plan.user_id}, model={descriptor.id}, "
                f"error={str(e)}"
            )

    async def _record_request_error(self, chat_plan: ChatPlan, response_time_ms: float) -> None:
        try:
            await self._ledger.record_context_usage(
                chat_plan.user_id,
                chat_plan.context,
                response_time_ms=response_time_ms,
                error=True,
            )
        except Exception as e:
            logger.warning(f"ledger_write_error: user={chat_plan.user_id}, error={str(e)}")

    def _record_success(self, chat_plan: ChatPlan, descriptor: ModelDescriptor, latency_ms: float) -> None:
        try:
            state = self._router.state
            state.record_success(descriptor.id, latency_ms, descriptor.expected_latency_ms)
            state.record_usage(chat_plan.user_id, descriptor.id)
        except Exception as e:
            logger.warning(f"router_state_error: model={descriptor.id}, error={str(e)}")

    def _record_failure(self, descriptor: ModelDescriptor, latency_ms: Optional[float]) -> None:
        try:
            self._router.state.record_failure(
                descriptor.id, latency_ms, descriptor.expected_latency_ms
            )
        except Exception as e:
            logger.warning(f"router_state_error: model={descriptor.id}, error={str(e)}")

    def _envelope(
        self,
        chat_plan: ChatPlan,
        descriptor: ModelDescriptor,
        index: int,
        content: str,
        input_tokens: int,
        output_tokens: int,
        partial: bool,
        response_time_ms: float,
    ) -> ChatResponse:
        primary = chat_plan.decision.candidates[0]
        return ChatResponse(
            content=content,
            tokens=input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=descriptor.cost_for(input_tokens, output_tokens),
            model=descriptor.id,
            model_name=descriptor.name,
            timestamp=datetime.now(timezone.utc),
            context=chat_plan.context,
            used_fallback=index > 0,
            original_model=primary if index > 0 else None,
            routing_info=chat_plan.routing_info(),
            partial=partial,
            response_time_ms=response_time_ms,
        )

    def _exhausted(self, chat_plan: ChatPlan, result: FallbackResult) -> AIServiceError:
        """Error for a request where no candidate produced a response."""
        last = result.last_failure
        if last is not None:
            return UpstreamExhaustedError(
                UpstreamProviderError(
                    last.message, last.kind, model_id=last.model_id, status_code=last.status_code
                ),
                attempted=[f.model_id for f in result.failures],
            )
        reset = next_reset_time()
        return QuotaExceededError(
            "Daily token limit reached for every available model",
            model_id=chat_plan.decision.primary,
            retry_after_seconds=_seconds_until(reset),
            reset_time=reset,
        )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        user_id: Optional[str],
        message: str,
        context: str = "general",
        user_profile: Optional[UserProfile] = None,
        requested_model: Optional[str] = None,
        history: Optional[list[dict[str, str]]] = None,
        plan: str = DEFAULT_PLAN,
    ) -> ChatResponse:
        """Answer one message with the best available model.

        Candidates from the router are tried in order. A cached envelope for
        an exact repeat is returned without any provider call or ledger
        write. Only the model that produced the final answer is charged.

        Args:
            user_id: Authenticated user id.
            message: User message (1..4000 characters).
            context: Usage context id.
            user_profile: Skills, level and preferences of the caller.
            requested_model: Model that must be tried first.
            history: Prior {role, content} turns; system turns are dropped.
            plan: Subscription plan id.

        Returns:
            ChatResponse envelope.

        Raises:
            AuthenticationRequiredError: No user id.
            ValidationError: Empty or oversized message, unknown model or context.
            QuotaExceededError: Requested model not on the plan, or every
                candidate blocked by its daily token ceiling.
            UpstreamExhaustedError: Every attempted provider call failed.
        """
        started = time.monotonic()
        chat_plan = await self._prepare(
            user_id, message, context, user_profile, requested_model, history, plan
        )

        async def attempt(
            model_id: str, index: int
        ) -> Union[ChatResponse, GatewayFailure, CandidateSkipped]:
            gated = self._gate(chat_plan, model_id)
            if isinstance(gated, CandidateSkipped):
                chat_plan.skipped.append(model_id)
                return gated
            descriptor = gated

            cached = await self._cached(chat_plan, model_id)
            if cached is not None:
                return cached

            chat_plan.attempted.append(model_id)
            state = self._router.state
            state.acquire(model_id)
            try:
                result = await self._gateway.chat_completion(
                    descriptor,
                    self._messages(chat_plan, descriptor),
                    max_tokens_for(chat_plan.context, descriptor.max_tokens),
                )
            finally:
                state.release(model_id)

            if isinstance(result, GatewayFailure):
                self._record_failure(descriptor, result.latency_ms)
                logger.warning(
                    f"ai_candidate_failed: user={chat_plan.user_id}, model={model_id}, "
                    f"kind={result.kind.value}, retryable={result.retryable}"
                )
                return result

            return await self._complete(chat_plan, descriptor, index, result, started)

        outcome: FallbackResult[ChatResponse] = await try_candidates(
            chat_plan.decision.candidates, attempt
        )
        if outcome.value is not None:
            return outcome.value

        error = self._exhausted(chat_plan, outcome)
        if outcome.failures:
            await self._record_request_error(chat_plan, (time.monotonic() - started) * 1000.0)
        logger.error(
            f"ai_chat_failed: user={chat_plan.user_id}, context={context}, "
            f"error={error.error_code}, attempted={chat_plan.attempted}"
        )
        raise error

    async def _complete(
        self,
        chat_plan: ChatPlan,
        descriptor: ModelDescriptor,
        index: int,
        result: GatewaySuccess,
        started: float,
    ) -> ChatResponse:
        response_time_ms = (time.monotonic() - started) * 1000.0
        response = self._envelope(
            chat_plan,
            descriptor,
            index,
            result.content,
            result.input_tokens,
            result.output_tokens,
            result.partial,
            response_time_ms,
        )
        self._record_success(chat_plan, descriptor, result.latency_ms)
        await self._credit(chat_plan, descriptor, response.tokens, response.cost, response_time_ms)
        await self._cache.set(
            chat_plan.user_id,
            chat_plan.message,
            chat_plan.context,
            descriptor.id,
            response.model_dump(mode="json"),
        )
        logger.info(
            f"ai_chat_completed: user={chat_plan.user_id}, context={chat_plan.context}, "
            f"model={descriptor.id}, tokens={response.tokens}, cost={response.cost:.6f}, "
            f"fallback={response.used_fallback}"
        )
        return response

    async def prepare_stream(
        self,
        user_id: Optional[str],
        message: str,
        context: str = "general",
        user_profile: Optional[UserProfile] = None,
        requested_model: Optional[str] = None,
        history: Optional[list[dict[str, str]]] = None,
        plan: str = DEFAULT_PLAN,
    ) -> ChatPlan:
        """Validate, gate and route a streaming request without calling a provider.

        Lets callers surface request errors before a response is committed.

        Returns:
            ChatPlan to pass to stream_prepared.

        Raises:
            AuthenticationRequiredError: No user id.
            ValidationError: Empty or oversized message, unknown model or context.
            QuotaExceededError: Requested model not on the plan.
            AIServiceError: No model is available at all.
        """
        return await self._prepare(
            user_id, message, context, user_profile, requested_model, history, plan
        )

    async def stream_chat(
        self,
        user_id: Optional[str],
        message: str,
        context: str = "general",
        user_profile: Optional[UserProfile] = None,
        requested_model: Optional[str] = None,
        history: Optional[list[dict[str, str]]] = None,
        plan: str = DEFAULT_PLAN,
    ) -> AsyncIterator[Union[ContentDelta, ChatResponse]]:
        """Stream an answer as ContentDelta events followed by the ChatResponse envelope.

        Fallback happens only before the first chunk. The ledger is always
        credited: when the consumer stops early or the stream breaks after
        content was forwarded, the partial usage is estimated and charged.

        Raises:
            Same errors as `chat`. UpstreamProviderError when a stream breaks
            after content was already forwarded.
        """
        chat_plan = await self.prepare_stream(
            user_id, message, context, user_profile, requested_model, history, plan
        )
        stream = self.stream_prepared(chat_plan)
        try:
            async for event in stream:
                yield event
        finally:
            await stream.aclose()

    async def stream_prepared(
        self, chat_plan: ChatPlan
    ) -> AsyncIterator[Union[ContentDelta, ChatResponse]]:
        """Run the candidate loop of a prepared streaming request.

        Raises:
            QuotaExceededError: Every candidate blocked by its daily token ceiling.
            UpstreamExhaustedError: Every candidate failed before its first chunk.
            UpstreamProviderError: A stream broke after content was forwarded.
        """
        started = chat_plan.started
        failures: list[GatewayFailure] = []
        state = self._router.state

        for index, model_id in enumerate(chat_plan.decision.candidates):
            gated = self._gate(chat_plan, model_id)
            if isinstance(gated, CandidateSkipped):
                chat_plan.skipped.append(model_id)
                continue
            descriptor = gated

            cached = await self._cached(chat_plan, model_id)
            if cached is not None:
                yield ContentDelta(content=cached.content)
                yield cached
                return

            chat_plan.attempted.append(model_id)
            messages = self._messages(chat_plan, descriptor)
            parts: list[str] = []
            completed: Optional[StreamCompleted] = None
            credited = False
            call_started = time.monotonic()

            state.acquire(model_id)
            try:
                async for event in self._gateway.stream_chat_completion(
                    descriptor, messages, max_tokens_for(chat_plan.context, descriptor.max_tokens)
                ):
                    if isinstance(event, StreamCompleted):
                        completed = event
                    else:
                        parts.append(event.content)
                        yield event
            except ProviderCallError as e:
                latency_ms = (time.monotonic() - call_started) * 1000.0
                self._record_failure(descriptor, latency_ms)
                if not parts:
                    logger.warning(
                        f"ai_stream_candidate_failed: user={chat_plan.user_id}, "
                        f"model={model_id}, kind={e.kind.value}"
                    )
                    failures.append(
                        GatewayFailure(
                            model_id=model_id,
                            kind=e.kind,
                            message=e.message,
                            status_code=e.status_code,
                            latency_ms=latency_ms,
                        )
                    )
                    continue
                await self._credit_partial(chat_plan, descriptor, messages, parts, started)
                credited = True
                raise UpstreamProviderError(
                    f"Stream from {model_id} was interrupted: {e.message}",
                    e.kind,
                    model_id=model_id,
                    status_code=e.status_code,
                ) from e
            finally:
                state.release(model_id)
                # Consumer stopped early: charge what was delivered
                if parts and completed is None and not credited:
                    await self._credit_partial(chat_plan, descriptor, messages, parts, started)

            if completed is None:
                continue

            response_time_ms = (time.monotonic() - started) * 1000.0
            response = self._envelope(
                chat_plan,
                descriptor,
                index,
                "".join(parts),
                completed.input_tokens,
                completed.output_tokens,
                completed.partial,
                response_time_ms,
            )
            self._record_success(chat_plan, descriptor, (time.monotonic() - call_started) * 1000.0)
            await self._credit(chat_plan, descriptor, response.tokens, response.cost, response_time_ms)
            if not response.partial:
                await self._cache.set(
                    chat_plan.user_id,
                    chat_plan.message,
                    chat_plan.context,
                    descriptor.id,
                    response.model_dump(mode="json"),
                )
            logger.info(
                f"ai_stream_completed: user={chat_plan.user_id}, model={descriptor.id}, "
                f"tokens={response.tokens}, usage_reported={completed.usage_reported}"
            )
            yield response
            return

        error = self._exhausted(chat_plan, FallbackResult(failures=failures))
        if failures:
            await self._record_request_error(chat_plan, (time.monotonic() - started) * 1000.0)
        logger.error(
            f"ai_stream_failed: user={chat_plan.user_id}, context={chat_plan.context}, "
            f"error={error.error_code}"
        )
        raise error

    async def _credit_partial(
        self,
        chat_plan: ChatPlan,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        parts: list[str],
        started: float,
    ) -> None:
        input_tokens = estimate_message_tokens(messages)
        output_tokens = estimate_tokens("".join(parts))
        cost = descriptor.cost_for(input_tokens, output_tokens)
        logger.info(
            f"ai_stream_partial_usage: user={chat_plan.user_id}, model={descriptor.id}, "
            f"estimated_tokens={input_tokens + output_tokens}"
        )
        await self._credit(
            chat_plan,
            descriptor,
            input_tokens + output_tokens,
            cost,
            (time.monotonic() - started) * 1000.0,
        )

    # ------------------------------------------------------------------
    # Prompt-template wrappers
    # ------------------------------------------------------------------

    async def code_review(
        self,
        user_id: Optional[str],
        code: str,
        language: str,
        user_profile: Optional[UserProfile] = None,
        focus: str = "all",
        plan: str = DEFAULT_PLAN,
        requested_model: Optional[str] = None,
    ) -> ChatResponse:
        """Review code through the codeReview prompt.

        Args:
            user_id: Caller, or None for an anonymous request.
            code: Source to review.
            language: Language name used in the prompt.
            user_profile: Optional profile that shapes routing and tone.
            focus: Aspect to concentrate on (e.g. "security"), or "all".
            plan: Subscription plan for token ceilings and premium gating.
            requested_model: Pin a model instead of routing.

        Returns:
            ChatResponse from `chat`.

        Raises:
            AIServiceError: Same failures as `chat`.
        """
        return await self.chat(
            user_id,
            code_review_message(code, language, focus),
            "codeReview",
            user_profile,
            requested_model=requested_model,
            plan=plan,
        )

    async def debug_code(
        self,
        user_id: Optional[str],
        code: str,
        error: str,
        language: str,
        user_profile: Optional[UserProfile] = None,
        plan: str = DEFAULT_PLAN,
        requested_model: Optional[str] = None,
    ) -> ChatResponse:
        """Diagnose `error` raised by `code` (debugging context).

        Args:
            user_id: Caller, or None for an anonymous request.
            code: Code that fails.
            error: Error message or traceback.
            language: Language name used in the prompt.
            user_profile: Optional profile that shapes routing and tone.
            plan: Subscription plan.
            requested_model: Pin a model instead of routing.

        Returns:
            ChatResponse from `chat`.
        """
        return await self.chat(
            user_id,
            debug_message(code, error, language),
            "debugging",
            user_profile,
            requested_model=requested_model,
            plan=plan,
        )

    async def learning_help(
        self,
        user_id: Optional[str],
        topic: str,
        user_profile: Optional[UserProfile] = None,
        level: Optional[str] = None,
        focus: str = "all",
        plan: str = DEFAULT_PLAN,
        requested_model: Optional[str] = None,
    ) -> ChatResponse:
        """Explain `topic` at `level` through the learning prompt."""
        return await self.chat(
            user_id,
            learning_message(topic, level, focus),
            "learning",
            user_profile,
            requested_model=requested_model,
            plan=plan,
        )

    async def project_advice(
        self,
        user_id: Optional[str],
        project_description: str,
        user_profile: Optional[UserProfile] = None,
        project_id: Optional[str] = None,
        aspect: str = "all",
        plan: str = DEFAULT_PLAN,
        requested_model: Optional[str] = None,
    ) -> ChatResponse:
        """Advise on a project through the projectHelp prompt.

        Args:
            user_id: Caller, or None for an anonymous request.
            project_description: Free-text description of the project.
            user_profile: Optional profile that shapes routing and tone.
            project_id: Optional project reference included in the prompt.
            aspect: Part of the project to concentrate on, or "all".
            plan: Subscription plan.
            requested_model: Pin a model instead of routing.

        Returns:
            ChatResponse from `chat`.
        """
        return await self.chat(
            user_id,
            project_advice_message(project_description, project_id, aspect),
            "projectHelp",
            user_profile,
            requested_model=requested_model,
            plan=plan,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_available_models(self, plan: str = DEFAULT_PLAN) -> list[ModelInfo]:
        """List the registered models a plan may use.

        Args:
            plan: Subscription plan.

        Returns:
            ModelInfo per accessible model, in limit-table order. Premium-only
            models are left out for free plans; `configured` is False when
            the model's provider has no API key.
        """
        configured = self._gateway.configured_providers
        models: list[ModelInfo] = []
        for model_id in get_available_models(plan):
            descriptor = self._registry.get(model_id)
            if descriptor is None or requires_premium(model_id, plan):
                continue
            models.append(
                ModelInfo(
                    id=descriptor.id,
                    name=descriptor.name,
                    provider=descriptor.provider,
                    premium_required=descriptor.premium_required,
                    daily_token_limit=get_token_limit(model_id, plan),
                    max_tokens=descriptor.max_tokens,
                    cost_per_1k_input=descriptor.cost_per_1k_input,
                    cost_per_1k_output=descriptor.cost_per_1k_output,
                    capabilities=sorted(descriptor.capabilities),
                    context_specialties=sorted(descriptor.context_specialties),
                    configured=descriptor.provider in configured,
                )
            )
        return models

    async def get_model_recommendations(
        self,
        user_id: str,
        context: str = "general",
        user_profile: Optional[UserProfile] = None,
        plan: str = DEFAULT_PLAN,
    ) -> list[ModelRecommendation]:
        """Router's top models for this user and context. No side effects.

        Args:
            user_id: Caller whose remaining token budget is scored.
            context: Usage context to rank for.
            user_profile: Optional profile (skill level, preferences).
            plan: Subscription plan.

        Returns:
            Recommendations ordered best first.

        Raises:
            ValidationError: Unknown usage context.
        """
        if context not in USAGE_CONTEXTS:
            raise ValidationError(f"Unknown usage context: {context}")
        model_ids = [m.id for m in self._registry.all()]
        usage = await self._read_model_usage(user_id, model_ids)
        remaining_budget = {
            model_id: get_remaining_tokens(usage[model_id], model_id, plan)
            for model_id in model_ids
        }
        return self._router.recommend(
            context,
            user_profile or UserProfile(),
            plan,
            remaining_budget,
            user_id=user_id,
            models=self._registry.available(self._gateway.configured_providers),
        )

    @staticmethod
    def get_available_contexts() -> list[str]:
        """Usage contexts with a system prompt."""
        return list(SYSTEM_PROMPTS)

    def get_models_health(self) -> list[ModelHealth]:
        """Health score, current load and average latency per registered model."""
        return self._router.health_report(self._registry.all())

    async def get_token_usage(self, user_id: str, plan: str = DEFAULT_PLAN) -> TokenUsageReport:
        """Today's token usage per model on the plan.

        Args:
            user_id: Caller.
            plan: Subscription plan whose ceilings apply.

        Returns:
            TokenUsageReport with used/limit/remaining per accessible model,
            totals, and the next reset time.
        """
        today = date.today()
        report = TokenUsageReport(plan=plan, day=today, reset_time=next_reset_time())
        for model_id in get_available_models(plan):
            descriptor = self._registry.get(model_id)
            if descriptor is None:
                continue
            record = await self._ledger.get_model_usage(user_id, model_id, today)
            limit = get_token_limit(model_id, plan)
            unlimited = limit == UNLIMITED
            report.models.append(
                ModelTokenUsage(
                    model=model_id,
                    name=descriptor.name,
                    used=record.tokens_used,
                    limit=limit,
                    remaining=get_remaining_tokens(record.tokens_used, model_id, plan),
                    percentage=0.0
                    if unlimited
                    else round(min(100.0, record.tokens_used / limit * 100.0), 2),
                    unlimited=unlimited,
                )
            )
            report.total_tokens += record.tokens_used
            report.total_cost += record.total_cost
        return report

    async def get_usage_stats(self, user_id: str) -> UsageStats:
        """Daily and monthly usage plus the configured admission limits."""
        today = date.today()
        daily = await self._ledger.get_daily_token_summary(
            user_id, [m.id for m in self._registry.all()], today
        )
        by_context = {
            context: await self._ledger.get_context_usage(user_id, context, today)
            for context in USAGE_CONTEXTS
        }
        monthly = await self._ledger.get_monthly_usage(user_id, today.year, today.month)
        return UsageStats(
            daily=daily,
            today_by_context=by_context,
            monthly=monthly,
            favorite_context=monthly.favorite_context,
            limits=limits_overview(),
        )

    async def clear_cache(self) -> int:
        """Flush the response cache. Ledger and router state are untouched."""
        return await self._cache.clear()

    async def aclose(self) -> None:
        """Release provider connections. Called on application shutdown."""
        await self._gateway.aclose()
