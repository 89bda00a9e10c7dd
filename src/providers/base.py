"""Base client for OpenAI-compatible chat-completion providers.

Every call returns a closed result type (GatewaySuccess | GatewayFailure)
so callers never inspect raw provider payloads.
"""

import logging
import time
from typing import Annotated, Any, AsyncIterator, ClassVar, Literal, Optional, Union

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from src.providers.errors import (
    ProviderErrorKind,
    classify_exception,
    parse_retry_after,
    status_error_message,
)
from src.routing.models import ModelDescriptor

logger = logging.getLogger(__name__)

# Sampling parameters shared by every provider
TEMPERATURE: float = 0.7
PRESENCE_PENALTY: float = 0.1
FREQUENCY_PENALTY: float = 0.1

PARTIAL_CONTENT_PREFIX: str = (
    "[Partial response: the model returned its reasoning but no final answer]\n\n"
)


class ProviderCallError(Exception):
    """Classified failure raised from streaming calls and response parsing."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        status_code: Optional[int] = None,
        retry_after_seconds: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind: ProviderErrorKind = kind
        self.message: str = message
        self.status_code: Optional[int] = status_code
        self.retry_after_seconds: Optional[int] = retry_after_seconds


class GatewaySuccess(BaseModel):
    """Normalized successful completion."""

    status: Literal["ok"] = "ok"
    model_id: str
    content: str
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    partial: bool = False
    latency_ms: float = Field(default=0.0, ge=0.0)

    @property
    def usage_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class GatewayFailure(BaseModel):
    """Normalized, classified failure."""

    status: Literal["error"] = "error"
    model_id: str
    kind: ProviderErrorKind
    message: str
    status_code: Optional[int] = None
    retry_after_seconds: Optional[int] = None
    latency_ms: float = Field(default=0.0, ge=0.0)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


GatewayResult = Annotated[Union[GatewaySuccess, GatewayFailure], Field(discriminator="status")]


class ContentDelta(BaseModel):
    """Incremental content from a streaming completion."""

    type: Literal["delta"] = "delta"
    content: str


class StreamCompleted(BaseModel):
    """Final usage/cost event of a streaming completion.

    Args:
        partial: True when the stream was cut short or only reasoning arrived.
        usage_reported: False when token counts are estimates.
    """

    type: Literal["completed"] = "completed"
    model_id: str
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    cost: float = Field(ge=0.0)
    partial: bool = False
    usage_reported: bool = True


StreamEvent = Annotated[Union[ContentDelta, StreamCompleted], Field(discriminator="type")]


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token)."""
    return max(0, len(text) // 4)


def estimate_message_tokens(messages: list[dict[str, str]]) -> int:
    return sum(estimate_tokens(m.get("content", "")) for m in messages)


def read_field(obj: Any, name: str) -> Any:
    """Read `name` from an SDK model (declared or extra field) or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class ProviderClient:
    """OpenAI-compatible chat-completions client on the openai SDK.

    The SDK owns the wire protocol (request encoding, SSE decoding, error
    responses). This class clamps parameters, normalizes results into the
    closed GatewaySuccess | GatewayFailure types and classifies failures.
    SDK retries are disabled; fallback across models is the caller's job.

    Args:
        api_key: Provider API key (never logged).
        base_url: API base URL.
        timeout: Per-call timeout in seconds. Timeouts are reported as
            network errors.
        http_client: Optional httpx.AsyncClient handed to the SDK.
    """

    provider_id: ClassVar[str] = "openai-compatible"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key: str = api_key
        self._base_url: str = base_url.rstrip("/")
        self._timeout: float = timeout
        self._http_client: Optional[httpx.AsyncClient] = http_client
        self._client: Optional[AsyncOpenAI] = None

    def _default_headers(self) -> dict[str, str]:
        """Extra headers sent with every request. Override for provider attribution."""
        return {}

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
                default_headers=self._default_headers() or None,
                http_client=self._http_client,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying SDK client, if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def build_params(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> dict[str, Any]:
        """Keyword arguments for `chat.completions.create`.

        `max_tokens` is clamped to the descriptor's ceiling.
        """
        return {
            "model": descriptor.provider_model_id,
            "messages": messages,
            "max_tokens": max(1, min(max_tokens, descriptor.max_tokens)),
            "temperature": TEMPERATURE,
            "presence_penalty": PRESENCE_PENALTY,
            "frequency_penalty": FREQUENCY_PENALTY,
        }

    def _reasoning_text(self, message: Any) -> str:
        """Reasoning text a model returned alongside (or instead of) content."""
        for name in ("reasoning_content", "reasoning"):
            value = read_field(message, name)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    def parse_completion(self, completion: Any) -> tuple[str, int, int, bool]:
        """Validate a ChatCompletion returned by the SDK.

        Returns:
            Tuple of (content, input_tokens, output_tokens, partial).

        Raises:
            ProviderCallError: INVALID_RESPONSE when choices, content or
                usage are missing.
        """
        choices = read_field(completion, "choices")
        if not choices:
            raise ProviderCallError(ProviderErrorKind.INVALID_RESPONSE, "response has no choices")

        message = read_field(choices[0], "message")
        if message is None:
            raise ProviderCallError(ProviderErrorKind.INVALID_RESPONSE, "choice has no message")

        usage = read_field(completion, "usage")
        if read_field(usage, "prompt_tokens") is None:
            raise ProviderCallError(ProviderErrorKind.INVALID_RESPONSE, "response has no usage")
        input_tokens = int(read_field(usage, "prompt_tokens") or 0)
        output_tokens = int(read_field(usage, "completion_tokens") or 0)

        content = read_field(message, "content")
        if isinstance(content, str) and content.strip():
            return content, input_tokens, output_tokens, False

        reasoning = self._reasoning_text(message)
        if reasoning:
            return PARTIAL_CONTENT_PREFIX + reasoning, input_tokens, output_tokens, True

        raise ProviderCallError(ProviderErrorKind.INVALID_RESPONSE, "response has empty content")

    def _call_error(self, error: Exception) -> ProviderCallError:
        """Classify an SDK or transport exception. Upstream bodies stay out of the message."""
        kind = classify_exception(error)
        if isinstance(error, openai.APIStatusError):
            return ProviderCallError(
                kind,
                status_error_message(error),
                status_code=error.status_code,
                retry_after_seconds=parse_retry_after(error.response.headers.get("retry-after")),
            )
        if isinstance(error, (openai.APITimeoutError, httpx.TimeoutException)):
            return ProviderCallError(kind, f"{self.provider_id} request timed out")
        return ProviderCallError(
            kind, f"{self.provider_id} request failed ({type(error).__name__})"
        )

    async def chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> Union[GatewaySuccess, GatewayFailure]:
        """Run one non-streaming completion and classify the outcome.

        Args:
            descriptor: Model to call.
            messages: OpenAI-style {role, content} messages.
            max_tokens: Requested output budget, clamped to the model ceiling.

        Returns:
            GatewaySuccess, or GatewayFailure carrying the classified error.
        """
        params = self.build_params(descriptor, messages, max_tokens)
        start = time.monotonic()

        try:
            completion = await self._get_client().chat.completions.create(**params)
            content, input_tokens, output_tokens, partial = self.parse_completion(completion)
        except Exception as e:
            error = e if isinstance(e, ProviderCallError) else self._call_error(e)
            logger.warning(
                f"provider_call_failed: provider={self.provider_id}, model={descriptor.id}, "
                f"kind={error.kind.value}, status={error.status_code}, "
                f"error={type(e).__name__}"
            )
            return GatewayFailure(
                model_id=descriptor.id,
                kind=error.kind,
                message=error.message,
                status_code=error.status_code,
                retry_after_seconds=error.retry_after_seconds,
                latency_ms=(time.monotonic() - start) * 1000.0,
            )

        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            f"provider_completion: provider={self.provider_id}, model={descriptor.id}, "
            f"input_tokens={input_tokens}, output_tokens={output_tokens}, "
            f"partial={partial}, latency_ms={latency_ms:.0f}"
        )
        return GatewaySuccess(
            model_id=descriptor.id,
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            partial=partial,
            latency_ms=latency_ms,
        )

    async def stream_chat_completion(
        self,
        descriptor: ModelDescriptor,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> AsyncIterator[Union[ContentDelta, StreamCompleted]]:
        """Stream a completion as ContentDelta events followed by one StreamCompleted.

        Usage comes from the final `include_usage` chunk; when upstream omits
        it, both counts are estimated and `usage_reported` is False.

        Raises:
            ProviderCallError: On HTTP errors, transport errors or a stream
                that ends without content.
        """
        params = self.build_params(descriptor, messages, max_tokens)
        input_tokens: Optional[int] = None
        output_tokens: Optional[int] = None
        emitted: list[str] = []
        reasoning: list[str] = []

        try:
            stream = await self._get_client().chat.completions.create(
                **params, stream=True, stream_options={"include_usage": True}
            )
            try:
                async for chunk in stream:
                    usage = read_field(chunk, "usage")
                    if usage is not None:
                        input_tokens = int(read_field(usage, "prompt_tokens") or 0)
                        output_tokens = int(read_field(usage, "completion_tokens") or 0)

                    for choice in read_field(chunk, "choices") or []:
                        delta = read_field(choice, "delta")
                        text = read_field(delta, "content")
                        if text:
                            emitted.append(text)
                            yield ContentDelta(content=text)
                        thought = self._reasoning_text(delta) if not text else ""
                        if thought:
                            reasoning.append(thought)
            finally:
                await stream.close()
        except Exception as e:
            raise self._call_error(e) from e

        partial = False
        if not emitted:
            if not reasoning:
                raise ProviderCallError(
                    ProviderErrorKind.INVALID_RESPONSE, "stream ended without content"
                )
            fallback_text = PARTIAL_CONTENT_PREFIX + " ".join(reasoning)
            emitted.append(fallback_text)
            partial = True
            yield ContentDelta(content=fallback_text)

        usage_reported = input_tokens is not None and output_tokens is not None
        prompt_tokens = (
            input_tokens if input_tokens is not None else estimate_message_tokens(messages)
        )
        completion_tokens = (
            output_tokens if output_tokens is not None else estimate_tokens("".join(emitted))
        )
        yield StreamCompleted(
            model_id=descriptor.id,
            input_tokens=prompt_tokens,
            output_tokens=completion_tokens,
            cost=descriptor.cost_for(prompt_tokens, completion_tokens),
            partial=partial,
            usage_reported=usage_reported,
        )
