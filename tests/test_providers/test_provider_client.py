"""Tests for the OpenAI-compatible provider clients."""

import json
from typing import Any, Optional

import httpx
import openai
import pytest

from src.providers.base import (
    PARTIAL_CONTENT_PREFIX,
    ContentDelta,
    ProviderCallError,
    StreamCompleted,
)
from src.providers.errors import (
    ProviderErrorKind,
    classify_exception,
    classify_status,
    parse_retry_after,
)
from src.providers.openai import OpenAIClient
from src.providers.openrouter import OpenRouterClient

MESSAGES = [
    {"role": "system", "content": "You are helpful."},
    {"role": "user", "content": "x" * 40},
]

REQUEST = httpx.Request("POST", "https://api.test/v1/chat/completions")


def _completion(
    content: Optional[str] = "Hello!",
    prompt_tokens: int = 12,
    completion_tokens: int = 5,
    **message_fields: Any,
) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content, **message_fields}
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def _sse(*chunks: dict[str, Any], done: bool = True) -> httpx.Response:
    lines = [f"data: {json.dumps(chunk)}\n\n" for chunk in chunks]
    if done:
        lines.append("data: [DONE]\n\n")
    return httpx.Response(
        200,
        content=(": keep-alive\n\n" + "".join(lines)).encode("utf-8"),
        headers={"content-type": "text/event-stream"},
    )


def _delta(content: Optional[str] = None, **fields: Any) -> dict[str, Any]:
    delta: dict[str, Any] = dict(fields)
    if content is not None:
        delta["content"] = content
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "delta": delta}],
    }


def _usage(prompt_tokens: int, completion_tokens: int) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


async def _collect(stream) -> list:
    return [event async for event in stream]


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class TestClassification:
    @pytest.mark.parametrize(
        "status,kind",
        [
            (429, ProviderErrorKind.RATE_LIMITED),
            (401, ProviderErrorKind.AUTH_INVALID),
            (403, ProviderErrorKind.AUTH_INVALID),
            (400, ProviderErrorKind.BAD_REQUEST),
            (404, ProviderErrorKind.BAD_REQUEST),
            (500, ProviderErrorKind.UPSTREAM_UNAVAILABLE),
            (503, ProviderErrorKind.UPSTREAM_UNAVAILABLE),
            (418, ProviderErrorKind.UNKNOWN),
        ],
    )
    def test_classify_status(self, status: int, kind: ProviderErrorKind) -> None:
        assert classify_status(status) is kind

    @pytest.mark.parametrize(
        "error,kind",
        [
            (
                openai.RateLimitError(
                    "slow", response=httpx.Response(429, request=REQUEST), body=None
                ),
                ProviderErrorKind.RATE_LIMITED,
            ),
            (
                openai.AuthenticationError(
                    "bad key", response=httpx.Response(401, request=REQUEST), body=None
                ),
                ProviderErrorKind.AUTH_INVALID,
            ),
            (
                openai.BadRequestError(
                    "bad", response=httpx.Response(400, request=REQUEST), body=None
                ),
                ProviderErrorKind.BAD_REQUEST,
            ),
            (
                openai.InternalServerError(
                    "down", response=httpx.Response(502, request=REQUEST), body=None
                ),
                ProviderErrorKind.UPSTREAM_UNAVAILABLE,
            ),
            (openai.APITimeoutError(request=REQUEST), ProviderErrorKind.NETWORK_ERROR),
            (openai.APIConnectionError(request=REQUEST), ProviderErrorKind.NETWORK_ERROR),
        ],
    )
    def test_classify_sdk_exceptions(self, error: Exception, kind: ProviderErrorKind) -> None:
        assert classify_exception(error) is kind

    def test_classify_transport_exceptions(self) -> None:
        assert classify_exception(httpx.ReadTimeout("t", request=REQUEST)) is (
            ProviderErrorKind.NETWORK_ERROR
        )
        assert classify_exception(httpx.ConnectError("c", request=REQUEST)) is (
            ProviderErrorKind.NETWORK_ERROR
        )
        assert classify_exception(KeyError("choices")) is ProviderErrorKind.INVALID_RESPONSE
        assert classify_exception(RuntimeError("?")) is ProviderErrorKind.UNKNOWN

    def test_retryable_kinds(self) -> None:
        assert ProviderErrorKind.RATE_LIMITED.retryable is True
        assert ProviderErrorKind.NETWORK_ERROR.retryable is True
        assert ProviderErrorKind.AUTH_INVALID.retryable is False
        assert ProviderErrorKind.BAD_REQUEST.retryable is False

    def test_parse_retry_after(self) -> None:
        assert parse_retry_after("7") == 7
        assert parse_retry_after("2.5") == 2
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2026 07:28:00 GMT") is None


# ---------------------------------------------------------------------------
# Non-streaming completions
# ---------------------------------------------------------------------------


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_success(self, http_mock, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(200, json=_completion("Hi there"))
        client = OpenAIClient(
            api_key="sk-test", base_url="https://api.test/v1/", http_client=http_mock.client()
        )

        result = await client.chat_completion(mini, MESSAGES, max_tokens=20000)

        assert result.status == "ok"
        assert result.content == "Hi there"
        assert result.input_tokens == 12
        assert result.output_tokens == 5
        assert result.usage_tokens == 17
        assert result.partial is False

        request = http_mock.requests[-1]
        assert str(request.url) == "https://api.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = http_mock.last_json
        assert body["model"] == "gpt-4o-mini"
        assert body["max_tokens"] == mini.max_tokens
        assert body["temperature"] == 0.7
        assert not body.get("stream")

    @pytest.mark.asyncio
    async def test_sdk_retries_are_disabled(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(503, json={"error": {}})

        await openai_client.chat_completion(mini, MESSAGES, 100)

        assert len(http_mock.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limited_with_retry_after(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(
            429, json={"error": {"message": "slow down"}}, headers={"retry-after": "7"}
        )

        result = await openai_client.chat_completion(mini, MESSAGES, max_tokens=100)

        assert result.status == "error"
        assert result.kind is ProviderErrorKind.RATE_LIMITED
        assert result.status_code == 429
        assert result.retry_after_seconds == 7
        assert result.message == "HTTP 429: slow down"
        assert result.retryable is True

    @pytest.mark.asyncio
    async def test_auth_failure_not_retryable(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(401, json={"error": {}})

        result = await openai_client.chat_completion(mini, MESSAGES, 100)

        assert result.kind is ProviderErrorKind.AUTH_INVALID
        assert result.retryable is False
        assert result.message == "HTTP 401: Unauthorized"

    @pytest.mark.asyncio
    async def test_server_error_with_text_body(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(500, text="<html>oops</html>")

        result = await openai_client.chat_completion(mini, MESSAGES, 100)

        assert result.kind is ProviderErrorKind.UPSTREAM_UNAVAILABLE
        assert result.message == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"choices": [], "usage": {"prompt_tokens": 1}},
            {"choices": [{"index": 0}], "usage": {"prompt_tokens": 1}},
            {"choices": [{"message": {"content": "hi"}}]},
            _completion(content=""),
            _completion(content=None),
        ],
    )
    async def test_invalid_response_shapes(self, http_mock, openai_client, mini, body) -> None:
        http_mock.handler = lambda request: httpx.Response(200, json=body)

        result = await openai_client.chat_completion(mini, MESSAGES, 100)

        assert result.status == "error"
        assert result.kind is ProviderErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_reasoning_only_is_partial(self, http_mock, openai_client, deepseek) -> None:
        http_mock.handler = lambda request: httpx.Response(
            200, json=_completion(content="", reasoning_content="Step 1: check the loop.")
        )

        result = await openai_client.chat_completion(deepseek, MESSAGES, 100)

        assert result.status == "ok"
        assert result.partial is True
        assert result.content == PARTIAL_CONTENT_PREFIX + "Step 1: check the loop."

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, http_mock, openai_client, mini) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        http_mock.handler = handler
        result = await openai_client.chat_completion(mini, MESSAGES, 100)

        assert result.kind is ProviderErrorKind.NETWORK_ERROR
        assert "timed out" in result.message

    @pytest.mark.asyncio
    async def test_connect_error_is_network_error(self, http_mock, openai_client, mini) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http_mock.handler = handler
        result = await openai_client.chat_completion(mini, MESSAGES, 100)

        assert result.kind is ProviderErrorKind.NETWORK_ERROR
        assert "sk-test" not in result.message

    @pytest.mark.asyncio
    async def test_aclose_drops_sdk_client(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(200, json=_completion())
        await openai_client.chat_completion(mini, MESSAGES, 100)

        await openai_client.aclose()

        assert openai_client._client is None


class TestOpenRouterClient:
    @pytest.mark.asyncio
    async def test_attribution_headers(self, http_mock, deepseek) -> None:
        http_mock.handler = lambda request: httpx.Response(200, json=_completion())
        client = OpenRouterClient(
            api_key="or-key",
            app_url="https://devlink.test",
            app_title="DevLink AI",
            http_client=http_mock.client(),
        )

        await client.chat_completion(deepseek, MESSAGES, 100)

        request = http_mock.requests[-1]
        assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["HTTP-Referer"] == "https://devlink.test"
        assert request.headers["X-Title"] == "DevLink AI"
        assert http_mock.last_json["model"] == "deepseek/deepseek-r1:free"

    @pytest.mark.asyncio
    async def test_headers_omitted_when_unset(self, http_mock, deepseek) -> None:
        http_mock.handler = lambda request: httpx.Response(200, json=_completion())
        client = OpenRouterClient(api_key="or-key", app_title=None, http_client=http_mock.client())

        await client.chat_completion(deepseek, MESSAGES, 100)

        request = http_mock.requests[-1]
        assert "HTTP-Referer" not in request.headers
        assert "X-Title" not in request.headers

    @pytest.mark.asyncio
    async def test_reasoning_details_fallback(self, http_mock, deepseek) -> None:
        http_mock.handler = lambda request: httpx.Response(
            200,
            json=_completion(
                content=None,
                reasoning_details=[{"type": "reasoning.text", "text": "Consider edge cases."}],
            ),
        )
        client = OpenRouterClient(api_key="or-key", http_client=http_mock.client())

        result = await client.chat_completion(deepseek, MESSAGES, 100)

        assert result.partial is True
        assert result.content.endswith("Consider edge cases.")


# ---------------------------------------------------------------------------
# Streaming completions
# ---------------------------------------------------------------------------


class TestStreamChatCompletion:
    @pytest.mark.asyncio
    async def test_deltas_then_completed_with_usage(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: _sse(_delta("Hello"), _delta(" world"), _usage(100, 50))

        events = await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        assert [e.content for e in events if isinstance(e, ContentDelta)] == ["Hello", " world"]
        completed = events[-1]
        assert isinstance(completed, StreamCompleted)
        assert completed.input_tokens == 100
        assert completed.output_tokens == 50
        assert completed.cost == pytest.approx(0.000045)
        assert completed.usage_reported is True
        assert completed.partial is False

        body = http_mock.last_json
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: _sse(_delta("Hello world!"))

        events = await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        completed = events[-1]
        assert completed.usage_reported is False
        assert completed.input_tokens == 14
        assert completed.output_tokens == 3

    @pytest.mark.asyncio
    async def test_reasoning_only_stream_is_partial(
        self, http_mock, openai_client, deepseek
    ) -> None:
        http_mock.handler = lambda request: _sse(_delta(reasoning="Thinking about it."))

        events = await _collect(openai_client.stream_chat_completion(deepseek, MESSAGES, 100))

        assert events[0].content == PARTIAL_CONTENT_PREFIX + "Thinking about it."
        assert events[-1].partial is True

    @pytest.mark.asyncio
    async def test_empty_stream_raises(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: _sse()

        with pytest.raises(ProviderCallError) as exc_info:
            await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_http_error_raises_classified(self, http_mock, openai_client, mini) -> None:
        http_mock.handler = lambda request: httpx.Response(
            503, json={"error": {"message": "overloaded"}}, headers={"retry-after": "3"}
        )

        with pytest.raises(ProviderCallError) as exc_info:
            await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        error = exc_info.value
        assert error.kind is ProviderErrorKind.UPSTREAM_UNAVAILABLE
        assert error.status_code == 503
        assert error.retry_after_seconds == 3
        assert error.message == "HTTP 503: overloaded"

    @pytest.mark.asyncio
    async def test_malformed_chunk_raises_invalid_response(
        self, http_mock, openai_client, mini
    ) -> None:
        http_mock.handler = lambda request: httpx.Response(
            200,
            content=b'data: {"choices": [\n\n',
            headers={"content-type": "text/event-stream"},
        )

        with pytest.raises(ProviderCallError) as exc_info:
            await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        assert exc_info.value.kind is ProviderErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self, http_mock, openai_client, mini) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        http_mock.handler = handler

        with pytest.raises(ProviderCallError) as exc_info:
            await _collect(openai_client.stream_chat_completion(mini, MESSAGES, 100))

        assert exc_info.value.kind is ProviderErrorKind.NETWORK_ERROR
        assert "timed out" in exc_info.value.message
