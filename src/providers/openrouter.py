"""OpenRouter chat-completions client with app attribution."""

from typing import Any, Optional

import httpx

from src.providers.base import ProviderClient, read_field

OPENROUTER_DEFAULT_BASE_URL: str = "https://openrouter.ai/api/v1"


class OpenRouterClient(ProviderClient):
    """Client for OpenRouter.

    Sends the optional HTTP-Referer / X-Title attribution headers as SDK
    default headers and reads OpenRouter's `reasoning_details` blocks when a
    reasoning model returns no final content.
    """

    provider_id = "openrouter"

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENROUTER_DEFAULT_BASE_URL,
        timeout: float = 60.0,
        app_url: Optional[str] = None,
        app_title: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            api_key=api_key, base_url=base_url, timeout=timeout, http_client=http_client
        )
        self._app_url: Optional[str] = app_url
        self._app_title: Optional[str] = app_title

    def _default_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._app_url:
            headers["HTTP-Referer"] = self._app_url
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    def _reasoning_text(self, message: Any) -> str:
        text = super()._reasoning_text(message)
        if text:
            return text

        details = read_field(message, "reasoning_details")
        if not isinstance(details, list):
            return ""
        parts = [
            str(read_field(item, "text") or read_field(item, "summary") or "")
            for item in details
        ]
        return "\n".join(p for p in parts if p).strip()
