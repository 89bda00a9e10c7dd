"""OpenAI chat-completions client."""

from typing import Optional

import httpx

from src.providers.base import ProviderClient

OPENAI_DEFAULT_BASE_URL: str = "https://api.openai.com/v1"


class OpenAIClient(ProviderClient):
    """Client for api.openai.com (or any OpenAI-compatible base URL)."""

    provider_id = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENAI_DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            api_key=api_key, base_url=base_url, timeout=timeout, http_client=http_client
        )
