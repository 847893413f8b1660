"""Chat-completion clients."""

from __future__ import annotations

import abc
import json

import aiohttp

from mcpwire.model import CompletionRequest, CompletionResponse

DEFAULT_URL = "https://api.openai.com/v1/chat/completions"


class ChatClient(abc.ABC):
    """Something that answers chat-completion requests."""

    @abc.abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send ``request`` and return the model's response."""


class OpenAIClient(ChatClient):
    """A client for OpenAI-compatible chat-completion endpoints."""

    def __init__(self, api_key: str, url: str | None = None) -> None:
        self.api_key = api_key
        self.base_url = DEFAULT_URL if url is None else url

    def with_base_url(self, base_url: str) -> OpenAIClient:
        """Use ``base_url`` as the endpoint and return this client."""
        self.base_url = base_url
        return self

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """POST the request; raise ``RuntimeError`` if the API answers with an error."""
        print(f"sending request to {self.base_url}")
        body = request.to_dict()
        print(f"request content: {json.dumps(body, separators=(',', ':'), ensure_ascii=False)}")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with aiohttp.ClientSession(trust_env=False) as session:
            async with session.post(self.base_url, json=body, headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    print(f"API error: {error_text}")
                    raise RuntimeError(f"API Error: {error_text}")
                data = await response.json(content_type=None)
        return CompletionResponse.from_dict(data)