"""
Custom model provider speaking the Ollama chat API over httpx.

Used for self-hosted models registered in CUSTOM_MODELS with type "custom":

  CUSTOM_MODELS='[{"value": "gemma3:4b", "type": "custom", "endpoint": "http://127.0.0.1:11434"}]'

Endpoint used:
  POST {endpoint}/api/chat   (NDJSON lines when streaming)
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from coaching_assistant.errors import ConfigurationError, ModelRequestError
from coaching_assistant.models import ModelQuery
from coaching_assistant.providers.base_provider import ModelProvider


class CustomProvider(ModelProvider):
    name = "custom"

    def __init__(
        self,
        model: str,
        api_key: str = "",
        endpoint: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 90,
    ):
        if not endpoint:
            raise ConfigurationError(f"Custom model '{model}' has no endpoint configured")
        super().__init__(model, api_key, endpoint.rstrip("/"))
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, headers=headers)

    def _payload(self, query: ModelQuery, stream: bool) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if query.system_prompt:
            messages.append({"role": "system", "content": query.system_prompt})
        messages.extend(query.messages())
        return {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {
                "temperature": query.temperature,
                "num_predict": query.max_output_units,
            },
        }

    async def _stream(self, query: ModelQuery) -> AsyncIterator[str]:
        async with self._client() as client:
            async with client.stream(
                "POST", f"{self.endpoint}/api/chat", json=self._payload(query, stream=True)
            ) as r:
                r.raise_for_status()
                async for line in r.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if data.get("error"):
                        raise ModelRequestError(str(data["error"]), provider=self.name)
                    content = (data.get("message") or {}).get("content", "")
                    if content:
                        yield content
                    if data.get("done"):
                        break

    async def _complete(self, query: ModelQuery) -> str:
        async with self._client() as client:
            r = await client.post(f"{self.endpoint}/api/chat", json=self._payload(query, stream=False))
            r.raise_for_status()
            data = r.json()
        return ((data.get("message") or {}).get("content", "") or "").strip()
