"""Anthropic (Claude) provider."""

from typing import Any, AsyncIterator, Dict, List, Optional

from anthropic import AsyncAnthropic

from coaching_assistant.models import ModelQuery
from coaching_assistant.providers.base_provider import ModelProvider


def _alternating(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Merge same-role neighbours and drop leading assistant turns."""
    out: List[Dict[str, str]] = []
    for m in messages:
        if not out and m["role"] != "user":
            continue
        if out and out[-1]["role"] == m["role"]:
            out[-1] = {"role": m["role"], "content": out[-1]["content"] + "\n\n" + m["content"]}
        else:
            out.append(dict(m))
    return out


class AnthropicProvider(ModelProvider):
    """Claude models through the Messages API."""

    name = "anthropic"

    def __init__(self, model: str, api_key: str = "", endpoint: Optional[str] = None, client: Any = None):
        super().__init__(model, api_key, endpoint)
        self.client = client or AsyncAnthropic(api_key=api_key, base_url=endpoint or None)

    def _params(self, query: ModelQuery) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": query.max_output_units,
            "temperature": query.temperature,
            "messages": _alternating(query.messages()),
        }
        if query.system_prompt:
            params["system"] = query.system_prompt
        return params

    async def _stream(self, query: ModelQuery) -> AsyncIterator[str]:
        async with self.client.messages.stream(**self._params(query)) as stream:
            async for text in stream.text_stream:
                yield text

    async def _complete(self, query: ModelQuery) -> str:
        response = await self.client.messages.create(**self._params(query))
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
