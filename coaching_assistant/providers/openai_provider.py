"""OpenAI (and OpenAI-compatible endpoint) provider."""

from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from coaching_assistant.models import ModelQuery
from coaching_assistant.providers.base_provider import ModelProvider


class OpenAIProvider(ModelProvider):
    name = "openai"

    def __init__(self, model: str, api_key: str = "", endpoint: Optional[str] = None, client: Any = None):
        super().__init__(model, api_key, endpoint)
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=endpoint or None)

    def _messages(self, query: ModelQuery) -> List[Dict[str, str]]:
        messages = []
        if query.system_prompt:
            messages.append({"role": "system", "content": query.system_prompt})
        messages.extend(query.messages())
        return messages

    async def _stream(self, query: ModelQuery) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(query),
            temperature=query.temperature,
            max_tokens=query.max_output_units,
            stream=True,
        )
        async for chunk in response:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content

    async def _complete(self, query: ModelQuery) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(query),
            temperature=query.temperature,
            max_tokens=query.max_output_units,
        )
        return str(response.choices[0].message.content or "").strip()
