"""Google Gemini provider."""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import google.generativeai as genai

from coaching_assistant.models import ModelQuery
from coaching_assistant.providers.base_provider import ModelProvider

logger = logging.getLogger(__name__)


def _chunk_text(chunk: Any) -> str:
    # .text raises when a candidate has no parts (e.g. blocked by safety filters)
    try:
        return chunk.text or ""
    except ValueError as e:
        logger.warning("[GEMINI] chunk without text: %s", e)
        return ""


class GeminiProvider(ModelProvider):
    """Gemini models through google-generativeai."""

    name = "gemini"

    def __init__(self, model: str, api_key: str = "", endpoint: Optional[str] = None, client: Any = None):
        super().__init__(model, api_key, endpoint)
        genai.configure(api_key=api_key)
        self._client = client

    def _model(self, query: ModelQuery):
        if self._client is not None:
            return self._client
        return genai.GenerativeModel(self.model, system_instruction=query.system_prompt or None)

    @staticmethod
    def _contents(query: ModelQuery) -> List[Dict[str, Any]]:
        return [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in query.messages()
        ]

    @staticmethod
    def _generation_config(query: ModelQuery) -> Dict[str, Any]:
        return {
            "temperature": query.temperature,
            "top_p": 0.95,
            "top_k": 40,
            "max_output_tokens": query.max_output_units,
        }

    async def _stream(self, query: ModelQuery) -> AsyncIterator[str]:
        response = await self._model(query).generate_content_async(
            self._contents(query),
            generation_config=self._generation_config(query),
            stream=True,
        )
        async for chunk in response:
            text = _chunk_text(chunk)
            if text:
                yield text

    async def _complete(self, query: ModelQuery) -> str:
        response = await self._model(query).generate_content_async(
            self._contents(query),
            generation_config=self._generation_config(query),
        )
        return _chunk_text(response).strip()
