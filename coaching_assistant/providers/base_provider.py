"""Abstract base class for language model providers."""

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from coaching_assistant.errors import ModelRequestError
from coaching_assistant.models import ModelQuery

logger = logging.getLogger(__name__)


def describe_error(exc: Exception, model: str) -> str:
    """Turn an SDK or transport exception into a user-facing description."""
    error_msg = str(exc).lower()

    if "api key" in error_msg or "unauthorized" in error_msg or "401" in error_msg or "403" in error_msg:
        return "Invalid or missing API key. Please check the key configured for this provider."
    if "quota" in error_msg or "rate limit" in error_msg or "429" in error_msg:
        return "Rate limit exceeded. Please wait a moment and try again."
    if "model" in error_msg and "not found" in error_msg:
        return f"Model '{model}' not found. Please check your COACH_MODEL setting."
    if "network" in error_msg or "connection" in error_msg or "timed out" in error_msg:
        return "Network connection failed. Please check your connection and try again."
    return f"Model request failed: {exc}"


class ModelProvider(ABC):
    """Uniform interface over the model SDKs.

    Subclasses implement ``_stream`` and ``_complete``; the public methods
    wrap any provider failure into ``ModelRequestError`` so callers deal with
    a single error type.
    """

    name = "base"

    def __init__(self, model: str, api_key: str = "", endpoint: Optional[str] = None):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint

    async def invoke_streaming(self, query: ModelQuery) -> AsyncIterator[str]:
        """Stream the reply to ``query`` as text chunks.

        Args:
            query: The query to send

        Yields:
            Non-empty text chunks in arrival order

        Raises:
            ModelRequestError: If the call fails before or during streaming
        """
        try:
            async for chunk in self._stream(query):
                if chunk:
                    yield chunk
        except ModelRequestError:
            raise
        except Exception as e:
            logger.warning("[%s] streaming call failed: %s", self.name.upper(), e)
            raise ModelRequestError(describe_error(e, self.model), provider=self.name) from e

    async def invoke_single_shot(self, query: ModelQuery) -> str:
        """Return the complete reply to ``query``.

        Raises:
            ModelRequestError: If the call fails
        """
        try:
            return await self._complete(query)
        except ModelRequestError:
            raise
        except Exception as e:
            logger.warning("[%s] single-shot call failed: %s", self.name.upper(), e)
            raise ModelRequestError(describe_error(e, self.model), provider=self.name) from e

    @abstractmethod
    def _stream(self, query: ModelQuery) -> AsyncIterator[str]:
        pass

    @abstractmethod
    async def _complete(self, query: ModelQuery) -> str:
        pass

    def __repr__(self):
        return f"{type(self).__name__}(model={self.model!r})"
