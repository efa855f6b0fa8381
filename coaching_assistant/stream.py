"""Aggregation of streamed model replies into a rate-limited live view."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Union

from coaching_assistant.errors import CoachingError
from coaching_assistant.events import LIVE_RESPONSE, EventBus
from coaching_assistant.history import HistoryLog
from coaching_assistant.models import EntryKind, EntryStatus, ModelQuery, QueryMode, Speaker
from coaching_assistant.providers import ModelProvider
from coaching_assistant.timers import Throttle

logger = logging.getLogger(__name__)

CANCELLED = "Cancelled"


class StreamAggregator:
    """Runs streaming queries one at a time and republishes their text.

    The single stream slot is an ``asyncio.Lock``: a second ``start()`` waits
    (FIFO) until the in-flight stream completes, fails, or is cancelled.
    Partial text is published through a leading+trailing ``Throttle``; the
    final text is always flushed as the last publish of a successful stream.
    """

    def __init__(
        self,
        history: HistoryLog,
        provider: Callable[[], ModelProvider],
        events: Optional[EventBus] = None,
        publish_interval: float = 0.25,
    ):
        self._history = history
        self._provider = provider
        self._events = events or EventBus()
        self._publish_interval = publish_interval
        self._slot = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._throttle: Optional[Throttle[str]] = None
        self._cancel_requested = False
        self._live_text = ""

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    @property
    def live_text(self) -> str:
        return self._live_text

    def resolve_provider(self) -> ModelProvider:
        """Raises ConfigurationError when the provider cannot be built."""
        return self._provider()

    async def start(
        self,
        query: Union[ModelQuery, Callable[[], ModelQuery]],
        question_id: Optional[int] = None,
        speaker: Optional[Speaker] = None,
    ) -> Optional[str]:
        """Stream ``query`` once the slot is free.

        Args:
            query: A STREAMING query, or a callable building one. A callable is
                invoked only after the slot is acquired, so history context
                taken inside it includes every earlier exchange.
            question_id: History entry of the question being answered, marked
                completed when the stream actually starts
            speaker: Attributed to the Response entry

        Returns:
            The full reply text, or None if the stream failed or was cancelled
        """
        if isinstance(query, ModelQuery):
            _check_streaming(query)

        async with self._slot:
            if not isinstance(query, ModelQuery):
                query = query()
                _check_streaming(query)
            self._cancel_requested = False
            if question_id is not None:
                self._history.complete(question_id)
            response = self._history.append(EntryKind.RESPONSE, "", speaker=speaker)
            self._task = asyncio.create_task(self._consume(query, response.entry_id))
            try:
                return await self._task
            except asyncio.CancelledError:
                # the task may be cancelled before its first step
                if self._history.get(response.entry_id).status == EntryStatus.PENDING:
                    self._history.fail(response.entry_id, CANCELLED)
                self._live_text = ""
                if self._cancel_requested:
                    return None
                raise
            finally:
                self._task = None
                self._throttle = None

    def cancel(self) -> bool:
        """Abort the in-flight stream. Returns False if nothing was running."""
        if self._task is None or self._task.done():
            return False
        logger.info("[STREAM] cancelling in-flight stream")
        self._cancel_requested = True
        if self._throttle is not None:
            self._throttle.cancel()
        self._task.cancel()
        return True

    async def _consume(self, query: ModelQuery, response_id: int) -> Optional[str]:
        try:
            provider = self._provider()
        except CoachingError as e:
            self._fail(response_id, e)
            return None

        throttle: Throttle[str] = Throttle(self._publish_interval, self._publish_live)
        self._throttle = throttle
        self._live_text = ""
        text = ""
        logger.info("[STREAM] started | provider=%s prompt_chars=%d", provider.name, len(query.prompt))

        stream = provider.invoke_streaming(query)
        try:
            async for chunk in stream:
                text += chunk
                throttle.offer(text)
        except asyncio.CancelledError:
            throttle.cancel()
            self._live_text = ""
            self._history.fail(response_id, CANCELLED)
            raise
        except CoachingError as e:
            throttle.cancel()
            self._publish_live("")
            self._fail(response_id, e)
            return None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        throttle.flush(text)
        self._history.complete(response_id, text)
        logger.info("[STREAM] completed | chars=%d", len(text))
        return text

    def _fail(self, entry_id: int, error: CoachingError) -> None:
        self._history.fail(entry_id, str(error))
        self._events.notify("error", str(error), kind=error.kind)

    def _publish_live(self, text: str) -> None:
        self._live_text = text
        self._events.publish(LIVE_RESPONSE, text=text)


def _check_streaming(query: ModelQuery) -> None:
    if query.mode != QueryMode.STREAMING:
        raise ValueError("StreamAggregator only runs streaming queries")
