"""A coaching session: the core components wired together on one event loop."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from coaching_assistant.config import Config, ConfigSnapshot
from coaching_assistant.dialogue import DialogueBuffer
from coaching_assistant.errors import CoachingError, RecognitionError
from coaching_assistant.events import HISTORY, PREVIEW, TRANSCRIPT, EventBus
from coaching_assistant.history import HistoryLog
from coaching_assistant.models import (
    DIALOGUE_SPEAKERS,
    HistoryEntry,
    Speaker,
    TranscriptFragment,
    clean_text,
)
from coaching_assistant.providers import ModelProvider, ProviderHandle, create_provider
from coaching_assistant.questions import QuestionEngine
from coaching_assistant.recognizer import (
    FinalText,
    InterimText,
    Recognizer,
    RecognizerEvent,
    SessionEnded,
    SessionError,
)
from coaching_assistant.stream import StreamAggregator
from coaching_assistant.submission import SubmissionController

logger = logging.getLogger(__name__)


class DialogueClock:
    """Counts dialogue time and fires ``on_boundary`` every ``listen_duration`` seconds."""

    def __init__(
        self,
        listen_duration: float,
        on_boundary: Callable[[], Awaitable[Any]],
        tick: float = 1.0,
    ):
        self.listen_duration = float(listen_duration)
        self.tick = float(tick)
        self.elapsed = 0.0
        self._on_boundary = on_boundary
        self._task: Optional[asyncio.Task] = None
        self._triggered: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self.elapsed = 0.0
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("[CLOCK] dialogue clock started | listen_duration=%.1fs", self.listen_duration)

    async def stop(self) -> None:
        pending = [t for t in (self._task, *self._triggered) if t is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._task = None
        self._triggered.clear()

    async def _run(self) -> None:
        next_boundary = self.listen_duration
        while True:
            await asyncio.sleep(self.tick)
            self.elapsed += self.tick
            if self.listen_duration > 0 and self.elapsed >= next_boundary:
                next_boundary += self.listen_duration
                # generation runs beside the clock so ticks keep their pace
                task = asyncio.create_task(self._on_boundary())
                self._triggered.add(task)
                task.add_done_callback(self._triggered.discard)


class CoachingSession:
    """Owns the dialogue, history and model plumbing for one coaching conversation.

    Recognizer events go in through ``handle_event``; everything observable
    comes out through the EventBus and ``snapshot()``.
    """

    def __init__(
        self,
        settings: Optional[ConfigSnapshot] = None,
        provider_factory: Callable[[ConfigSnapshot], ModelProvider] = create_provider,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        clock_tick: float = 1.0,
    ):
        self.settings = settings or Config.snapshot()
        self.events = events or EventBus()
        self._clock = clock
        self.auto_suggest = self.settings.auto_suggest

        self.buffer = DialogueBuffer(self.settings.retention_horizon, clock=clock)
        self.history = HistoryLog(clock=clock, on_change=self._history_changed)
        self.provider = ProviderHandle(self.settings, factory=provider_factory)
        self.aggregator = StreamAggregator(
            self.history,
            self.provider,
            events=self.events,
            publish_interval=self.settings.publish_interval,
        )
        self.submissions = SubmissionController(
            self.buffer,
            self.history,
            self.aggregator,
            self.settings,
            events=self.events,
            clock=clock,
        )
        self.questions = QuestionEngine(
            self.buffer,
            self.history,
            self.provider,
            self.settings,
            events=self.events,
            clock=clock,
        )
        self.dialogue_clock = DialogueClock(
            self.settings.dialogue_listen_duration,
            self._auto_suggest,
            tick=clock_tick,
        )
        self.previews: Dict[Speaker, str] = {}
        self._recognizer: Optional[Recognizer] = None

        missing = self.settings.validate()
        if missing:
            logger.warning("[SESSION] missing configuration: %s", "; ".join(missing))

    @property
    def recognizer(self) -> Optional[Recognizer]:
        return self._recognizer

    def attach_recognizer(self, recognizer: Recognizer) -> None:
        """Start recognition for both speakers, routing events into this session."""
        if self._recognizer is not None:
            self._recognizer.shutdown()
        self._recognizer = recognizer
        for speaker in DIALOGUE_SPEAKERS:
            recognizer.start_stream(speaker, self.handle_event)
            self.submissions.set_recognizing(speaker, True)

    def handle_event(self, event: RecognizerEvent) -> None:
        if isinstance(event, FinalText):
            self.ingest(event.speaker, event.text, event.captured_at)
        elif isinstance(event, InterimText):
            self.previews[event.speaker] = event.text
            self.events.publish(PREVIEW, speaker=event.speaker.value, text=event.text)
        elif isinstance(event, SessionError):
            error = RecognitionError(event.speaker.value, event.detail)
            self._end_recognition(event.speaker)
            self.events.notify("error", str(error), kind=error.kind)
        elif isinstance(event, SessionEnded):
            logger.info("[SESSION] recognition ended for %s", event.speaker.label)
            self._end_recognition(event.speaker)
        else:
            raise TypeError(f"Unsupported recognizer event: {event!r}")

    def ingest(
        self,
        speaker: Speaker,
        text: str,
        captured_at: Optional[float] = None,
    ) -> Optional[TranscriptFragment]:
        """Record a finalized fragment of speech. Blank text is ignored."""
        text = clean_text(text)
        if not text:
            return None
        fragment = TranscriptFragment(
            text=text,
            speaker=Speaker(speaker),
            captured_at=self._clock() if captured_at is None else captured_at,
        )
        self.buffer.append(fragment)
        self.previews.pop(fragment.speaker, None)
        self.submissions.on_fragment(fragment)
        self.events.publish(TRANSCRIPT, **fragment.to_dict())
        logger.debug(
            "[TRANSCRIPT] %s: %s%s",
            fragment.speaker.label, text[:50], "..." if len(text) > 50 else "",
        )
        if not self.dialogue_clock.running:
            self.dialogue_clock.start()
        return fragment

    def snapshot(self) -> Dict[str, Any]:
        current = self.questions.current
        return {
            "dialogue": [f.to_dict() for f in self.buffer.window()],
            "speakers": self.submissions.states(),
            "previews": {s.value: t for s, t in self.previews.items()},
            "live_response": self.aggregator.live_text,
            "streaming": self.aggregator.busy,
            "history": [e.to_dict() for e in self.history.entries],
            "questions": current.to_dict() if current else None,
            "generating_questions": self.questions.busy,
            "auto_suggest": self.auto_suggest,
            "dialogue_seconds": self.dialogue_clock.elapsed,
            "model": self.settings.model,
        }

    async def close(self) -> None:
        await self.dialogue_clock.stop()
        if self._recognizer is not None:
            self._recognizer.shutdown()
            self._recognizer = None
        self.aggregator.cancel()
        self.submissions.shutdown()
        await self.submissions.drain()
        logger.info("[SESSION] closed | history_entries=%d", len(self.history))

    async def _auto_suggest(self) -> None:
        if not self.auto_suggest or len(self.buffer) == 0:
            return
        try:
            await self.questions.generate()
        except CoachingError as e:
            self.events.notify("error", f"Question suggestion failed: {e}", kind=e.kind)

    def _end_recognition(self, speaker: Speaker) -> None:
        if self._recognizer is not None:
            self._recognizer.stop_stream(speaker)
        self.previews.pop(speaker, None)
        self.submissions.set_recognizing(speaker, False)

    def _history_changed(self, entry: HistoryEntry) -> None:
        self.events.publish(HISTORY, entry=entry.to_dict())
