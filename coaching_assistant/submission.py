"""Per-speaker silence detection and submission of dialogue to the model."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Iterable, Optional, Set

from coaching_assistant.config import ConfigSnapshot
from coaching_assistant.dialogue import DialogueBuffer
from coaching_assistant.errors import CoachingError
from coaching_assistant.events import SUBMISSION_STATE, EventBus
from coaching_assistant.history import HistoryLog
from coaching_assistant.models import (
    DIALOGUE_SPEAKERS,
    EntryKind,
    EntryStatus,
    ModelQuery,
    QueryMode,
    Speaker,
    SubmissionMode,
    SubmissionPhase,
    TranscriptFragment,
    clean_text,
)
from coaching_assistant.stream import StreamAggregator
from coaching_assistant.timers import DebounceTimer

logger = logging.getLogger(__name__)


@dataclass
class SpeakerState:
    """Submission bookkeeping for one speaker. Owned by SubmissionController."""
    speaker: Speaker
    mode: SubmissionMode
    phase: SubmissionPhase = SubmissionPhase.IDLE
    pending_text: str = ""
    last_activity: Optional[float] = None
    in_flight: int = 0
    recognizing: bool = False

    def to_dict(self):
        return {
            "speaker": self.speaker.value,
            "label": self.speaker.label,
            "mode": self.mode.value,
            "phase": self.phase.value,
            "pending_text": self.pending_text,
            "last_activity": self.last_activity,
            "in_flight": self.in_flight,
            "recognizing": self.recognizing,
        }


class SubmissionController:
    """Decides when a speaker's accumulated text goes to the model.

    In AUTO mode every fragment restarts a silence countdown; when it expires
    the pending text is submitted. In MANUAL mode text only accumulates until
    ``submit()`` is called. Submissions are handed to the StreamAggregator,
    which runs them one at a time in the order they were queued.
    """

    def __init__(
        self,
        buffer: DialogueBuffer,
        history: HistoryLog,
        aggregator: StreamAggregator,
        settings: ConfigSnapshot,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._buffer = buffer
        self._history = history
        self._aggregator = aggregator
        self._settings = settings
        self._events = events or EventBus()
        self._clock = clock
        self._states: Dict[Speaker, SpeakerState] = {
            Speaker.A: SpeakerState(
                Speaker.A,
                SubmissionMode.MANUAL if settings.coach_manual_mode else SubmissionMode.AUTO,
            ),
            Speaker.B: SpeakerState(
                Speaker.B,
                SubmissionMode.AUTO if settings.coachee_auto_mode else SubmissionMode.MANUAL,
            ),
        }
        self._timers: Dict[Speaker, DebounceTimer] = {
            speaker: DebounceTimer(settings.silence_threshold, partial(self._on_silence, speaker))
            for speaker in DIALOGUE_SPEAKERS
        }
        self._tasks: Set[asyncio.Task] = set()

    def state(self, speaker: Speaker) -> SpeakerState:
        return self._state(speaker)

    def states(self) -> Dict[str, dict]:
        return {s.value: self._states[s].to_dict() for s in DIALOGUE_SPEAKERS}

    def timer_pending(self, speaker: Speaker) -> bool:
        return self._timers[self._state(speaker).speaker].pending

    def on_fragment(self, fragment: TranscriptFragment) -> None:
        """Add a finalized fragment to the speaker's pending text."""
        state = self._state(fragment.speaker)
        text = clean_text(fragment.text)
        if not text:
            return
        state.pending_text = f"{state.pending_text} {text}".strip()
        state.last_activity = fragment.captured_at
        if state.mode == SubmissionMode.AUTO:
            self._timers[state.speaker].reset()
            state.phase = SubmissionPhase.LISTENING
        self._publish_state(state)

    def set_pending(self, speaker: Speaker, text: str) -> None:
        """Replace the pending text (manual edit)."""
        state = self._state(speaker)
        state.pending_text = clean_text(text)
        state.last_activity = self._clock()
        self._publish_state(state)

    def set_mode(self, speaker: Speaker, mode: SubmissionMode) -> None:
        state = self._state(speaker)
        if state.mode == mode:
            return
        state.mode = SubmissionMode(mode)
        if state.mode == SubmissionMode.MANUAL:
            self._timers[state.speaker].cancel()
            if state.phase == SubmissionPhase.LISTENING:
                state.phase = SubmissionPhase.IDLE
        logger.info("[SUBMIT] %s switched to %s mode", state.speaker.label, state.mode.value)
        self._publish_state(state)

    def set_recognizing(self, speaker: Speaker, recognizing: bool) -> None:
        state = self._state(speaker)
        state.recognizing = recognizing
        self._publish_state(state)

    def clear(self, speaker: Speaker) -> None:
        """Cancel the countdown and drop the speaker's pending text and dialogue."""
        state = self._state(speaker)
        self._timers[state.speaker].cancel()
        state.pending_text = ""
        state.phase = SubmissionPhase.IDLE
        self._buffer.clear(state.speaker)
        self._publish_state(state)

    def submit(self, speaker: Speaker) -> Optional[asyncio.Task]:
        """Submit the speaker's pending text now.

        Returns:
            The task running the queued stream, or None when there was
            nothing to submit

        Raises:
            ConfigurationError: If the selected provider cannot be built; the
                pending text is kept
        """
        state = self._state(speaker)
        self._timers[state.speaker].cancel()
        text = state.pending_text.strip()
        if not text:
            state.phase = SubmissionPhase.IDLE
            self._publish_state(state)
            return None

        try:
            self._aggregator.resolve_provider()
        except CoachingError:
            state.phase = SubmissionPhase.IDLE
            self._publish_state(state)
            raise

        state.phase = SubmissionPhase.SUBMITTING
        self._publish_state(state)
        question = self._history.append(EntryKind.QUESTION, text, speaker=state.speaker)
        prompt = f"{state.speaker.label}: {text}"
        task = self._dispatch(partial(self._build_query, prompt), question.entry_id, state)
        logger.info("[SUBMIT] %s queued | chars=%d", state.speaker.label, len(text))

        state.pending_text = ""
        if self._settings.consume_on_submit:
            self._buffer.clear(state.speaker)
        state.phase = SubmissionPhase.IDLE
        self._publish_state(state)
        return task

    def combine_and_ask(self, entry_ids: Iterable[int]) -> Optional[asyncio.Task]:
        """Submit several earlier questions as one composite question.

        Raises:
            KeyError: If an id is unknown
            ValueError: If an id is not a Question entry
            ConfigurationError: If the selected provider cannot be built
        """
        text = self._history.combine(entry_ids).strip()
        if not text:
            return None
        self._aggregator.resolve_provider()
        question = self._history.append(EntryKind.QUESTION, text, speaker=Speaker.COMBINED)
        logger.info("[SUBMIT] combined question queued | chars=%d", len(text))
        return self._dispatch(partial(self._build_query, text), question.entry_id, None)

    async def drain(self) -> None:
        """Wait for every queued submission to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def shutdown(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        for task in list(self._tasks):
            task.cancel()

    def _build_query(self, prompt: str) -> ModelQuery:
        temperature, max_output_units = self._settings.generation_params
        return ModelQuery(
            prompt=prompt,
            conversation_context=tuple(
                self._history.context_window(self._settings.history_context_entries)
            ),
            temperature=temperature,
            max_output_units=max_output_units,
            mode=QueryMode.STREAMING,
            system_prompt=self._settings.system_prompt,
        )

    def _dispatch(
        self,
        build: Callable[[], ModelQuery],
        question_id: int,
        state: Optional[SpeakerState],
    ) -> asyncio.Task:
        if state is not None:
            state.in_flight += 1
        task = asyncio.get_running_loop().create_task(self._run(build, question_id, state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        build: Callable[[], ModelQuery],
        question_id: int,
        state: Optional[SpeakerState],
    ) -> Optional[str]:
        speaker = state.speaker if state is not None else Speaker.COMBINED
        try:
            return await self._aggregator.start(build, question_id=question_id, speaker=speaker)
        except asyncio.CancelledError:
            # cancelled while still waiting for the stream slot
            if self._history.get(question_id).status == EntryStatus.PENDING:
                self._history.fail(question_id)
            raise
        finally:
            if state is not None:
                state.in_flight -= 1
                self._publish_state(state)

    def _on_silence(self, speaker: Speaker) -> None:
        logger.debug("[SUBMIT] silence detected for %s", speaker.label)
        try:
            self.submit(speaker)
        except CoachingError as e:
            self._events.notify("error", str(e), kind=e.kind)

    def _state(self, speaker) -> SpeakerState:
        try:
            speaker = Speaker(speaker)
            return self._states[speaker]
        except (ValueError, KeyError):
            raise KeyError(f"Unknown speaker: {speaker!r}") from None

    def _publish_state(self, state: SpeakerState) -> None:
        self._events.publish(SUBMISSION_STATE, **state.to_dict())
