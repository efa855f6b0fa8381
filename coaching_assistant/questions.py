"""Coaching question suggestions: style detection, prompting, parsing, scoring."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Callable, List, Optional, Sequence

from coaching_assistant.config import ConfigSnapshot
from coaching_assistant.dialogue import DialogueBuffer
from coaching_assistant.errors import CoachingError, ParseError
from coaching_assistant.events import QUESTIONS, EventBus
from coaching_assistant.history import HistoryLog
from coaching_assistant.models import (
    EntryKind,
    ModelQuery,
    QueryMode,
    QuestionScore,
    QuestionStyle,
    SuggestedQuestionSet,
    TranscriptFragment,
)
from coaching_assistant.prompts import (
    QUESTION_SYSTEM_PROMPT,
    build_follow_up_prompt,
    build_question_prompt,
)
from coaching_assistant.providers import ModelProvider
from coaching_assistant.scoring import score_question

logger = logging.getLogger(__name__)

QUESTION_TEMPERATURE = 0.7
QUESTION_MAX_OUTPUT_UNITS = 150
STYLE_WINDOW = 5
PROMPT_WINDOW = 10
MIN_QUESTION_CHARS = 10
MAX_QUESTION_CHARS = 200

_STYLE_PATTERNS = {
    "stuck": re.compile(r"stuck|frustrated|don't know|confused|overwhelmed|lost", re.IGNORECASE),
    "exploring": re.compile(r"thinking|wondering|considering|exploring|curious|interested", re.IGNORECASE),
    "action": re.compile(r"will|going to|plan|next|step|action|decide|commit", re.IGNORECASE),
    "emotional": re.compile(r"feel|feeling|felt|angry|sad|happy|excited|worried|anxious", re.IGNORECASE),
}

# leading "1." / "2)" / bullet / "Q1:" markers
_MARKERS = (
    re.compile(r"^\d+[.)]\s*"),
    re.compile(r"^[-•*]\s*"),
    re.compile(r"^Q\d+[:.]?\s*", re.IGNORECASE),
)


def style_counts(fragments: Sequence[TranscriptFragment]) -> dict:
    text = " ".join(f.text.lower() for f in fragments[-STYLE_WINDOW:])
    return {name: len(pattern.findall(text)) for name, pattern in _STYLE_PATTERNS.items()}


def _strip_markers(line: str) -> str:
    line = line.strip()
    while True:
        stripped = line
        for marker in _MARKERS:
            stripped = marker.sub("", stripped, count=1).strip()
        if stripped == line:
            return line
        line = stripped


class QuestionEngine:
    """Generates a small batch of open-ended coaching questions on demand.

    Generation is a single-shot model call on its own slot, independent of
    the dialogue stream, so suggestions can be produced while a reply is
    still streaming. A new batch replaces the previous one; a failed call
    leaves it untouched.
    """

    def __init__(
        self,
        buffer: DialogueBuffer,
        history: HistoryLog,
        provider: Callable[[], ModelProvider],
        settings: ConfigSnapshot,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._buffer = buffer
        self._history = history
        self._provider = provider
        self._settings = settings
        self._events = events or EventBus()
        self._clock = clock
        self._slot = asyncio.Lock()
        self._current: Optional[SuggestedQuestionSet] = None

    @property
    def current(self) -> Optional[SuggestedQuestionSet]:
        return self._current

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    def classify_style(self, fragments: Sequence[TranscriptFragment]) -> QuestionStyle:
        """Pick a question style from keywords in the last few fragments.

        First match wins: stuck language (more than 2 hits) and emotional
        language (more than 2) call for exploratory questions, action
        language (more than 3) for focused ones.
        """
        if not fragments:
            return QuestionStyle.BALANCED
        counts = style_counts(fragments)
        if counts["stuck"] > 2:
            return QuestionStyle.EXPLORATORY
        if counts["action"] > 3:
            return QuestionStyle.FOCUSED
        if counts["emotional"] > 2:
            return QuestionStyle.EXPLORATORY
        return QuestionStyle.BALANCED

    def build_prompt(
        self,
        fragments: Sequence[TranscriptFragment],
        count: int,
        style: QuestionStyle,
    ) -> str:
        return build_question_prompt(
            list(fragments)[-PROMPT_WINDOW:],
            count,
            style,
            methodology=self._settings.methodology,
        )

    @staticmethod
    def parse(raw: str, max_count: int) -> List[str]:
        """Extract up to ``max_count`` questions from a free-text reply.

        Raises:
            ParseError: If no line survives the filter
        """
        questions: List[str] = []
        for line in (raw or "").splitlines():
            if not line.strip():
                continue
            q = _strip_markers(line)
            if MIN_QUESTION_CHARS < len(q) < MAX_QUESTION_CHARS and "?" in q:
                questions.append(q)
        if not questions:
            raise ParseError("The model reply contained no usable questions", raw=raw or "")
        return questions[:max_count]

    @staticmethod
    def score(question: str) -> QuestionScore:
        return score_question(question)

    async def generate(self, count: Optional[int] = None) -> SuggestedQuestionSet:
        """Ask the model for ``count`` questions about the recent dialogue.

        Raises:
            ConfigurationError: If the provider cannot be built (nothing is recorded)
            ModelRequestError: If the call fails (an Error entry is recorded)
            ParseError: If the reply has no usable questions (an Error entry is recorded)
        """
        count = self._count(count)
        async with self._slot:
            window = self._buffer.window()
            style = self.classify_style(window)
            prompt = self.build_prompt(window, count, style)
            logger.info(
                "[QUESTIONS] generating | count=%d style=%s fragments=%d",
                count, style.value, len(window),
            )
            return await self._ask(prompt, count, style, "Suggested Questions")

    async def follow_up(self, question: str, response: str, count: int = 1) -> SuggestedQuestionSet:
        """Questions that build on the coachee's answer to ``question``."""
        count = self._count(count)
        async with self._slot:
            prompt = build_follow_up_prompt(question, response, count)
            logger.info("[QUESTIONS] generating follow-up | count=%d", count)
            style = self._current.style if self._current else QuestionStyle.BALANCED
            return await self._ask(prompt, count, style, "Follow-up Questions")

    def clear(self) -> None:
        self._current = None
        self._events.publish(QUESTIONS, questions=None)

    async def _ask(self, prompt: str, count: int, style: QuestionStyle, heading: str) -> SuggestedQuestionSet:
        provider = self._provider()
        query = ModelQuery(
            prompt=prompt,
            temperature=QUESTION_TEMPERATURE,
            max_output_units=QUESTION_MAX_OUTPUT_UNITS,
            mode=QueryMode.SINGLE_SHOT,
            system_prompt=QUESTION_SYSTEM_PROMPT,
        )
        try:
            raw = await provider.invoke_single_shot(query)
            questions = self.parse(raw, count)
        except CoachingError as e:
            logger.warning("[QUESTIONS] generation failed: %s", e)
            self._history.append(EntryKind.ERROR, f"Question generation failed: {e}")
            raise

        suggested = SuggestedQuestionSet(
            questions=tuple(questions),
            style=style,
            generated_at=self._clock(),
            scores=tuple(self.score(q) for q in questions),
        )
        self._current = suggested
        self._history.append(EntryKind.QUESTION_BATCH, f"{heading}:\n{suggested.numbered()}")
        self._events.publish(QUESTIONS, questions=suggested.to_dict())
        return suggested

    def _count(self, count: Optional[int]) -> int:
        count = self._settings.number_of_questions if count is None else int(count)
        if not 1 <= count <= 3:
            raise ValueError(f"Question count must be between 1 and 3, got {count}")
        return count
