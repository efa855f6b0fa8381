"""Data models for the coaching assistant."""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Collapse whitespace runs and trim."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


class Speaker(str, Enum):
    """Audio source. A = coach (microphone), B = coachee (system audio)."""
    A = "A"
    B = "B"
    COMBINED = "combined"  # history only: a "combine and ask" submission

    @property
    def label(self) -> str:
        return SPEAKER_LABELS[self]


SPEAKER_LABELS = {
    Speaker.A: "Coach",
    Speaker.B: "Coachee",
    Speaker.COMBINED: "Combined",
}

DIALOGUE_SPEAKERS = (Speaker.A, Speaker.B)


def parse_speaker(value) -> Speaker:
    """Dialogue speaker from ``"A"``/``"B"`` in either case.

    Raises:
        ValueError: For anything other than speaker A or B
    """
    name = str(value or "").strip().upper()
    if name not in {s.value for s in DIALOGUE_SPEAKERS}:
        raise ValueError(f"Expected speaker A or B, got {value!r}")
    return Speaker(name)


class SubmissionMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SubmissionPhase(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SUBMITTING = "submitting"


class EntryKind(str, Enum):
    QUESTION = "question"
    RESPONSE = "response"
    QUESTION_BATCH = "question_batch"
    ERROR = "error"


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class QuestionStyle(str, Enum):
    FOCUSED = "focused"
    BALANCED = "balanced"
    EXPLORATORY = "exploratory"


class QueryMode(str, Enum):
    STREAMING = "streaming"
    SINGLE_SHOT = "single_shot"


@dataclass(frozen=True)
class TranscriptFragment:
    """One finalized unit of recognized speech."""
    text: str
    speaker: Speaker
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.speaker not in DIALOGUE_SPEAKERS:
            raise ValueError(f"Fragments must come from speaker A or B, got {self.speaker!r}")

    def to_dict(self):
        return {
            "text": self.text,
            "speaker": self.speaker.value,
            "captured_at": self.captured_at,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """A record in the history log. Only HistoryLog creates new versions."""
    entry_id: int
    kind: EntryKind
    text: str
    speaker: Optional[Speaker] = None
    timestamp: float = field(default_factory=time.time)
    status: EntryStatus = EntryStatus.COMPLETED

    def to_dict(self):
        return {
            "entry_id": self.entry_id,
            "kind": self.kind.value,
            "text": self.text,
            "speaker": self.speaker.value if self.speaker else None,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ConversationTurn:
    """A role-tagged message handed to the model as conversation history."""
    role: str  # "user" | "assistant"
    text: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}


@dataclass(frozen=True)
class ModelQuery:
    """Everything a provider needs to make one model call."""
    prompt: str
    conversation_context: Tuple[ConversationTurn, ...] = ()
    temperature: float = 0.7
    max_output_units: int = 800
    mode: QueryMode = QueryMode.STREAMING
    system_prompt: str = ""

    def messages(self) -> List[Dict[str, str]]:
        """Context turns followed by the prompt as the final user message."""
        out = [turn.to_message() for turn in self.conversation_context]
        out.append({"role": "user", "content": self.prompt})
        return out


@dataclass(frozen=True)
class QuestionScore:
    scores: Dict[str, int]
    total: int
    quality: str

    def to_dict(self):
        return {"scores": dict(self.scores), "total": self.total, "quality": self.quality}


@dataclass(frozen=True)
class SuggestedQuestionSet:
    """The current batch of suggested questions. Replaced, never merged."""
    questions: Tuple[str, ...]
    style: QuestionStyle
    generated_at: float = field(default_factory=time.time)
    scores: Tuple[QuestionScore, ...] = ()

    def numbered(self) -> str:
        return "\n".join(f"{i}. {q}" for i, q in enumerate(self.questions, start=1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questions": list(self.questions),
            "style": self.style.value,
            "generated_at": self.generated_at,
            "scores": [s.to_dict() for s in self.scores],
        }
