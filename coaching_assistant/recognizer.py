"""Speech recognizer abstraction and the events it delivers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from coaching_assistant.models import Speaker, parse_speaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterimText:
    """Unstable partial hypothesis. Display only."""
    speaker: Speaker
    text: str


@dataclass(frozen=True)
class FinalText:
    speaker: Speaker
    text: str
    captured_at: Optional[float] = None


@dataclass(frozen=True)
class SessionError:
    speaker: Speaker
    detail: str


@dataclass(frozen=True)
class SessionEnded:
    speaker: Speaker


RecognizerEvent = Union[InterimText, FinalText, SessionError, SessionEnded]
EventHandler = Callable[[RecognizerEvent], None]

EVENT_TYPES = {
    "interim_text": InterimText,
    "final_text": FinalText,
    "session_error": SessionError,
    "session_ended": SessionEnded,
}


def event_from_dict(data: Dict[str, Any]) -> RecognizerEvent:
    """Build a recognizer event from its JSON form.

    Raises:
        ValueError: On an unknown event type or speaker
    """
    event_type = data.get("type")
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown recognizer event type: {event_type!r}")
    speaker = parse_speaker(data.get("speaker"))

    if event_type == "interim_text":
        return InterimText(speaker, data.get("text") or "")
    if event_type == "final_text":
        return FinalText(speaker, data.get("text") or "", data.get("captured_at"))
    if event_type == "session_error":
        return SessionError(speaker, data.get("detail") or "unknown error")
    return SessionEnded(speaker)


class Recognizer(ABC):
    """Abstract interface for speech recognition providers.

    Implementations must deliver events on the session's event loop; an
    SDK that calls back from its own threads should hop over with
    ``loop.call_soon_threadsafe``.
    """

    @abstractmethod
    def start_stream(self, speaker: Speaker, on_event: EventHandler) -> None:
        """Start recognition for a speaker.

        Args:
            speaker: A (coach microphone) or B (coachee system audio)
            on_event: Receives every event for this speaker
        """
        pass

    @abstractmethod
    def stop_stream(self, speaker: Speaker) -> None:
        """Stop recognition for a speaker."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Stop all streams and release resources."""
        pass


class PushRecognizer(Recognizer):
    """Recognizer fed from outside, e.g. a browser posting its own transcripts.

    Events pushed for a speaker whose stream is not running are dropped.
    """

    def __init__(self):
        self._handlers: Dict[Speaker, EventHandler] = {}

    def active(self, speaker: Speaker) -> bool:
        return Speaker(speaker) in self._handlers

    def start_stream(self, speaker: Speaker, on_event: EventHandler) -> None:
        self._handlers[Speaker(speaker)] = on_event
        logger.info("[RECOGNIZER] stream %s started", Speaker(speaker).value)

    def push(self, event: RecognizerEvent) -> bool:
        """Deliver ``event``. Returns False if its speaker's stream is stopped."""
        handler = self._handlers.get(event.speaker)
        if handler is None:
            logger.debug("[RECOGNIZER] dropping %s for stopped stream %s", type(event).__name__, event.speaker.value)
            return False
        handler(event)
        return True

    def stop_stream(self, speaker: Speaker) -> None:
        if self._handlers.pop(Speaker(speaker), None) is not None:
            logger.info("[RECOGNIZER] stream %s stopped", Speaker(speaker).value)

    def shutdown(self) -> None:
        for speaker in list(self._handlers):
            self.stop_stream(speaker)
