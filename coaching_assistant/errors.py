"""Error taxonomy for the coaching assistant.

None of these are fatal: they are reported to the caller (or published as a
notification when raised on a timer-driven path) and the caller decides
whether to re-trigger.
"""


class CoachingError(Exception):
    """Base class for all errors surfaced to the UI layer."""

    kind = "error"

    def to_dict(self):
        return {"kind": self.kind, "detail": str(self)}


class RecognitionError(CoachingError):
    """The recognizer reported a session error for one speaker."""

    kind = "recognition"

    def __init__(self, speaker: str, detail: str):
        super().__init__(f"Recognition failed for speaker {speaker}: {detail}")
        self.speaker = speaker
        self.detail = detail


class ModelRequestError(CoachingError):
    """A streaming or single-shot model call failed."""

    kind = "model_request"

    def __init__(self, detail: str, provider: str = ""):
        super().__init__(detail)
        self.provider = provider


class ConfigurationError(CoachingError):
    """A credential or setting required by the selected provider is missing."""

    kind = "configuration"


class ParseError(CoachingError):
    """A question-generation reply yielded no usable questions."""

    kind = "parse"

    def __init__(self, detail: str, raw: str = ""):
        super().__init__(detail)
        self.raw = raw
