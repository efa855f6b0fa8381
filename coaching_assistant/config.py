"""Configuration management for API keys and session settings."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from coaching_assistant.errors import ConfigurationError

logger = logging.getLogger(__name__)

# config.py is in coaching_assistant/, .env is in project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path, override=True)


DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

DEFAULT_SYSTEM_PROMPT = """You are an AI executive coaching assistant. Your role is to:
- Support the coach by providing insights and suggestions during coaching sessions
- Help identify key themes and patterns in the coachee's responses
- Suggest powerful coaching questions to deepen exploration
- Highlight emotional cues and non-verbal communication patterns
- Provide frameworks and models relevant to the coaching topic
- Maintain strict confidentiality and professional boundaries
- Support the coach without taking over the coaching process"""

# response length -> (temperature, max output tokens)
RESPONSE_LENGTHS: Dict[str, Tuple[float, int]] = {
    "concise": (0.5, 300),
    "medium": (0.7, 800),
    "lengthy": (0.8, 2000),
}

MODEL_TYPES = ("anthropic", "openai", "gemini", "custom")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("[CONFIG] %s is not a number, using %s", name, default)
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("[CONFIG] %s is not an integer, using %s", name, default)
        return default


def _env_custom_models(name: str) -> Tuple[Dict[str, Any], ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("[CONFIG] %s is not valid JSON (%s), ignoring", name, e)
        return ()
    if not isinstance(parsed, list):
        return ()
    return tuple(m for m in parsed if isinstance(m, dict) and m.get("value"))


@dataclass(frozen=True)
class ConfigSnapshot:
    """Read-only settings handed to the core for the lifetime of a session."""
    model: str = DEFAULT_MODEL
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    gemini_api_key: str = ""
    custom_api_key: str = ""
    custom_models: Tuple[Dict[str, Any], ...] = ()
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    silence_threshold: float = 1.5
    response_length: str = "medium"
    response_lengths: Dict[str, Tuple[float, int]] = field(default_factory=lambda: dict(RESPONSE_LENGTHS))
    dialogue_listen_duration: float = 30.0
    number_of_questions: int = 2
    auto_suggest: bool = True
    retention_horizon: float = 300.0
    coach_manual_mode: bool = False
    coachee_auto_mode: bool = True
    methodology: str = "general"
    consume_on_submit: bool = False
    publish_interval: float = 0.25
    history_context_entries: int = 8

    def __post_init__(self):
        if not 1 <= self.number_of_questions <= 3:
            raise ConfigurationError(
                f"number_of_questions must be between 1 and 3, got {self.number_of_questions}"
            )
        if self.silence_threshold <= 0:
            raise ConfigurationError("silence_threshold must be positive")
        if self.response_length not in self.response_lengths:
            raise ConfigurationError(
                f"Unknown response length '{self.response_length}'. "
                f"Valid: {', '.join(self.response_lengths)}"
            )

    @property
    def model_type(self) -> str:
        return get_model_type(self.model, self.custom_models)

    @property
    def generation_params(self) -> Tuple[float, int]:
        """(temperature, max_output_units) for the selected response length."""
        return self.response_lengths[self.response_length]

    def custom_model(self, model: Optional[str] = None) -> Optional[Dict[str, Any]]:
        model = model or self.model
        for entry in self.custom_models:
            if entry.get("value") == model:
                return entry
        return None

    def api_key_for(self, model_type: str) -> str:
        return {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
            "custom": self.custom_api_key,
        }.get(model_type, "")

    def validate(self) -> List[str]:
        """Return the list of missing settings required by the selected model."""
        missing = []
        model_type = self.model_type
        if model_type == "anthropic" and not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY (required for Anthropic models)")
        elif model_type == "openai" and not self.openai_api_key:
            missing.append("OPENAI_API_KEY (required for OpenAI models)")
        elif model_type == "gemini" and not self.gemini_api_key:
            missing.append("GEMINI_API_KEY (required for Gemini models)")
        elif model_type == "custom":
            custom = self.custom_model() or {}
            if not custom.get("endpoint"):
                missing.append(f"endpoint for custom model '{self.model}' (set in CUSTOM_MODELS)")
        return missing

    def require_credentials(self) -> None:
        missing = self.validate()
        if missing:
            raise ConfigurationError("Missing configuration: " + "; ".join(missing))


def get_model_type(model: str, custom_models=()) -> str:
    """Determine the provider family from a model id."""
    if model.startswith("claude"):
        return "anthropic"
    if model.startswith("gpt"):
        return "openai"
    if model.startswith("gemini"):
        return "gemini"
    for entry in custom_models:
        if entry.get("value") == model:
            declared = str(entry.get("type") or "custom").lower()
            return declared if declared in MODEL_TYPES else "custom"
    return "openai"


class Config:
    """Application configuration from environment variables."""

    # Model selection
    COACH_MODEL: str = os.getenv("COACH_MODEL", DEFAULT_MODEL)
    CUSTOM_MODELS: Tuple[Dict[str, Any], ...] = _env_custom_models("CUSTOM_MODELS")

    # Provider credentials
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "").strip()
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "").strip()
    CUSTOM_API_KEY: str = os.getenv("CUSTOM_API_KEY", "").strip()

    COACH_SYSTEM_PROMPT: str = os.getenv("COACH_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)

    # Behavior settings
    SILENCE_THRESHOLD_SECONDS: float = _env_float("SILENCE_THRESHOLD_SECONDS", 1.5)
    RESPONSE_LENGTH: str = os.getenv("RESPONSE_LENGTH", "medium").strip().lower()
    COACH_MANUAL_MODE: bool = _env_bool("COACH_MANUAL_MODE", False)
    COACHEE_AUTO_MODE: bool = _env_bool("COACHEE_AUTO_MODE", True)
    CONSUME_ON_SUBMIT: bool = _env_bool("CONSUME_ON_SUBMIT", False)
    STREAM_PUBLISH_INTERVAL_SECONDS: float = _env_float("STREAM_PUBLISH_INTERVAL_SECONDS", 0.25)
    HISTORY_CONTEXT_ENTRIES: int = _env_int("HISTORY_CONTEXT_ENTRIES", 8)

    # Question generation settings
    DIALOGUE_LISTEN_DURATION_SECONDS: float = _env_float("DIALOGUE_LISTEN_DURATION_SECONDS", 30)
    NUMBER_OF_QUESTIONS: int = _env_int("NUMBER_OF_QUESTIONS", 2)
    AUTO_SUGGEST_QUESTIONS: bool = _env_bool("AUTO_SUGGEST_QUESTIONS", True)
    COACH_METHODOLOGY: str = os.getenv("COACH_METHODOLOGY", "general").strip().lower()

    # Dialogue retention
    COACH_CONTEXT_WINDOW_MINUTES: float = _env_float("COACH_CONTEXT_WINDOW_MINUTES", 5)

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def snapshot(cls) -> ConfigSnapshot:
        """Freeze the current settings into a read-only snapshot."""
        return ConfigSnapshot(
            model=cls.COACH_MODEL,
            anthropic_api_key=cls.ANTHROPIC_API_KEY,
            openai_api_key=cls.OPENAI_API_KEY,
            gemini_api_key=cls.GEMINI_API_KEY,
            custom_api_key=cls.CUSTOM_API_KEY,
            custom_models=cls.CUSTOM_MODELS,
            system_prompt=cls.COACH_SYSTEM_PROMPT,
            silence_threshold=cls.SILENCE_THRESHOLD_SECONDS,
            response_length=cls.RESPONSE_LENGTH,
            dialogue_listen_duration=cls.DIALOGUE_LISTEN_DURATION_SECONDS,
            number_of_questions=max(1, min(3, cls.NUMBER_OF_QUESTIONS)),
            auto_suggest=cls.AUTO_SUGGEST_QUESTIONS,
            retention_horizon=cls.COACH_CONTEXT_WINDOW_MINUTES * 60,
            coach_manual_mode=cls.COACH_MANUAL_MODE,
            coachee_auto_mode=cls.COACHEE_AUTO_MODE,
            methodology=cls.COACH_METHODOLOGY,
            consume_on_submit=cls.CONSUME_ON_SUBMIT,
            publish_interval=cls.STREAM_PUBLISH_INTERVAL_SECONDS,
            history_context_entries=cls.HISTORY_CONTEXT_ENTRIES,
        )

    @classmethod
    def validate(cls) -> List[str]:
        """Validate configuration and return list of missing required settings."""
        return cls.snapshot().validate()
