"""Provider factory for the supported model families."""

import logging
from typing import Callable, Optional, Type

from coaching_assistant.config import ConfigSnapshot
from coaching_assistant.errors import ConfigurationError
from coaching_assistant.providers.base_provider import ModelProvider, describe_error

logger = logging.getLogger(__name__)


def _provider_class(model_type: str) -> Type[ModelProvider]:
    # SDK imports stay lazy so only the selected provider's library is loaded
    if model_type == "anthropic":
        from coaching_assistant.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider
    if model_type == "openai":
        from coaching_assistant.providers.openai_provider import OpenAIProvider
        return OpenAIProvider
    if model_type == "gemini":
        from coaching_assistant.providers.gemini_provider import GeminiProvider
        return GeminiProvider
    if model_type == "custom":
        from coaching_assistant.providers.custom_provider import CustomProvider
        return CustomProvider
    raise ConfigurationError(
        f"Unsupported model type: '{model_type}'. "
        f"Supported types are: 'anthropic', 'openai', 'gemini', 'custom'"
    )


def create_provider(settings: ConfigSnapshot) -> ModelProvider:
    """Factory function to create the provider for the selected model.

    Args:
        settings: Configuration snapshot naming the model and credentials

    Returns:
        ModelProvider instance

    Raises:
        ConfigurationError: If a credential the model needs is missing
    """
    settings.require_credentials()
    model_type = settings.model_type
    custom = settings.custom_model() or {}
    provider_cls = _provider_class(model_type)
    provider = provider_cls(
        model=settings.model,
        api_key=settings.api_key_for(model_type),
        endpoint=custom.get("endpoint") or None,
    )
    logger.info("[PROVIDER] %s initialized for model %s", model_type, settings.model)
    return provider


class ProviderHandle:
    """Lazily created provider, resolved when a query is about to be built.

    Resolution raises ConfigurationError while credentials are missing, so a
    misconfigured session fails on use rather than at startup.
    """

    def __init__(
        self,
        settings: ConfigSnapshot,
        factory: Callable[[ConfigSnapshot], ModelProvider] = create_provider,
    ):
        self._settings = settings
        self._factory = factory
        self._provider: Optional[ModelProvider] = None

    def __call__(self) -> ModelProvider:
        if self._provider is None:
            self._provider = self._factory(self._settings)
        return self._provider

    def reset(self, settings: ConfigSnapshot) -> None:
        self._settings = settings
        self._provider = None


__all__ = ["ModelProvider", "ProviderHandle", "create_provider", "describe_error"]
