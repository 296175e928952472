"""
Adapter registry: the provider -> adapter class switch.
"""

import logging
from typing import Dict, List, Optional, Type, Union

from .config import IntegrationConfig, LLMProvider
from .errors import UnsupportedProviderError
from .interface import BaseLLMAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Maps provider identifiers to adapter classes.

    Registries are plain objects; each manager owns one, so tests can build
    independent registries with their own adapter classes.
    """

    def __init__(self):
        self._adapters: Dict[str, Type[BaseLLMAdapter]] = {}

    def register_adapter(
        self,
        provider: Union[LLMProvider, str],
        adapter_class: Type[BaseLLMAdapter]
    ) -> None:
        """
        Register an adapter class.

        Args:
            provider: Provider identifier (e.g. ``LLMProvider.OPENAI``)
            adapter_class: Adapter class to register
        """
        key = self._key(provider)
        self._adapters[key] = adapter_class
        logger.info(f"Registered LLM adapter: {key}")

    def is_supported(self, provider: Union[LLMProvider, str]) -> bool:
        return self._key(provider) in self._adapters

    def list_providers(self) -> List[str]:
        return list(self._adapters)

    def create_adapter(
        self,
        config: IntegrationConfig,
        base_url: Optional[str] = None
    ) -> BaseLLMAdapter:
        """
        Construct the adapter for an integration.

        Args:
            config: Integration configuration
            base_url: Validated base URL, or None for the provider default

        Raises:
            UnsupportedProviderError: If no adapter is registered for the provider
            AdapterError: If the adapter rejects its configuration
        """
        key = self._key(config.provider)
        adapter_class = self._adapters.get(key)
        if adapter_class is None:
            raise UnsupportedProviderError(config.provider)

        adapter = adapter_class(config, base_url)
        logger.info(
            f"Created {adapter.get_provider_name()} adapter for integration {config.integration_id}"
        )
        return adapter

    @staticmethod
    def _key(provider: Union[LLMProvider, str]) -> str:
        if isinstance(provider, LLMProvider):
            return provider.value
        return str(provider).upper()


def create_default_registry() -> AdapterRegistry:
    """Registry with every built-in provider adapter."""
    from ..adapters import (
        OpenAIAdapter,
        AzureOpenAIAdapter,
        AnthropicAdapter,
        GeminiAdapter,
        OllamaAdapter,
        CustomLLMAdapter,
    )

    registry = AdapterRegistry()
    registry.register_adapter(LLMProvider.OPENAI, OpenAIAdapter)
    registry.register_adapter(LLMProvider.AZURE_OPENAI, AzureOpenAIAdapter)
    registry.register_adapter(LLMProvider.ANTHROPIC, AnthropicAdapter)
    registry.register_adapter(LLMProvider.GEMINI, GeminiAdapter)
    registry.register_adapter(LLMProvider.OLLAMA, OllamaAdapter)
    registry.register_adapter(LLMProvider.CUSTOM_LLM, CustomLLMAdapter)
    return registry
