"""
Core gateway components.
"""

from .interface import BaseLLMAdapter
from .registry import AdapterRegistry, create_default_registry
from .config import (
    LLMProvider,
    Credentials,
    ProviderConfig,
    IntegrationConfig,
    GatewayConfig,
    load_config,
)
from .errors import (
    ErrorCode,
    GatewayError,
    AdapterError,
    IntegrationNotFoundError,
    UnsupportedProviderError,
)
from .store import (
    IntegrationStore,
    UsageStore,
    InMemoryIntegrationStore,
    InMemoryUsageStore,
)
from .manager import LLMManager

__all__ = [
    "BaseLLMAdapter",
    "AdapterRegistry",
    "create_default_registry",
    "LLMProvider",
    "Credentials",
    "ProviderConfig",
    "IntegrationConfig",
    "GatewayConfig",
    "load_config",
    "ErrorCode",
    "GatewayError",
    "AdapterError",
    "IntegrationNotFoundError",
    "UnsupportedProviderError",
    "IntegrationStore",
    "UsageStore",
    "InMemoryIntegrationStore",
    "InMemoryUsageStore",
    "LLMManager",
]
