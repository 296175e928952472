"""
LLM Gateway

Vendor-neutral chat completion gateway: one request shape dispatched to
OpenAI, Azure OpenAI, Anthropic, Gemini, Ollama or a configurable HTTP
endpoint, with normalized errors, usage accounting and rate limiting.
"""

from .core import (
    BaseLLMAdapter,
    AdapterRegistry,
    create_default_registry,
    LLMProvider,
    Credentials,
    ProviderConfig,
    IntegrationConfig,
    GatewayConfig,
    load_config,
    ErrorCode,
    GatewayError,
    AdapterError,
    IntegrationNotFoundError,
    UnsupportedProviderError,
    IntegrationStore,
    UsageStore,
    InMemoryIntegrationStore,
    InMemoryUsageStore,
    LLMManager,
)
from .models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    StreamChunk,
    ModelInfo,
    FinishReason,
    CostBreakdown,
    RateLimitScope,
    RateLimitWindow,
    UsageRecord,
)
from .adapters import (
    OpenAIAdapter,
    AzureOpenAIAdapter,
    AnthropicAdapter,
    GeminiAdapter,
    OllamaAdapter,
    CustomLLMAdapter,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "BaseLLMAdapter",
    "AdapterRegistry",
    "create_default_registry",
    "LLMManager",
    "LLMProvider",
    "Credentials",
    "ProviderConfig",
    "IntegrationConfig",
    "GatewayConfig",
    "load_config",
    "IntegrationStore",
    "UsageStore",
    "InMemoryIntegrationStore",
    "InMemoryUsageStore",
    # Errors
    "ErrorCode",
    "GatewayError",
    "AdapterError",
    "IntegrationNotFoundError",
    "UnsupportedProviderError",
    # Models
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "StreamChunk",
    "ModelInfo",
    "FinishReason",
    "CostBreakdown",
    "RateLimitScope",
    "RateLimitWindow",
    "UsageRecord",
    # Adapters
    "OpenAIAdapter",
    "AzureOpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "OllamaAdapter",
    "CustomLLMAdapter",
]
