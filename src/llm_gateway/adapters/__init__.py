"""
Provider adapters.
"""

from .openai_adapter import OpenAIAdapter
from .azure_openai_adapter import AzureOpenAIAdapter
from .anthropic_adapter import AnthropicAdapter
from .gemini_adapter import GeminiAdapter
from .ollama_adapter import OllamaAdapter
from .custom_adapter import CustomLLMAdapter

__all__ = [
    "OpenAIAdapter",
    "AzureOpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "OllamaAdapter",
    "CustomLLMAdapter",
]
