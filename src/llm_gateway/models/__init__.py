"""
LLM gateway data models.
"""

from .request import ChatMessage, ChatRequest
from .response import ChatResponse, StreamChunk, ModelInfo, FinishReason
from .usage import (
    CostBreakdown,
    RateLimitScope,
    RateLimitWindow,
    UsageRecord,
)

__all__ = [
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
]
