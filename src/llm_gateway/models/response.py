"""
Unified response models for the LLM gateway.
"""

from typing import Optional, List
from enum import Enum
from pydantic import BaseModel


class FinishReason(str, Enum):
    """Reasons for completion finishing."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


class ChatResponse(BaseModel):
    """Normalized chat completion response."""
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    finish_reason: Optional[FinishReason] = None

    @classmethod
    def build(
        cls,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        finish_reason: Optional[FinishReason] = None,
    ) -> "ChatResponse":
        """Create a response whose total is the sum of both token counts."""
        return cls(
            content=content,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            finish_reason=finish_reason,
        )


class StreamChunk(BaseModel):
    """One incremental piece of a streamed completion."""
    delta: str
    model: str
    finish_reason: Optional[FinishReason] = None


class ModelInfo(BaseModel):
    """Description of a model offered by a provider."""
    id: str
    name: str
    context_window: int
    max_output_tokens: int
    input_cost_per_1k: Optional[float] = None
    output_cost_per_1k: Optional[float] = None
    capabilities: Optional[List[str]] = None
