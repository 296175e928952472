"""
Unified request models for the LLM gateway.
"""

from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single conversation message."""
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """
    Normalized chat completion request.

    Range checks (non-empty messages, temperature, max tokens ceiling) are
    performed by the adapter so they surface as typed adapter errors before
    any network call is made.
    """
    messages: List[ChatMessage] = Field(default_factory=list)

    # Generation parameters; unset values fall back to the integration defaults
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    # Accounting
    user_id: str
    project_id: Optional[int] = None
    feature: str

    # Per-request deadline override in milliseconds
    timeout_ms: Optional[int] = None

    metadata: Optional[Dict[str, Any]] = None

    def system_messages(self) -> List[ChatMessage]:
        """Messages with the system role, in order."""
        return [m for m in self.messages if m.role == "system"]

    def conversation_messages(self) -> List[ChatMessage]:
        """Messages without the system role, in order."""
        return [m for m in self.messages if m.role != "system"]

    def to_message_dicts(self) -> List[Dict[str, str]]:
        """Messages as plain role/content dicts."""
        return [{"role": m.role, "content": m.content} for m in self.messages]
