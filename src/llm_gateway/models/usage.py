"""
Usage accounting and rate-limit window models.
"""

from typing import Optional
from datetime import datetime, timedelta, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitScope(str, Enum):
    """What a rate-limit window counts against."""
    USER = "user"
    INTEGRATION = "integration"


class RateLimitWindow(BaseModel):
    """
    Fixed-interval request counter.

    The counter is reset once ``now`` passes ``window_start + window_size_sec``.
    """
    integration_id: int
    scope: RateLimitScope = RateLimitScope.USER
    scope_id: str
    window_start: datetime = Field(default_factory=utcnow)
    window_size_sec: int = 60
    max_requests: int = 60
    current_requests: int = 0
    block_on_exceed: bool = True
    is_active: bool = True

    @property
    def window_end(self) -> datetime:
        return self.window_start + timedelta(seconds=self.window_size_sec)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.window_end

    def is_exhausted(self) -> bool:
        return self.current_requests >= self.max_requests


class CostBreakdown(BaseModel):
    """Monetary cost of a single call."""
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


class UsageRecord(BaseModel):
    """Append-only usage fact, written once per request or stream."""
    model_config = ConfigDict(frozen=True)

    integration_id: int
    user_id: str
    project_id: Optional[int] = None
    feature: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0
    success: bool
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
