"""
Persistence collaborators used by the manager.

Integrations come from a configuration store; usage records and rate-limit
windows go to a usage store. Both are abstract so deployments can back them
with a database; the in-memory versions serve file-based setups and tests.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..models.usage import RateLimitScope, RateLimitWindow, UsageRecord
from .config import GatewayConfig, IntegrationConfig


class IntegrationStore(ABC):
    """Read-only lookup of integration configuration."""

    @abstractmethod
    async def get_integration(self, integration_id: int) -> Optional[IntegrationConfig]:
        pass

    @abstractmethod
    async def list_integrations(self) -> List[IntegrationConfig]:
        pass


class UsageStore(ABC):
    """
    Sink for usage records and owner of rate-limit windows.

    Several processes may share one store, so ``increment_rate_limit`` must be
    a single atomic upsert rather than a read followed by a write.
    """

    @abstractmethod
    async def record_usage(self, record: UsageRecord) -> None:
        """Append a usage record. Records are never updated."""
        pass

    @abstractmethod
    async def get_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str
    ) -> Optional[RateLimitWindow]:
        pass

    @abstractmethod
    async def reset_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str, now: datetime
    ) -> None:
        """Start a fresh window at ``now`` with a zero counter."""
        pass

    @abstractmethod
    async def increment_rate_limit(
        self,
        integration_id: int,
        scope: RateLimitScope,
        scope_id: str,
        window_size_sec: int,
        max_requests: int,
        now: datetime,
    ) -> RateLimitWindow:
        """
        Count one request.

        Creates the window with a count of one if it does not exist, starts a
        new window if the current one has expired, and increments otherwise.
        """
        pass


class InMemoryIntegrationStore(IntegrationStore):
    """Integrations held in a dict, typically loaded from YAML."""

    def __init__(self, integrations: Optional[List[IntegrationConfig]] = None):
        self._integrations: Dict[int, IntegrationConfig] = {
            i.integration_id: i for i in integrations or []
        }

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "InMemoryIntegrationStore":
        return cls(config.integrations)

    def add(self, integration: IntegrationConfig) -> None:
        self._integrations[integration.integration_id] = integration

    async def get_integration(self, integration_id: int) -> Optional[IntegrationConfig]:
        return self._integrations.get(integration_id)

    async def list_integrations(self) -> List[IntegrationConfig]:
        return list(self._integrations.values())


_WindowKey = Tuple[int, str, str]


class InMemoryUsageStore(UsageStore):
    """Process-local usage store; the lock makes each mutation atomic."""

    def __init__(self):
        self.records: List[UsageRecord] = []
        self._windows: Dict[_WindowKey, RateLimitWindow] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(integration_id: int, scope: RateLimitScope, scope_id: str) -> _WindowKey:
        return (integration_id, RateLimitScope(scope).value, scope_id)

    def set_window(self, window: RateLimitWindow) -> None:
        self._windows[self._key(window.integration_id, window.scope, window.scope_id)] = window

    async def record_usage(self, record: UsageRecord) -> None:
        async with self._lock:
            self.records.append(record)

    async def get_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str
    ) -> Optional[RateLimitWindow]:
        window = self._windows.get(self._key(integration_id, scope, scope_id))
        return window.model_copy() if window is not None else None

    async def reset_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str, now: datetime
    ) -> None:
        key = self._key(integration_id, scope, scope_id)
        async with self._lock:
            window = self._windows.get(key)
            if window is not None:
                self._windows[key] = window.model_copy(
                    update={"window_start": now, "current_requests": 0}
                )

    async def increment_rate_limit(
        self,
        integration_id: int,
        scope: RateLimitScope,
        scope_id: str,
        window_size_sec: int,
        max_requests: int,
        now: datetime,
    ) -> RateLimitWindow:
        key = self._key(integration_id, scope, scope_id)
        async with self._lock:
            window = self._windows.get(key)
            if window is None:
                window = RateLimitWindow(
                    integration_id=integration_id,
                    scope=scope,
                    scope_id=scope_id,
                    window_start=now,
                    window_size_sec=window_size_sec,
                    max_requests=max_requests,
                    current_requests=1,
                )
            elif window.is_expired(now):
                window = window.model_copy(update={"window_start": now, "current_requests": 1})
            else:
                window = window.model_copy(
                    update={"current_requests": window.current_requests + 1}
                )
            self._windows[key] = window
            return window.model_copy()
