"""
LLM manager: adapter cache, request orchestration and usage accounting.

One manager is built by the process entry point and passed to callers; it
holds the only shared mutable state in the gateway, the adapter cache.
"""

import asyncio
import logging
import math
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo
from ..models.usage import RateLimitScope, UsageRecord, utcnow
from .config import IntegrationConfig, LLMProvider
from .errors import AdapterError, ErrorCode, IntegrationNotFoundError, UnsupportedProviderError
from .interface import BaseLLMAdapter
from .registry import AdapterRegistry, create_default_registry
from .security import get_validated_base_url
from .store import IntegrationStore, UsageStore

logger = logging.getLogger(__name__)


RATE_LIMIT_WINDOW_SEC = 60

# Streaming usage is estimated from output length. Low precision.
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class LLMManager:
    """
    Entry point for chat requests against configured integrations.

    Adapters are built lazily on first use per integration and cached until
    ``clear_cache``. Concurrent first requests for one integration share a
    single construction; a failed construction is not cached.

    Rate limiting is advisory: ``chat`` and ``chat_stream`` only count
    requests, callers that want enforcement must call ``check_rate_limit``
    before dispatching.
    """

    def __init__(
        self,
        integrations: IntegrationStore,
        usage: UsageStore,
        registry: Optional[AdapterRegistry] = None,
    ):
        """
        Initialize manager.

        Args:
            integrations: Source of integration configuration
            usage: Sink for usage records and rate-limit windows
            registry: Provider -> adapter mapping (all built-in adapters if None)
        """
        self._integrations = integrations
        self._usage = usage
        self._registry = registry or create_default_registry()
        self._adapters: Dict[int, BaseLLMAdapter] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        # Bumped on eviction so adapters built from stale config are not cached.
        self._epoch = 0
        self._generations: Dict[int, int] = {}

    # Adapter lifecycle

    async def get_adapter(self, integration_id: int) -> BaseLLMAdapter:
        """
        Return the cached adapter for an integration, building it if needed.

        Raises:
            IntegrationNotFoundError: If the integration is unknown or inactive
            UnsupportedProviderError: If the provider has no adapter
            AdapterError: If the adapter rejects its configuration
        """
        adapter = self._adapters.get(integration_id)
        if adapter is not None:
            return adapter

        lock = self._locks.setdefault(integration_id, asyncio.Lock())
        async with lock:
            adapter = self._adapters.get(integration_id)
            if adapter is None:
                generation = self._generation(integration_id)
                adapter = await self._create_adapter(integration_id)
                if self._generation(integration_id) == generation:
                    self._adapters[integration_id] = adapter
                else:
                    logger.debug(f"Cache cleared during build of adapter {integration_id}")
        return adapter

    def _generation(self, integration_id: int) -> Tuple[int, int]:
        return self._epoch, self._generations.get(integration_id, 0)

    async def _create_adapter(self, integration_id: int) -> BaseLLMAdapter:
        config = await self._integrations.get_integration(integration_id)
        if config is None or not config.is_active:
            raise IntegrationNotFoundError(integration_id)

        if not self._registry.is_supported(config.provider):
            raise UnsupportedProviderError(config.provider)

        provider = _provider_key(config)
        address = config.credentials.address
        if provider == LLMProvider.CUSTOM_LLM.value:
            address = address or config.settings.get("endpoint")

        base_url = get_validated_base_url(provider, address)
        if provider == LLMProvider.CUSTOM_LLM.value and address and base_url is None:
            raise AdapterError(
                f"Custom API endpoint {address!r} is not allowed",
                ErrorCode.MISSING_ENDPOINT,
                config.name or "Custom LLM",
                status_code=400,
            )

        return self._registry.create_adapter(config, base_url)

    def clear_cache(self, integration_id: Optional[int] = None) -> None:
        """
        Evict one cached adapter, or all of them.

        The next request rebuilds from current configuration, which is how
        rotated credentials are picked up.
        """
        if integration_id is None:
            self._adapters.clear()
            self._epoch += 1
            logger.info("Cleared all cached LLM adapters")
        else:
            self._adapters.pop(integration_id, None)
            self._generations[integration_id] = self._generations.get(integration_id, 0) + 1
            logger.info(f"Cleared cached LLM adapter for integration {integration_id}")

    # Requests

    async def chat(self, integration_id: int, request: ChatRequest) -> ChatResponse:
        """
        Send a chat request through an integration.

        Successful calls are recorded with their cost and counted against the
        user's rate-limit window. Failures are recorded with zeroed usage and
        re-raised unchanged.
        """
        adapter = await self.get_adapter(integration_id)

        try:
            response = await adapter.chat(request)
        except Exception as e:
            await self._track_error(integration_id, request, e)
            raise

        await self._track_usage(integration_id, request, response, adapter)
        await self._update_rate_limit(integration_id, request.user_id, adapter)
        return response

    async def chat_stream(
        self,
        integration_id: int,
        request: ChatRequest
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat request through an integration.

        Usage is estimated from the streamed text once the stream completes;
        only output cost is charged. An error mid-stream is recorded and
        re-raised to the consumer. Closing this generator closes the
        provider stream.
        """
        adapter = await self.get_adapter(integration_id)
        parts: List[str] = []

        try:
            async with aclosing(adapter.chat_stream(request)) as stream:
                async for chunk in stream:
                    parts.append(chunk.delta)
                    yield chunk
        except Exception as e:
            await self._track_error(integration_id, request, e)
            raise

        await self._track_stream_usage(integration_id, request, "".join(parts), adapter)
        await self._update_rate_limit(integration_id, request.user_id, adapter)

    # Rate limiting

    async def check_rate_limit(self, integration_id: int, user_id: str) -> bool:
        """
        Whether the user may send another request through the integration.

        No window allows. An expired window is reset and allows. A full
        window denies only when it blocks on exceed.
        """
        window = await self._usage.get_rate_limit(
            integration_id, RateLimitScope.USER, user_id
        )
        if window is None or not window.is_active:
            return True

        now = utcnow()
        if window.is_expired(now):
            logger.warning(
                f"Rate limit window expired for user {user_id} on integration {integration_id}, resetting"
            )
            await self._usage.reset_rate_limit(
                integration_id, RateLimitScope.USER, user_id, now
            )
            return True

        if window.is_exhausted():
            return not window.block_on_exceed

        return True

    async def _update_rate_limit(
        self,
        integration_id: int,
        user_id: str,
        adapter: BaseLLMAdapter
    ) -> None:
        try:
            await self._usage.increment_rate_limit(
                integration_id,
                RateLimitScope.USER,
                user_id,
                window_size_sec=RATE_LIMIT_WINDOW_SEC,
                max_requests=adapter.provider_config.max_requests_per_minute,
                now=utcnow(),
            )
        except Exception as e:
            logger.error(f"Failed to update rate limit for integration {integration_id}: {e}")

    # Usage tracking

    async def _record(self, record: UsageRecord) -> None:
        try:
            await self._usage.record_usage(record)
        except Exception as e:
            logger.error(f"Failed to record LLM usage for integration {record.integration_id}: {e}")

    async def _track_usage(
        self,
        integration_id: int,
        request: ChatRequest,
        response: ChatResponse,
        adapter: BaseLLMAdapter,
    ) -> None:
        cost = adapter.calculate_cost(response.prompt_tokens, response.completion_tokens)
        await self._record(
            UsageRecord(
                integration_id=integration_id,
                user_id=request.user_id,
                project_id=request.project_id,
                feature=request.feature,
                model=response.model,
                prompt_tokens=response.prompt_tokens,
                completion_tokens=response.completion_tokens,
                total_tokens=response.total_tokens,
                input_cost=cost.input_cost,
                output_cost=cost.output_cost,
                total_cost=cost.total_cost,
                success=True,
            )
        )

    async def _track_stream_usage(
        self,
        integration_id: int,
        request: ChatRequest,
        content: str,
        adapter: BaseLLMAdapter,
    ) -> None:
        completion_tokens = estimate_tokens(content)
        output_cost = completion_tokens / 1000 * adapter.provider_config.cost_per_output_token
        await self._record(
            UsageRecord(
                integration_id=integration_id,
                user_id=request.user_id,
                project_id=request.project_id,
                feature=request.feature,
                model=request.model or adapter.get_default_model(),
                prompt_tokens=0,
                completion_tokens=completion_tokens,
                total_tokens=completion_tokens,
                input_cost=0.0,
                output_cost=output_cost,
                total_cost=output_cost,
                success=True,
            )
        )

    async def _track_error(
        self,
        integration_id: int,
        request: ChatRequest,
        error: Exception,
    ) -> None:
        message = error.message if isinstance(error, AdapterError) else str(error)
        await self._record(
            UsageRecord(
                integration_id=integration_id,
                user_id=request.user_id,
                project_id=request.project_id,
                feature=request.feature,
                model=request.model or "unknown",
                success=False,
                error=message,
            )
        )

    # Integration queries

    async def get_default_integration(self) -> Optional[int]:
        """Id of the active integration flagged as default, or None."""
        for integration in await self._integrations.list_integrations():
            if integration.is_active and integration.provider_config.is_default:
                return integration.integration_id
        return None

    async def list_available_integrations(self) -> List[Dict[str, Any]]:
        """Active integrations as ``{id, name, provider}`` summaries."""
        return [
            {
                "id": integration.integration_id,
                "name": integration.name,
                "provider": _provider_key(integration),
            }
            for integration in await self._integrations.list_integrations()
            if integration.is_active
        ]

    async def test_connection(self, integration_id: int) -> bool:
        """Reachability of an integration; False on any failure."""
        try:
            adapter = await self.get_adapter(integration_id)
            return await adapter.test_connection()
        except Exception as e:
            logger.error(f"Connection test failed for integration {integration_id}: {e}")
            return False

    async def get_available_models(self, integration_id: int) -> List[ModelInfo]:
        adapter = await self.get_adapter(integration_id)
        return await adapter.get_available_models()


def _provider_key(config: IntegrationConfig) -> str:
    if isinstance(config.provider, LLMProvider):
        return config.provider.value
    return str(config.provider).upper()
