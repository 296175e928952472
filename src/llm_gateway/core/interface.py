"""
Abstract LLM adapter interface definition.

Defines the contract that all provider adapters must implement, together
with the request validation, error normalization and HTTP plumbing they
share.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, NoReturn, Optional

import httpx

from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo
from ..models.usage import CostBreakdown, RateLimitWindow
from .config import IntegrationConfig, ProviderConfig
from .errors import AdapterError, ErrorCode, error_for_status, parse_retry_after
from .paths import first_present, get_path

logger = logging.getLogger(__name__)


MODELS_TIMEOUT_MS = 10000
TEST_CONNECTION_TIMEOUT_MS = 5000


class BaseLLMAdapter(ABC):
    """
    Abstract base class for provider adapters.

    An adapter is built from an immutable integration configuration and holds
    no connection state: every outbound call opens its own HTTP client, so an
    instance can be dropped from a cache at any time.
    """

    PROVIDER_NAME = "LLM"

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        """
        Initialize adapter.

        Args:
            config: Integration configuration
            base_url: Validated base URL override; the provider default is
                used when None
        """
        self.config = config
        self._base_url_override = base_url

    @property
    def provider_config(self) -> ProviderConfig:
        return self.config.provider_config

    @property
    def settings(self) -> Dict[str, Any]:
        return self.config.settings

    @property
    def api_key(self) -> Optional[str]:
        return self.config.credentials.api_key

    # Contract

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Create a chat completion.

        Raises:
            AdapterError: On validation, transport or vendor failure
        """
        pass

    @abstractmethod
    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Create a streaming chat completion.

        Yields:
            Chunks in network-receipt order
        """
        pass

    @abstractmethod
    async def get_available_models(self) -> List[ModelInfo]:
        """List models, falling back to a built-in catalog on failure."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Issue a minimal real request and report reachability."""
        pass

    async def is_model_available(self, model_id: str) -> bool:
        models = await self.get_available_models()
        return any(m.id == model_id for m in models)

    async def get_rate_limit_info(self) -> Optional[RateLimitWindow]:
        # Vendors do not expose windows in a usable form.
        return None

    def get_provider_name(self) -> str:
        return self.PROVIDER_NAME

    # Shared helpers

    def get_default_model(self) -> str:
        return self.provider_config.default_model

    def get_timeout_ms(self, request: Optional[ChatRequest] = None) -> int:
        if request is not None and request.timeout_ms is not None:
            return request.timeout_ms
        return self.provider_config.timeout_ms

    def _timeout(self, timeout_ms: int) -> httpx.Timeout:
        return httpx.Timeout(timeout_ms / 1000.0)

    def resolve_temperature(self, request: ChatRequest) -> float:
        if request.temperature is not None:
            return request.temperature
        return self.provider_config.default_temperature

    def resolve_max_tokens(self, request: ChatRequest) -> int:
        if request.max_tokens is not None:
            return request.max_tokens
        return self.provider_config.default_max_tokens

    def validate_request(self, request: ChatRequest) -> None:
        """
        Check a request before dispatch.

        Raises:
            AdapterError: ``INVALID_REQUEST``, ``MAX_TOKENS_EXCEEDED`` or
                ``INVALID_TEMPERATURE``
        """
        if not request.messages:
            raise self.create_error(
                "Messages array cannot be empty", ErrorCode.INVALID_REQUEST, 400
            )

        limit = self.provider_config.max_tokens_per_request
        if request.max_tokens is not None and limit and request.max_tokens > limit:
            raise self.create_error(
                f"Max tokens {request.max_tokens} exceeds limit {limit}",
                ErrorCode.MAX_TOKENS_EXCEEDED,
                400,
            )

        if request.temperature is not None and not 0 <= request.temperature <= 2:
            raise self.create_error(
                "Temperature must be between 0 and 2",
                ErrorCode.INVALID_TEMPERATURE,
                400,
            )

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> CostBreakdown:
        """Cost of a call; configured prices are per 1000 tokens."""
        input_cost = prompt_tokens / 1000 * self.provider_config.cost_per_input_token
        output_cost = completion_tokens / 1000 * self.provider_config.cost_per_output_token
        return CostBreakdown(
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
        )

    def get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.config.additional_headers or {})
        return headers

    def create_error(
        self,
        message: str,
        code: ErrorCode,
        status_code: Optional[int] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> AdapterError:
        return AdapterError(
            message,
            code,
            self.get_provider_name(),
            status_code=status_code,
            retryable=retryable,
            details=details,
        )

    # Error responses

    def default_error_message(self) -> str:
        return f"Unknown {self.get_provider_name()} error"

    def extract_error_message(self, body: Any) -> str:
        """Human-readable message from an error body."""
        message = first_present(body, "error.message", "message")
        if isinstance(message, str):
            return message

        error = get_path(body, "error")
        if isinstance(error, str) and error:
            return error

        return self.default_error_message()

    def error_body_from_text(self, text: str) -> Any:
        """Wrap a non-JSON error body so ``extract_error_message`` can read it."""
        return {"error": {"message": text}}

    def map_status_error(self, response: httpx.Response, message: str) -> AdapterError:
        return error_for_status(
            response.status_code,
            message,
            self.get_provider_name(),
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )

    async def handle_error_response(self, response: httpx.Response) -> NoReturn:
        """Raise the taxonomy error for a non-2xx response whose body is read."""
        content_type = response.headers.get("content-type", "")
        body: Any
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = self.error_body_from_text(response.text)
        else:
            body = self.error_body_from_text(response.text)

        message = self.extract_error_message(body)
        raise self.map_status_error(response, message)

    def _timeout_error(self) -> AdapterError:
        return self.create_error("Request timeout", ErrorCode.TIMEOUT, 408, retryable=True)

    # HTTP plumbing

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        timeout_ms: Optional[int],
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        stream: bool = False,
    ) -> httpx.Response:
        request = client.build_request(
            method,
            url,
            json=payload,
            headers=headers if headers is not None else self.get_headers(),
            params=params,
        )
        # httpx timeouts bound each socket operation; this bounds the whole call.
        return await asyncio.wait_for(
            client.send(request, stream=stream), timeout=_seconds(timeout_ms)
        )

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        timeout_ms: int,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """POST a JSON body and return the decoded 2xx response."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout(timeout_ms)) as client:
                response = await self._send(
                    client, "POST", url, timeout_ms, payload, headers, params
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise self._timeout_error()
        except httpx.RequestError as e:
            raise self.create_error(
                f"Connection to {self.get_provider_name()} failed: {e}",
                ErrorCode.SERVER_ERROR,
                retryable=True,
            )

        if not response.is_success:
            await self.handle_error_response(response)

        try:
            return response.json()
        except ValueError:
            raise self.create_error(
                "Invalid JSON in provider response",
                ErrorCode.UNKNOWN_ERROR,
                response.status_code,
            )

    async def _get_json(
        self,
        url: str,
        timeout_ms: int = MODELS_TIMEOUT_MS,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET and return the decoded 2xx response; errors propagate."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout(timeout_ms)) as client:
                response = await self._send(
                    client, "GET", url, timeout_ms, headers=headers, params=params
                )
        except asyncio.TimeoutError:
            raise self._timeout_error()
        if not response.is_success:
            await self.handle_error_response(response)
        return response.json()

    @asynccontextmanager
    async def _open_stream(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]],
        timeout_ms: Optional[int],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator["DeadlineStream"]:
        """
        Open a streaming response.

        One deadline covers opening the stream and reading every line; a
        ``timeout_ms`` of None means no deadline. The response and its client
        are released when the block exits, on every path: exhaustion, error,
        deadline expiry, or the consumer closing the generator.
        """
        timeout = self._timeout(timeout_ms) if timeout_ms is not None else httpx.Timeout(None)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                deadline = DeadlineStream.deadline_after(timeout_ms)
                response = await self._send(
                    client, method, url, timeout_ms, payload, headers, params, stream=True
                )
                stream = DeadlineStream(response, deadline)
                try:
                    if not response.is_success:
                        await asyncio.wait_for(response.aread(), timeout=stream.remaining())
                        await self.handle_error_response(response)
                    yield stream
                finally:
                    await response.aclose()
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise self._timeout_error()
        except httpx.RequestError as e:
            raise self.create_error(
                f"Failed to read response stream: {e}",
                ErrorCode.STREAM_ERROR,
                500,
            )

    def parse_chunk(self, raw: str) -> Optional[Any]:
        """Decode one stream payload; malformed payloads are logged and skipped."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse {self.get_provider_name()} stream chunk: {e}")
            return None

    @staticmethod
    def sse_data(line: str) -> Optional[str]:
        """Payload of an SSE ``data:`` line, or None for other lines."""
        if not line.startswith("data:"):
            return None
        return line[5:].strip()

    async def _check_connection(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> bool:
        """
        Reachability check used by ``test_connection``.

        A 400 counts as reachable: the service answered, only the payload
        was rejected.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout(TEST_CONNECTION_TIMEOUT_MS)) as client:
                response = await self._send(
                    client, method, url, TEST_CONNECTION_TIMEOUT_MS, payload, headers, params
                )
        except Exception as e:
            logger.error(f"{self.get_provider_name()} test connection error: {e!r}")
            return False

        if response.is_success or response.status_code == 400:
            return True

        logger.error(
            f"{self.get_provider_name()} test failed: {response.status_code} {response.text[:200]}"
        )
        return False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(integration_id={self.config.integration_id!r}, "
            f"provider={self.get_provider_name()!r})"
        )


def _seconds(timeout_ms: Optional[int]) -> Optional[float]:
    return timeout_ms / 1000.0 if timeout_ms is not None else None


class DeadlineStream:
    """
    Streaming response whose line reads share one absolute deadline.

    Exposes the parts of ``httpx.Response`` the adapters read while
    streaming. Reads past the deadline raise ``asyncio.TimeoutError``.
    """

    def __init__(self, response: httpx.Response, deadline: Optional[float]):
        self.response = response
        self.deadline = deadline

    @staticmethod
    def deadline_after(timeout_ms: Optional[int]) -> Optional[float]:
        if timeout_ms is None:
            return None
        return asyncio.get_running_loop().time() + timeout_ms / 1000.0

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @property
    def status_code(self) -> int:
        return self.response.status_code

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - asyncio.get_running_loop().time(), 0.0)

    async def aiter_lines(self) -> AsyncIterator[str]:
        lines = self.response.aiter_lines()
        try:
            while True:
                try:
                    line = await asyncio.wait_for(lines.__anext__(), timeout=self.remaining())
                except StopAsyncIteration:
                    return
                yield line
        finally:
            await lines.aclose()
