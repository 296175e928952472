"""
Ollama adapter for locally hosted models.

Talks to the Ollama daemon's native API. Streaming responses are
newline-delimited JSON, one object per line, ending with ``done: true``.
"""

import asyncio
import math
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

import httpx

from ..core.config import IntegrationConfig
from ..core.errors import AdapterError, ErrorCode
from ..core.interface import BaseLLMAdapter
from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo, FinishReason

logger = logging.getLogger(__name__)


DEFAULT_KEEP_ALIVE = "5m"

# Keyed by model family (the name before the tag)
KNOWN_MODEL_FAMILIES: Dict[str, Dict[str, Any]] = {
    "llama2": {"context_window": 4096, "max_output_tokens": 4096, "capabilities": ["text", "code"]},
    "llama3": {"context_window": 8192, "max_output_tokens": 8192, "capabilities": ["text", "code"]},
    "mistral": {"context_window": 8192, "max_output_tokens": 8192, "capabilities": ["text", "code"]},
    "mixtral": {"context_window": 32768, "max_output_tokens": 32768, "capabilities": ["text", "code"]},
    "phi": {"context_window": 2048, "max_output_tokens": 2048, "capabilities": ["text"]},
    "phi3": {"context_window": 128000, "max_output_tokens": 4096, "capabilities": ["text", "code"]},
    "codellama": {"context_window": 16384, "max_output_tokens": 16384, "capabilities": ["code"]},
    "deepseek-coder": {"context_window": 16384, "max_output_tokens": 16384, "capabilities": ["code"]},
    "gemma": {"context_window": 8192, "max_output_tokens": 8192, "capabilities": ["text", "code"]},
    "qwen": {"context_window": 32768, "max_output_tokens": 32768, "capabilities": ["text", "code"]},
}

_UNKNOWN_FAMILY = {"context_window": 4096, "max_output_tokens": 4096, "capabilities": ["text"]}


def format_size(size: int) -> str:
    """Human-readable byte count, e.g. ``3.8 GB``."""
    units = ["B", "KB", "MB", "GB"]
    if not size or size <= 0:
        return "0 B"
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{round(size / (1024 ** i), 1):g} {units[i]}"


class OllamaAdapter(BaseLLMAdapter):
    """
    Ollama adapter.

    Provider settings:
        keep_alive: How long the daemon keeps the model loaded (default ``5m``)
    """

    PROVIDER_NAME = "Ollama"
    OLLAMA_BASE_URL = "http://localhost:11434"

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        super().__init__(config, base_url)
        self._base_url = (base_url or self.OLLAMA_BASE_URL).rstrip("/")
        self._keep_alive = self.settings.get("keep_alive") or DEFAULT_KEEP_ALIVE
        logger.info(f"Initialized Ollama adapter at {self._base_url}")

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        return {
            "model": request.model or self.get_default_model(),
            "messages": request.to_message_dicts(),
            "stream": stream,
            "options": {
                "temperature": self.resolve_temperature(request),
                "num_predict": self.resolve_max_tokens(request),
            },
            "keep_alive": self._keep_alive,
        }

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Non-streaming chat via ``/api/chat``."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=False)

        data = await self._post_json(
            f"{self._base_url}/api/chat", payload, self.get_timeout_ms(request)
        )

        message = data.get("message") or {}
        return ChatResponse.build(
            content=message.get("content") or data.get("response") or "",
            model=data.get("model") or payload["model"],
            prompt_tokens=data.get("prompt_eval_count") or 0,
            completion_tokens=data.get("eval_count") or 0,
            finish_reason=FinishReason.STOP if data.get("done") else FinishReason.ERROR,
        )

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream NDJSON chunks until ``done: true``."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=True)

        async with self._open_stream(
            "POST", f"{self._base_url}/api/chat", payload, self.get_timeout_ms(request)
        ) as response:
            async for line in response.aiter_lines():
                if not line.strip():
                    continue

                chunk = self.parse_chunk(line)
                if not isinstance(chunk, dict):
                    continue

                message = chunk.get("message") or {}
                delta = message.get("content") or chunk.get("response") or ""
                done = bool(chunk.get("done"))

                if delta or done:
                    yield StreamChunk(
                        delta=delta,
                        model=chunk.get("model") or payload["model"],
                        finish_reason=FinishReason.STOP if done else None,
                    )
                if done:
                    return

    async def get_available_models(self) -> List[ModelInfo]:
        """
        Models installed on the daemon, from ``/api/tags``.

        Ollama has no fixed catalog, so a failed fetch yields an empty list.
        """
        try:
            data = await self._get_json(f"{self._base_url}/api/tags")
        except Exception as e:
            logger.warning(f"Failed to fetch Ollama models: {e}")
            return []

        return [
            self._model_info(m)
            for m in data.get("models") or []
            if isinstance(m, dict) and m.get("name")
        ]

    def _model_info(self, model: Dict[str, Any]) -> ModelInfo:
        name = model["name"]
        family = KNOWN_MODEL_FAMILIES.get(name.split(":")[0].lower(), _UNKNOWN_FAMILY)
        return ModelInfo(
            id=name,
            name=f"{name} ({format_size(model.get('size') or 0)})",
            input_cost_per_1k=0,
            output_cost_per_1k=0,
            **family,
        )

    async def pull_model(self, model_name: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Pull a model onto the daemon.

        Yields:
            Progress objects as reported by Ollama, ending with the one whose
            ``status`` is ``success``
        """
        # Pulls take as long as the download; no deadline applies.
        async with self._open_stream(
            "POST", f"{self._base_url}/api/pull", {"name": model_name}, None
        ) as response:
            async for line in response.aiter_lines():
                if not line.strip():
                    continue

                progress = self.parse_chunk(line)
                if not isinstance(progress, dict):
                    continue

                yield progress
                if progress.get("status") == "success":
                    return

    async def delete_model(self, model_name: str) -> None:
        """Remove a model from the daemon."""
        timeout_ms = self.get_timeout_ms()
        try:
            async with httpx.AsyncClient(timeout=self._timeout(timeout_ms)) as client:
                response = await self._send(
                    client,
                    "DELETE",
                    f"{self._base_url}/api/delete",
                    timeout_ms,
                    payload={"name": model_name},
                )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            raise self._timeout_error()
        except httpx.RequestError as e:
            raise self.create_error(
                f"Connection to Ollama failed: {e}", ErrorCode.SERVER_ERROR, retryable=True
            )

        if not response.is_success:
            await self.handle_error_response(response)

        logger.info(f"Deleted Ollama model {model_name}")

    async def test_connection(self) -> bool:
        return await self._check_connection("GET", f"{self._base_url}/api/tags")

    def extract_error_message(self, body: Any) -> str:
        if isinstance(body, dict):
            if isinstance(body.get("error"), str) and body["error"]:
                return body["error"]
            if body.get("message"):
                return str(body["message"])
        return self.default_error_message()

    def error_body_from_text(self, text: str) -> Any:
        return {"error": text}

    def map_status_error(self, response: httpx.Response, message: str) -> AdapterError:
        lowered = message.lower()
        if response.status_code == 404 and "model" in lowered and "not found" in lowered:
            return self.create_error(
                message,
                ErrorCode.MODEL_NOT_FOUND,
                404,
                details={"suggestion": "Try pulling the model first"},
            )
        return super().map_status_error(response, message)
