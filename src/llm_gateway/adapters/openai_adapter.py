"""
OpenAI chat completions adapter.

Also the wire shape for Azure OpenAI, which only changes how URLs and
authentication headers are built.
"""

import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..core.config import IntegrationConfig
from ..core.errors import ErrorCode
from ..core.interface import BaseLLMAdapter
from ..core.paths import first_present, get_path
from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo, FinishReason

logger = logging.getLogger(__name__)


OPENAI_MODEL_CATALOG: Dict[str, Dict[str, Any]] = {
    "gpt-4-turbo-preview": {
        "name": "GPT-4 Turbo",
        "context_window": 128000,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.01,
        "output_cost_per_1k": 0.03,
        "capabilities": ["text", "code", "vision"],
    },
    "gpt-4": {
        "name": "GPT-4",
        "context_window": 8192,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.03,
        "output_cost_per_1k": 0.06,
        "capabilities": ["text", "code"],
    },
    "gpt-3.5-turbo": {
        "name": "GPT-3.5 Turbo",
        "context_window": 16384,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.0005,
        "output_cost_per_1k": 0.0015,
        "capabilities": ["text", "code"],
    },
    "gpt-4o": {
        "name": "GPT-4o",
        "context_window": 128000,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.005,
        "output_cost_per_1k": 0.015,
        "capabilities": ["text", "code", "vision"],
    },
    "gpt-4o-mini": {
        "name": "GPT-4o Mini",
        "context_window": 128000,
        "max_output_tokens": 16384,
        "input_cost_per_1k": 0.00015,
        "output_cost_per_1k": 0.0006,
        "capabilities": ["text", "code", "vision"],
    },
}

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def map_openai_finish_reason(reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(reason or "", FinishReason.ERROR)


class OpenAIAdapter(BaseLLMAdapter):
    """
    OpenAI API adapter.

    System messages stay in-line in the messages array. Streaming is SSE
    terminated by ``data: [DONE]``.
    """

    PROVIDER_NAME = "OpenAI"
    OPENAI_BASE_URL = "https://api.openai.com/v1"

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        super().__init__(config, base_url)
        self._base_url = self._resolve_base_url(base_url)
        self._check_credentials()
        logger.info(f"Initialized {self.get_provider_name()} adapter at {self._base_url}")

    def _resolve_base_url(self, base_url: Optional[str]) -> str:
        return (base_url or self.OPENAI_BASE_URL).rstrip("/")

    def _check_credentials(self) -> None:
        if not self.api_key:
            raise self.create_error(
                f"{self.get_provider_name()} API key is required",
                ErrorCode.MISSING_API_KEY,
            )

    # URL and header strategy, overridden by Azure

    def _chat_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _chat_params(self) -> Optional[Dict[str, str]]:
        return None

    def _request_headers(self) -> Dict[str, str]:
        headers = self.get_headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload = {
            "model": request.model or self.get_default_model(),
            "messages": request.to_message_dicts(),
            "temperature": self.resolve_temperature(request),
            "max_tokens": self.resolve_max_tokens(request),
        }
        if stream:
            payload["stream"] = True
        return payload

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Create a chat completion via the chat completions endpoint."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=False)

        data = await self._post_json(
            self._chat_url(),
            payload,
            self.get_timeout_ms(request),
            headers=self._request_headers(),
            params=self._chat_params(),
        )

        choice = get_path(data, "choices.0")
        if not isinstance(choice, dict):
            raise self.create_error(
                f"{self.get_provider_name()} response contained no choices",
                ErrorCode.EMPTY_CONTENT,
            )

        usage = data.get("usage") or {}
        return ChatResponse.build(
            content=get_path(choice, "message.content") or "",
            model=data.get("model") or payload["model"],
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            finish_reason=map_openai_finish_reason(choice.get("finish_reason")),
        )

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion, one chunk per non-empty delta."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=True)
        model = payload["model"]

        async with self._open_stream(
            "POST",
            self._chat_url(),
            payload,
            self.get_timeout_ms(request),
            headers=self._request_headers(),
            params=self._chat_params(),
        ) as response:
            async for line in response.aiter_lines():
                data = self.sse_data(line)
                if data is None:
                    continue
                if data == "[DONE]":
                    return

                chunk = self.parse_chunk(data)
                if not isinstance(chunk, dict):
                    continue

                delta = first_present(chunk, "choices.0.delta.content", "delta.content")
                if not delta:
                    continue

                reason = get_path(chunk, "choices.0.finish_reason")
                yield StreamChunk(
                    delta=delta,
                    model=chunk.get("model") or model,
                    finish_reason=map_openai_finish_reason(reason) if reason else None,
                )

    async def get_available_models(self) -> List[ModelInfo]:
        """List GPT models from ``/models``; the built-in catalog on failure."""
        try:
            data = await self._get_json(
                f"{self._base_url}/models", headers=self._request_headers()
            )
            models = [
                self._model_info(m["id"])
                for m in data.get("data", [])
                if isinstance(m, dict) and "gpt" in str(m.get("id", ""))
            ]
            return models
        except Exception as e:
            logger.warning(f"Failed to fetch OpenAI models, using built-in catalog: {e}")
            return self._default_models()

    def _model_info(self, model_id: str) -> ModelInfo:
        entry = OPENAI_MODEL_CATALOG.get(model_id)
        if entry is None:
            return ModelInfo(
                id=model_id,
                name=model_id,
                context_window=4096,
                max_output_tokens=4096,
                capabilities=["text"],
            )
        return ModelInfo(id=model_id, **entry)

    def _default_models(self) -> List[ModelInfo]:
        return [self._model_info(model_id) for model_id in OPENAI_MODEL_CATALOG]

    async def test_connection(self) -> bool:
        return await self._check_connection(
            "GET", f"{self._base_url}/models", headers=self._request_headers()
        )
