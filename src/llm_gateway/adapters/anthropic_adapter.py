"""
Anthropic Messages API adapter.
"""

import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..core.config import IntegrationConfig
from ..core.errors import ErrorCode
from ..core.interface import BaseLLMAdapter
from ..core.paths import get_path
from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo, FinishReason

logger = logging.getLogger(__name__)


ANTHROPIC_VERSION = "2023-06-01"
TEST_CONNECTION_MODEL = "claude-3-haiku-20240307"

ANTHROPIC_MODEL_CATALOG: Dict[str, Dict[str, Any]] = {
    "claude-3-opus-20240229": {
        "name": "Claude 3 Opus",
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.015,
        "output_cost_per_1k": 0.075,
    },
    "claude-3-sonnet-20240229": {
        "name": "Claude 3 Sonnet",
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.003,
        "output_cost_per_1k": 0.015,
    },
    "claude-3-haiku-20240307": {
        "name": "Claude 3 Haiku",
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.00025,
        "output_cost_per_1k": 0.00125,
    },
    "claude-3-5-sonnet-20241022": {
        "name": "Claude 3.5 Sonnet",
        "max_output_tokens": 8192,
        "input_cost_per_1k": 0.003,
        "output_cost_per_1k": 0.015,
    },
    "claude-3-5-haiku-20241022": {
        "name": "Claude 3.5 Haiku",
        "max_output_tokens": 8192,
        "input_cost_per_1k": 0.0008,
        "output_cost_per_1k": 0.004,
    },
}

CLAUDE_CONTEXT_WINDOW = 200000


def map_anthropic_stop_reason(reason: Optional[str]) -> FinishReason:
    if reason in ("end_turn", "stop_sequence"):
        return FinishReason.STOP
    if reason == "max_tokens":
        return FinishReason.LENGTH
    return FinishReason.ERROR


class AnthropicAdapter(BaseLLMAdapter):
    """
    Anthropic adapter.

    System messages are lifted out of the conversation and sent as the
    top-level ``system`` field, joined with blank lines. Streaming uses typed
    SSE events: ``message_start`` carries the model, ``content_block_delta``
    the text and ``message_stop`` ends the stream.
    """

    PROVIDER_NAME = "Anthropic"
    ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        super().__init__(config, base_url)
        self._base_url = (base_url or self.ANTHROPIC_BASE_URL).rstrip("/")

        if not self.api_key:
            raise self.create_error("Anthropic API key is required", ErrorCode.MISSING_API_KEY)

        logger.info(f"Initialized Anthropic adapter at {self._base_url}")

    def get_headers(self) -> Dict[str, str]:
        headers = super().get_headers()
        headers["x-api-key"] = self.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self.get_default_model(),
            "messages": [
                {"role": m.role, "content": m.content}
                for m in request.conversation_messages()
            ],
            "max_tokens": self.resolve_max_tokens(request),
            "temperature": self.resolve_temperature(request),
        }

        system = "\n\n".join(m.content for m in request.system_messages())
        if system:
            payload["system"] = system
        if stream:
            payload["stream"] = True
        return payload

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Create a message via ``/messages``."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=False)

        data = await self._post_json(
            f"{self._base_url}/messages", payload, self.get_timeout_ms(request)
        )

        content = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = data.get("usage") or {}

        return ChatResponse.build(
            content=content,
            model=data.get("model") or payload["model"],
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            finish_reason=map_anthropic_stop_reason(data.get("stop_reason")),
        )

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a message, yielding each ``text_delta``."""
        self.validate_request(request)
        payload = self._build_payload(request, stream=True)
        model = payload["model"]

        async with self._open_stream(
            "POST", f"{self._base_url}/messages", payload, self.get_timeout_ms(request)
        ) as response:
            async for line in response.aiter_lines():
                data = self.sse_data(line)
                if not data:
                    continue

                event = self.parse_chunk(data)
                if not isinstance(event, dict):
                    continue

                event_type = event.get("type")
                if event_type == "message_start":
                    model = get_path(event, "message.model") or model
                elif event_type == "content_block_delta":
                    text = get_path(event, "delta.text")
                    if text:
                        yield StreamChunk(delta=text, model=model)
                elif event_type == "message_stop":
                    return
                elif event_type == "error":
                    raise self.create_error(
                        self.extract_error_message(event),
                        ErrorCode.STREAM_ERROR,
                    )

    async def get_available_models(self) -> List[ModelInfo]:
        # Anthropic exposes no listing endpoint for these keys; the catalog is static.
        return [
            ModelInfo(
                id=model_id,
                context_window=CLAUDE_CONTEXT_WINDOW,
                capabilities=["text", "code", "vision"],
                **entry,
            )
            for model_id, entry in ANTHROPIC_MODEL_CATALOG.items()
        ]

    async def test_connection(self) -> bool:
        payload = {
            "model": TEST_CONNECTION_MODEL,
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 1,
        }
        return await self._check_connection("POST", f"{self._base_url}/messages", payload=payload)
