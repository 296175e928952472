"""
Configurable adapter for arbitrary HTTP chat APIs.

Everything about the wire shape comes from the integration's provider
settings. Lookups that miss yield empty values instead of raising, so a
misconfigured endpoint degrades to empty content.
"""

import copy
import logging
from typing import Optional, List, Dict, Any, AsyncIterator

from ..core.config import IntegrationConfig
from ..core.errors import ErrorCode
from ..core.interface import BaseLLMAdapter
from ..core.paths import first_present, get_path, set_path
from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo, FinishReason

logger = logging.getLogger(__name__)


_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "end_turn": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "max_tokens": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "error": FinishReason.ERROR,
}

CONTENT_PATHS = ("content", "text", "response", "choices.0.message.content", "choices.0.text")
DELTA_PATHS = (
    "delta.content",
    "delta.text",
    "content",
    "text",
    "choices.0.delta.content",
    "choices.0.text",
)


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _to_capabilities(value: Any) -> List[str]:
    if isinstance(value, list):
        capabilities = [c for c in value if isinstance(c, str) and c]
        if capabilities:
            return capabilities
    return ["text"]


class CustomLLMAdapter(BaseLLMAdapter):
    """
    Custom LLM adapter.

    Provider settings (snake_case; the camelCase spellings are also read):
        endpoint, api_key: Fallbacks when the integration credentials omit them
        request_template: Static fields merged under the caller's fields
        request_field_mappings: ``{standard_field: custom_field}`` renames
        system_field: Dot-path that receives the joined system messages,
            which are then removed from ``messages``
        response_mapping: Dot-paths for ``content``, ``prompt_tokens``,
            ``completion_tokens`` and ``finish_reason``
        stream_response_mapping: Dot-path for ``delta``
        models / models_endpoint / models_response_path /
        model_field_mappings: Model catalog, static or fetched
        auth_header, auth_prefix: Default ``Authorization: Bearer <key>``
        headers: Extra request headers
        error_message_path: Dot-path to the message in error bodies
    """

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        super().__init__(config, base_url)
        self._endpoint = (
            base_url or self.config.credentials.address or self._setting("endpoint")
        )
        self._api_key = self.api_key or self._setting("api_key", "apiKey")

        if not self._endpoint:
            raise self.create_error(
                "Custom API endpoint is required", ErrorCode.MISSING_ENDPOINT, 400
            )

        self._request_template = self._setting("request_template", "requestTemplate") or {}
        self._response_mapping = self._setting("response_mapping", "responseMapping") or {}
        self._stream_mapping = (
            self._setting("stream_response_mapping", "streamResponseMapping") or {}
        )
        logger.info(f"Initialized custom adapter {self.get_provider_name()!r} at {self._endpoint}")

    def _setting(self, *keys: str) -> Any:
        for key in keys:
            value = self.settings.get(key)
            if value is not None:
                return value
        return None

    @staticmethod
    def _mapped_path(mapping: Dict[str, Any], *keys: str) -> Optional[str]:
        for key in keys:
            path = mapping.get(key)
            if isinstance(path, str) and path:
                return path
        return None

    def get_provider_name(self) -> str:
        return self.config.name or "Custom LLM"

    def get_custom_headers(self) -> Dict[str, str]:
        headers = self.get_headers()
        if self._api_key:
            auth_header = self._setting("auth_header", "authHeader") or "Authorization"
            auth_prefix = self._setting("auth_prefix", "authPrefix")
            if auth_prefix is None:
                auth_prefix = "Bearer"
            headers[auth_header] = f"{auth_prefix} {self._api_key}".strip()
        headers.update(self._setting("headers") or {})
        return headers

    def build_request_body(self, request: ChatRequest, stream: bool) -> Dict[str, Any]:
        """Translate a request into the configured body shape."""
        system_field = self._setting("system_field", "systemField")
        messages = request.conversation_messages() if system_field else request.messages

        fields: Dict[str, Any] = {
            "model": request.model or self.get_default_model(),
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self.resolve_temperature(request),
            "max_tokens": self.resolve_max_tokens(request),
            "stream": stream,
        }

        mappings = self._setting("request_field_mappings", "requestFieldMappings") or {}
        for standard_field, custom_field in mappings.items():
            if standard_field in fields and custom_field and custom_field != standard_field:
                fields[custom_field] = fields.pop(standard_field)

        body = copy.deepcopy(self._request_template)
        body.update(fields)

        if system_field:
            system = "\n\n".join(m.content for m in request.system_messages())
            if system and not set_path(body, system_field, system):
                logger.warning(f"Could not place system prompt at {system_field!r}")

        return body

    def _map_finish_reason(self, data: Any, mapping: Dict[str, Any]) -> FinishReason:
        path = self._mapped_path(mapping, "finish_reason", "finishReason")
        if path:
            reason = get_path(data, path)
        else:
            reason = first_present(data, "finish_reason", "choices.0.finish_reason", "stop_reason")
        if isinstance(reason, str):
            return _FINISH_REASONS.get(reason.lower(), FinishReason.STOP)
        if reason is None and get_path(data, "done") is False:
            return FinishReason.ERROR
        return FinishReason.STOP

    def map_response(self, data: Any, model: str) -> ChatResponse:
        """Extract content and usage via the response mapping or known shapes."""
        mapping = self._response_mapping

        path = self._mapped_path(mapping, "content")
        content = get_path(data, path) if path else first_present(data, *CONTENT_PATHS)

        path = self._mapped_path(mapping, "prompt_tokens", "promptTokens")
        prompt_tokens = (
            get_path(data, path)
            if path
            else first_present(data, "usage.prompt_tokens", "usage.input_tokens")
        )

        path = self._mapped_path(mapping, "completion_tokens", "completionTokens")
        completion_tokens = (
            get_path(data, path)
            if path
            else first_present(data, "usage.completion_tokens", "usage.output_tokens")
        )

        response_model = get_path(data, "model")
        return ChatResponse.build(
            content=str(content) if content else "",
            model=response_model if isinstance(response_model, str) and response_model else model,
            prompt_tokens=_to_int(prompt_tokens),
            completion_tokens=_to_int(completion_tokens),
            finish_reason=self._map_finish_reason(data, mapping),
        )

    def map_stream_chunk(self, chunk: Any, model: str) -> StreamChunk:
        path = self._mapped_path(self._stream_mapping, "delta")
        delta = get_path(chunk, path) if path else first_present(chunk, *DELTA_PATHS)

        finished = first_present(chunk, "finish_reason", "choices.0.finish_reason", "done")
        chunk_model = get_path(chunk, "model")
        return StreamChunk(
            delta=str(delta) if delta else "",
            model=chunk_model if isinstance(chunk_model, str) and chunk_model else model,
            finish_reason=FinishReason.STOP if finished else None,
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.validate_request(request)
        body = self.build_request_body(request, stream=False)

        data = await self._post_json(
            self._endpoint,
            body,
            self.get_timeout_ms(request),
            headers=self.get_custom_headers(),
        )
        return self.map_response(data, request.model or self.get_default_model())

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream from the configured endpoint.

        SSE is detected from the ``text/event-stream`` content type; anything
        else is read as newline-delimited JSON. Empty deltas are dropped.
        """
        self.validate_request(request)
        body = self.build_request_body(request, stream=True)
        model = request.model or self.get_default_model()

        async with self._open_stream(
            "POST",
            self._endpoint,
            body,
            self.get_timeout_ms(request),
            headers=self.get_custom_headers(),
        ) as response:
            is_sse = "text/event-stream" in response.headers.get("content-type", "")

            async for line in response.aiter_lines():
                if is_sse:
                    data = self.sse_data(line)
                    if data is None:
                        continue
                    if data == "[DONE]":
                        return
                else:
                    data = line.strip()
                if not data:
                    continue

                chunk = self.parse_chunk(data)
                if chunk is None:
                    continue

                mapped = self.map_stream_chunk(chunk, model)
                if mapped.delta:
                    yield mapped

    async def get_available_models(self) -> List[ModelInfo]:
        """Fetch from ``models_endpoint`` when set; the configured list otherwise."""
        models_endpoint = self._setting("models_endpoint", "modelsEndpoint")
        if not models_endpoint:
            return self._configured_models()

        try:
            data = await self._get_json(models_endpoint, headers=self.get_custom_headers())
        except Exception as e:
            logger.warning(f"Failed to fetch custom models, using configured list: {e}")
            return self._configured_models()

        models_path = self._setting("models_response_path", "modelsResponsePath") or "models"
        models = get_path(data, models_path)
        if not isinstance(models, list):
            return []
        return [self._map_model_info(m) for m in models if isinstance(m, dict)]

    def _map_model_info(self, model: Dict[str, Any]) -> ModelInfo:
        mapping = self._setting("model_field_mappings", "modelFieldMappings") or {}

        def field(key: str, default_path: str, *fallbacks: str) -> Any:
            value = get_path(model, mapping.get(key) or default_path)
            if value:
                return value
            return first_present(model, *fallbacks) if fallbacks else None

        model_id = _to_text(field("id", "id", "name")) or "unknown"
        return ModelInfo(
            id=model_id,
            name=_to_text(field("name", "name")) or model_id,
            context_window=_to_int(field("context_window", "context_window", "max_context")) or 4096,
            max_output_tokens=_to_int(field("max_output_tokens", "max_tokens", "max_output")) or 4096,
            input_cost_per_1k=_to_float(field("input_cost", "input_cost")),
            output_cost_per_1k=_to_float(field("output_cost", "output_cost")),
            capabilities=_to_capabilities(field("capabilities", "capabilities")),
        )

    def _configured_models(self) -> List[ModelInfo]:
        models = []
        for m in self._setting("models") or []:
            if not isinstance(m, dict):
                continue
            model_id = _to_text(m.get("id")) or _to_text(m.get("name"))
            if not model_id:
                continue
            models.append(
                ModelInfo(
                    id=model_id,
                    name=_to_text(m.get("name")) or model_id,
                    context_window=(
                        _to_int(first_present(m, "context_window", "contextWindow")) or 4096
                    ),
                    max_output_tokens=(
                        _to_int(first_present(m, "max_output_tokens", "maxOutputTokens")) or 4096
                    ),
                    input_cost_per_1k=_to_float(
                        first_present(m, "input_cost_per_1k", "inputCostPer1k")
                    ),
                    output_cost_per_1k=_to_float(
                        first_present(m, "output_cost_per_1k", "outputCostPer1k")
                    ),
                    capabilities=_to_capabilities(m.get("capabilities")),
                )
            )
        return models

    async def test_connection(self) -> bool:
        ping = ChatRequest(
            messages=[{"role": "user", "content": "test"}],
            max_tokens=1,
            user_id="test",
            feature="test",
        )
        return await self._check_connection(
            "POST",
            self._endpoint,
            payload=self.build_request_body(ping, stream=False),
            headers=self.get_custom_headers(),
        )

    def extract_error_message(self, body: Any) -> str:
        path = self._setting("error_message_path", "errorMessagePath")
        if path:
            message = get_path(body, path)
            if message:
                return str(message)
        return super().extract_error_message(body)

    def default_error_message(self) -> str:
        return "Unknown custom API error"
