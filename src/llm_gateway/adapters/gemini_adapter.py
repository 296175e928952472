"""
Google Gemini (Generative Language API) adapter.

Gemini has no system role: system instructions are prepended to the first
user turn, and assistant turns are sent with the ``model`` role.
"""

import logging
from typing import Optional, List, Dict, Any, AsyncIterator
from urllib.parse import quote

from ..core.config import IntegrationConfig
from ..core.errors import AdapterError, ErrorCode
from ..core.interface import BaseLLMAdapter
from ..core.paths import get_path
from ..models.request import ChatRequest
from ..models.response import ChatResponse, StreamChunk, ModelInfo, FinishReason

logger = logging.getLogger(__name__)


DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
TRUNCATION_NOTE = "\n\n[Response was truncated due to length limit]"

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]

GEMINI_MODEL_CATALOG: Dict[str, Dict[str, Any]] = {
    "gemini-1.5-pro": {
        "name": "Gemini 1.5 Pro",
        "context_window": 2097152,
        "max_output_tokens": 8192,
        "input_cost_per_1k": 0.00125,
        "output_cost_per_1k": 0.00375,
    },
    "gemini-1.5-flash": {
        "name": "Gemini 1.5 Flash",
        "context_window": 1048576,
        "max_output_tokens": 8192,
        "input_cost_per_1k": 0.000075,
        "output_cost_per_1k": 0.0003,
    },
    "gemini-1.0-pro": {
        "name": "Gemini 1.0 Pro",
        "context_window": 32768,
        "max_output_tokens": 2048,
        "input_cost_per_1k": 0.0005,
        "output_cost_per_1k": 0.0015,
    },
}


def map_gemini_finish_reason(reason: Optional[str]) -> FinishReason:
    if reason == "STOP":
        return FinishReason.STOP
    if reason == "MAX_TOKENS":
        return FinishReason.LENGTH
    if reason in ("SAFETY", "RECITATION"):
        return FinishReason.CONTENT_FILTER
    return FinishReason.ERROR


def candidate_text(candidate: Dict[str, Any]) -> str:
    parts = get_path(candidate, "content.parts")
    if not isinstance(parts, list):
        return ""
    return "".join(
        part.get("text") or "" for part in parts if isinstance(part, dict)
    )


class GeminiAdapter(BaseLLMAdapter):
    """Gemini adapter. The API key is sent as the ``key`` query parameter."""

    PROVIDER_NAME = "Google Gemini"
    GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, config: IntegrationConfig, base_url: Optional[str] = None):
        super().__init__(config, base_url)
        self._base_url = (base_url or self.GEMINI_BASE_URL).rstrip("/")

        if not self.api_key:
            raise self.create_error(
                "Google Gemini API key is required", ErrorCode.MISSING_API_KEY, 401
            )

        logger.info(f"Initialized Gemini adapter at {self._base_url}")

    def get_default_model(self) -> str:
        return super().get_default_model() or DEFAULT_GEMINI_MODEL

    def _key_params(self) -> Dict[str, str]:
        return {"key": self.api_key}

    def _model_url(self, model: str, method: str) -> str:
        return f"{self._base_url}/models/{quote(model, safe='')}:{method}"

    def _build_contents(self, request: ChatRequest) -> List[Dict[str, Any]]:
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.conversation_messages()
        ]

        system = "\n\n".join(m.content for m in request.system_messages())
        if system:
            for content in contents:
                if content["role"] == "user":
                    text = content["parts"][0]["text"]
                    content["parts"][0]["text"] = f"{system}\n\n{text}"
                    break

        return contents

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        return {
            "contents": self._build_contents(request),
            "generationConfig": {
                "temperature": self.resolve_temperature(request),
                "maxOutputTokens": self.resolve_max_tokens(request),
                "topP": 0.95,
                "topK": 64,
            },
            "safetySettings": SAFETY_SETTINGS,
        }

    def _blocked_error(self) -> AdapterError:
        return self.create_error(
            "Content was blocked by Gemini safety filters. Try rephrasing your request.",
            ErrorCode.CONTENT_BLOCKED,
            400,
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Generate content.

        Raises:
            AdapterError: ``CONTENT_BLOCKED`` when a safety stop left no text,
                ``EMPTY_CONTENT`` when there are no candidates or no text
        """
        self.validate_request(request)
        model = request.model or self.get_default_model()

        data = await self._post_json(
            self._model_url(model, "generateContent"),
            self._build_payload(request),
            self.get_timeout_ms(request),
            params=self._key_params(),
        )

        candidate = get_path(data, "candidates.0")
        if not isinstance(candidate, dict):
            raise self.create_error(
                "No candidates returned from Gemini", ErrorCode.EMPTY_CONTENT, 500
            )

        finish_reason = candidate.get("finishReason")
        content = candidate_text(candidate)

        if not content.strip():
            if finish_reason == "SAFETY":
                raise self._blocked_error()
            if finish_reason == "MAX_TOKENS":
                raise self.create_error(
                    f"The response was truncated at {self.resolve_max_tokens(request)} tokens "
                    f"before any text was produced. Increase the token limit or shorten the request.",
                    ErrorCode.EMPTY_CONTENT,
                    400,
                )
            raise self.create_error(
                f"Gemini returned empty content. Finish reason: {finish_reason}",
                ErrorCode.EMPTY_CONTENT,
                400,
            )

        if finish_reason == "MAX_TOKENS":
            content += TRUNCATION_NOTE

        usage = data.get("usageMetadata") or {}
        return ChatResponse.build(
            content=content,
            model=model,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=map_gemini_finish_reason(finish_reason),
        )

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream generated content over SSE (``alt=sse``).

        Raises:
            AdapterError: ``CONTENT_BLOCKED`` when a safety stop ends the stream
                before any text was produced
        """
        self.validate_request(request)
        model = request.model or self.get_default_model()
        params = self._key_params()
        params["alt"] = "sse"

        async with self._open_stream(
            "POST",
            self._model_url(model, "streamGenerateContent"),
            self._build_payload(request),
            self.get_timeout_ms(request),
            params=params,
        ) as response:
            produced = False
            async for line in response.aiter_lines():
                data = self.sse_data(line)
                if not data:
                    continue

                chunk = self.parse_chunk(data)
                candidate = get_path(chunk, "candidates.0")
                if not isinstance(candidate, dict):
                    continue

                reason = candidate.get("finishReason")
                delta = candidate_text(candidate)
                if delta.strip():
                    produced = True
                elif reason == "SAFETY" and not produced:
                    raise self._blocked_error()

                yield StreamChunk(
                    delta=delta,
                    model=model,
                    finish_reason=map_gemini_finish_reason(reason) if reason else None,
                )

    async def get_available_models(self) -> List[ModelInfo]:
        """List models from ``/models``; the built-in catalog on failure."""
        try:
            data = await self._get_json(
                f"{self._base_url}/models", params=self._key_params()
            )
            return [
                ModelInfo(
                    id=m["name"].replace("models/", ""),
                    name=m.get("displayName") or m["name"],
                    context_window=m.get("inputTokenLimit") or 32768,
                    max_output_tokens=m.get("outputTokenLimit") or 8192,
                    capabilities=m.get("supportedGenerationMethods") or [],
                )
                for m in data.get("models") or []
                if isinstance(m, dict) and m.get("name")
            ]
        except Exception as e:
            logger.warning(f"Failed to fetch Gemini models, using built-in catalog: {e}")
            return [
                ModelInfo(
                    id=model_id,
                    capabilities=["generateContent", "streamGenerateContent"],
                    **entry,
                )
                for model_id, entry in GEMINI_MODEL_CATALOG.items()
            ]

    async def test_connection(self) -> bool:
        return await self._check_connection(
            "GET", f"{self._base_url}/models", params=self._key_params()
        )
