"""
Integration tests for the Gemini adapter.
"""
import json

import httpx
import pytest
import respx

from llm_gateway import (
    AdapterError,
    ChatRequest,
    ErrorCode,
    FinishReason,
    GeminiAdapter,
    LLMProvider,
)

BASE = "https://generativelanguage.googleapis.com/v1beta"
GENERATE_URL = f"{BASE}/models/gemini-1.5-flash:generateContent"
STREAM_URL = f"{BASE}/models/gemini-1.5-flash:streamGenerateContent"


@pytest.fixture
def adapter(make_integration):
    return GeminiAdapter(make_integration(provider=LLMProvider.GEMINI, default_model=""))


def candidate(text=None, finish="STOP"):
    parts = [{"text": text}] if text is not None else []
    return {
        "candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": finish}],
        "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 2},
    }


class TestGeminiChat:
    """Test request conversion and candidate handling."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_system_prepended_to_first_user_turn(self, adapter):
        """System text joins the first user message; assistants use the model role."""
        route = respx.post(GENERATE_URL).respond(200, json=candidate("Sure"))
        request = ChatRequest(
            messages=[
                {"role": "system", "content": "Answer in French."},
                {"role": "user", "content": "Hello"},
                {"role": "assistant", "content": "Bonjour"},
                {"role": "user", "content": "Thanks"},
            ],
            user_id="u",
            feature="f",
        )

        response = await adapter.chat(request)

        assert response.content == "Sure"
        assert response.model == "gemini-1.5-flash"
        assert response.prompt_tokens == 8
        assert response.completion_tokens == 2
        assert response.finish_reason == FinishReason.STOP

        sent = route.calls.last.request
        assert sent.url.params["key"] == "test-key"
        body = json.loads(sent.content)
        assert body["contents"] == [
            {"role": "user", "parts": [{"text": "Answer in French.\n\nHello"}]},
            {"role": "model", "parts": [{"text": "Bonjour"}]},
            {"role": "user", "parts": [{"text": "Thanks"}]},
        ]
        assert body["generationConfig"]["maxOutputTokens"] == 1000
        assert len(body["safetySettings"]) == 4

    @pytest.mark.asyncio
    @respx.mock
    async def test_safety_block_without_content(self, adapter, chat_request):
        respx.post(GENERATE_URL).respond(200, json=candidate(finish="SAFETY"))

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.CONTENT_BLOCKED
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    @respx.mock
    async def test_truncated_response_gets_note(self, adapter, chat_request):
        respx.post(GENERATE_URL).respond(200, json=candidate("Partial", finish="MAX_TOKENS"))

        response = await adapter.chat(chat_request)

        assert response.content == "Partial\n\n[Response was truncated due to length limit]"
        assert response.finish_reason == FinishReason.LENGTH

    @pytest.mark.asyncio
    @respx.mock
    async def test_truncated_before_any_text(self, adapter, chat_request):
        respx.post(GENERATE_URL).respond(200, json=candidate(finish="MAX_TOKENS"))

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.EMPTY_CONTENT
        assert "1000 tokens" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_candidates(self, adapter, chat_request):
        respx.post(GENERATE_URL).respond(200, json={"candidates": []})

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.EMPTY_CONTENT
        assert exc_info.value.status_code == 500

    def test_missing_key(self, make_integration):
        with pytest.raises(AdapterError) as exc_info:
            GeminiAdapter(make_integration(provider=LLMProvider.GEMINI, api_key=None))
        assert exc_info.value.code == ErrorCode.MISSING_API_KEY
        assert exc_info.value.status_code == 401


class TestGeminiStreaming:

    @pytest.mark.asyncio
    @respx.mock
    async def test_stream_over_sse(self, adapter, chat_request):
        content = (
            f"data: {json.dumps(candidate('Bon', finish=None))}\r\n\r\n"
            f"data: {json.dumps(candidate('jour', finish='STOP'))}\r\n\r\n"
        ).encode()
        route = respx.post(STREAM_URL).respond(
            200, content=content, headers={"content-type": "text/event-stream"}
        )

        chunks = [chunk async for chunk in adapter.chat_stream(chat_request)]

        assert [c.delta for c in chunks] == ["Bon", "jour"]
        assert chunks[0].finish_reason is None
        assert chunks[1].finish_reason == FinishReason.STOP
        assert route.calls.last.request.url.params["alt"] == "sse"

    @pytest.mark.asyncio
    @respx.mock
    async def test_safety_stop_without_text_is_blocked(self, adapter, chat_request):
        content = f"data: {json.dumps(candidate(finish='SAFETY'))}\r\n\r\n".encode()
        respx.post(STREAM_URL).respond(
            200, content=content, headers={"content-type": "text/event-stream"}
        )

        with pytest.raises(AdapterError) as exc_info:
            [chunk async for chunk in adapter.chat_stream(chat_request)]

        assert exc_info.value.code == ErrorCode.CONTENT_BLOCKED
        assert exc_info.value.status_code == 400
        assert "safety filters" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_safety_stop_after_text_is_filtered(self, adapter, chat_request):
        content = (
            f"data: {json.dumps(candidate('Part', finish=None))}\r\n\r\n"
            f"data: {json.dumps(candidate(finish='SAFETY'))}\r\n\r\n"
        ).encode()
        respx.post(STREAM_URL).respond(
            200, content=content, headers={"content-type": "text/event-stream"}
        )

        chunks = [chunk async for chunk in adapter.chat_stream(chat_request)]

        assert [c.delta for c in chunks] == ["Part", ""]
        assert chunks[-1].finish_reason == FinishReason.CONTENT_FILTER


class TestGeminiModels:

    @pytest.mark.asyncio
    @respx.mock
    async def test_models_listed(self, adapter):
        respx.get(f"{BASE}/models").respond(
            200,
            json={
                "models": [
                    {
                        "name": "models/gemini-1.5-pro",
                        "displayName": "Gemini 1.5 Pro",
                        "inputTokenLimit": 2097152,
                        "outputTokenLimit": 8192,
                        "supportedGenerationMethods": ["generateContent"],
                    },
                    {"name": "models/embedding-001"},
                ]
            },
        )

        models = await adapter.get_available_models()

        assert [m.id for m in models] == ["gemini-1.5-pro", "embedding-001"]
        assert models[0].context_window == 2097152
        assert models[1].context_window == 32768
        assert models[1].max_output_tokens == 8192

    @pytest.mark.asyncio
    @respx.mock
    async def test_fallback_catalog_is_stable(self, adapter):
        respx.get(f"{BASE}/models").mock(side_effect=httpx.ConnectError("down"))

        first = await adapter.get_available_models()
        second = await adapter.get_available_models()

        assert first == second
        assert [m.id for m in first] == ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-1.0-pro"]
