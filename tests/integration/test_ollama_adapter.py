"""
Integration tests for the Ollama adapter.
"""
import json

import httpx
import pytest
import respx

from llm_gateway import (
    AdapterError,
    ErrorCode,
    FinishReason,
    LLMProvider,
    OllamaAdapter,
)
from llm_gateway.adapters.ollama_adapter import format_size

BASE = "http://localhost:11434"


@pytest.fixture
def adapter(make_integration):
    return OllamaAdapter(
        make_integration(provider=LLMProvider.OLLAMA, api_key=None, default_model="llama3")
    )


def ndjson(*objects):
    return b"".join(json.dumps(o).encode() + b"\n" for o in objects)


class TestOllamaChat:

    @pytest.mark.asyncio
    @respx.mock
    async def test_chat(self, adapter, chat_request):
        """Options carry temperature and num_predict; counts come from eval fields."""
        route = respx.post(f"{BASE}/api/chat").respond(
            200,
            json={
                "model": "llama3",
                "message": {"role": "assistant", "content": "Hi!"},
                "done": True,
                "prompt_eval_count": 11,
                "eval_count": 3,
            },
        )

        response = await adapter.chat(chat_request)

        assert response.content == "Hi!"
        assert response.total_tokens == 14
        assert response.finish_reason == FinishReason.STOP

        body = json.loads(route.calls.last.request.content)
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.7, "num_predict": 1000}
        assert body["keep_alive"] == "5m"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_model_suggests_pull(self, adapter, chat_request):
        respx.post(f"{BASE}/api/chat").respond(
            404, json={"error": "model 'llama9' not found, try pulling it first"}
        )

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.MODEL_NOT_FOUND
        assert exc_info.value.details == {"suggestion": "Try pulling the model first"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_other_404_is_not_found(self, adapter, chat_request):
        respx.post(f"{BASE}/api/chat").respond(404, text="404 page not found")

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.message == "404 page not found"

    @pytest.mark.asyncio
    @respx.mock
    async def test_daemon_down(self, adapter, chat_request):
        respx.post(f"{BASE}/api/chat").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(AdapterError) as exc_info:
            await adapter.chat(chat_request)

        assert exc_info.value.code == ErrorCode.SERVER_ERROR
        assert exc_info.value.retryable is True


class TestOllamaStreaming:

    @pytest.mark.asyncio
    @respx.mock
    async def test_ndjson_stream(self, adapter, chat_request):
        """Malformed lines are skipped and ``done`` ends the stream."""
        content = (
            ndjson({"model": "llama3", "message": {"content": "Hel"}, "done": False})
            + b"{broken\n"
            + b"\n"
            + ndjson(
                {"model": "llama3", "message": {"content": "lo"}, "done": False},
                {"model": "llama3", "message": {"content": ""}, "done": True, "eval_count": 2},
                {"model": "llama3", "message": {"content": "after"}, "done": False},
            )
        )
        respx.post(f"{BASE}/api/chat").respond(
            200, content=content, headers={"content-type": "application/x-ndjson"}
        )

        chunks = [chunk async for chunk in adapter.chat_stream(chat_request)]

        assert [c.delta for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].finish_reason == FinishReason.STOP
        assert chunks[0].finish_reason is None


class TestOllamaModelManagement:

    @pytest.mark.asyncio
    @respx.mock
    async def test_installed_models(self, adapter):
        respx.get(f"{BASE}/api/tags").respond(
            200,
            json={
                "models": [
                    {"name": "llama3:8b", "size": 4661224676},
                    {"name": "my-finetune:latest", "size": 0},
                ]
            },
        )

        models = await adapter.get_available_models()

        assert models[0].id == "llama3:8b"
        assert models[0].name == "llama3:8b (4.3 GB)"
        assert models[0].context_window == 8192
        assert models[0].input_cost_per_1k == 0
        assert models[1].name == "my-finetune:latest (0 B)"
        assert models[1].capabilities == ["text"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_models_empty_when_unreachable(self, adapter):
        respx.get(f"{BASE}/api/tags").mock(side_effect=httpx.ConnectError("refused"))
        assert await adapter.get_available_models() == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_pull_model_stops_at_success(self, adapter):
        route = respx.post(f"{BASE}/api/pull").respond(
            200,
            content=ndjson(
                {"status": "pulling manifest"},
                {"status": "downloading", "completed": 10, "total": 100},
                {"status": "success"},
                {"status": "unexpected"},
            ),
        )

        statuses = [p["status"] async for p in adapter.pull_model("llama3")]

        assert statuses == ["pulling manifest", "downloading", "success"]
        assert json.loads(route.calls.last.request.content) == {"name": "llama3"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_model(self, adapter):
        route = respx.delete(f"{BASE}/api/delete").respond(200)

        await adapter.delete_model("llama3")

        assert json.loads(route.calls.last.request.content) == {"name": "llama3"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_missing_model(self, adapter):
        respx.delete(f"{BASE}/api/delete").respond(404, json={"error": "model not found"})

        with pytest.raises(AdapterError) as exc_info:
            await adapter.delete_model("nope")

        assert exc_info.value.code == ErrorCode.MODEL_NOT_FOUND

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection(self, adapter):
        respx.get(f"{BASE}/api/tags").respond(200, json={"models": []})
        assert await adapter.test_connection() is True


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 B"), (512, "512 B"), (2048, "2 KB"), (1572864, "1.5 MB")],
)
def test_format_size(size, expected):
    assert format_size(size) == expected
