"""LLM client tests against a mocked OpenAI-compatible endpoint."""

import json
from types import SimpleNamespace

import httpx
import pytest

from jobdesk.core.config import get_settings
from jobdesk.orchestrator.errors import ModelError
from jobdesk.services import llm

TOOLS = [{"type": "function", "function": {"name": "list_contacts", "parameters": {"type": "object"}}}]
MESSAGES = [{"role": "user", "content": "Salut"}]


def completion(content=None, tool_calls=None) -> httpx.Response:
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return httpx.Response(200, json={
        "choices": [{"message": message, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    })


def sse(*deltas) -> httpx.Response:
    body = "".join(f"data: {json.dumps({'choices': [{'delta': d}]})}\n\n" for d in deltas)
    body += "data: [DONE]\n\n"
    return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})


@pytest.fixture
async def provider(monkeypatch):
    """Queue of canned provider responses; every request is recorded."""
    state = SimpleNamespace(requests=[], responses=[])

    def handler(request: httpx.Request) -> httpx.Response:
        state.requests.append(request)
        return state.responses.pop(0)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(llm, "_client", client)

    async def no_sleep(_delay):
        return None

    monkeypatch.setattr(llm.asyncio, "sleep", no_sleep)
    get_settings.cache_clear()

    yield state

    await client.aclose()


class TestComplete:
    """SUT: ModelClient.complete"""

    async def test_text_reply(self, provider):
        provider.responses = [completion("Bonjour !")]

        result = await llm.ModelClient().complete(MESSAGES)

        assert result.text == "Bonjour !"
        assert result.tool_calls == []

    async def test_request_shape(self, provider):
        provider.responses = [completion("ok")]

        await llm.ModelClient().complete(MESSAGES, TOOLS)

        request = provider.requests[0]
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["authorization"] == "Bearer test-key"
        payload = json.loads(request.content)
        assert payload["messages"] == MESSAGES
        assert payload["tools"] == TOOLS
        assert payload["tool_choice"] == "auto"
        assert "parallel_tool_calls" not in payload

    async def test_tool_calls_parsed(self, provider):
        provider.responses = [completion(tool_calls=[
            {"id": "c1", "type": "function",
             "function": {"name": "add_company", "arguments": '{"name": "Acme"}'}},
            {"id": "c2", "type": "function",
             "function": {"name": "add_contact", "arguments": "{broken"}},
        ])]

        result = await llm.ModelClient().complete(MESSAGES, TOOLS)

        assert result.text == ""
        first, second = result.tool_calls
        assert (first.id, first.name, first.args) == ("c1", "add_company", {"name": "Acme"})
        assert second.args == "{broken"
        assert first.to_openai()["function"]["arguments"] == '{"name": "Acme"}'

    async def test_retries_transient_status(self, provider):
        provider.responses = [httpx.Response(503, text="overloaded"), completion("ok")]

        result = await llm.ModelClient().complete(MESSAGES)

        assert result.text == "ok"
        assert len(provider.requests) == 2

    async def test_client_error_is_model_error(self, provider):
        provider.responses = [httpx.Response(400, json={"error": "bad request"})]

        with pytest.raises(ModelError):
            await llm.ModelClient().complete(MESSAGES)
        assert len(provider.requests) == 1

    async def test_missing_api_key(self, provider, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "")
        get_settings.cache_clear()

        with pytest.raises(ModelError):
            await llm.ModelClient().complete(MESSAGES)
        assert provider.requests == []
        get_settings.cache_clear()


class TestStream:
    """SUT: ModelClient.stream"""

    async def collect(self, tools=None):
        return [f async for f in llm.ModelClient().stream(MESSAGES, tools)]

    async def test_text_fragments(self, provider):
        provider.responses = [sse({"content": "Bon"}, {"content": "jour"}, {})]

        result = await self.collect()

        assert [f.text for f in result] == ["Bon", "jour"]
        assert json.loads(provider.requests[0].content)["stream"] is True

    async def test_tool_call_deltas_accumulated(self, provider):
        provider.responses = [sse(
            {"content": "Je crée l'entreprise."},
            {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "add_company", "arguments": '{"na'}}]},
            {"tool_calls": [{"index": 0, "function": {"arguments": 'me": "Acme"}'}}]},
        )]

        result = await self.collect(TOOLS)

        assert result[0].text == "Je crée l'entreprise."
        last = result[-1]
        assert last.text == ""
        assert len(last.tool_calls) == 1
        assert last.tool_calls[0].id == "c1"
        assert last.tool_calls[0].args == {"name": "Acme"}

    async def test_retry_before_first_fragment(self, provider):
        provider.responses = [httpx.Response(429, text="slow down"), sse({"content": "ok"})]

        result = await self.collect()

        assert [f.text for f in result] == ["ok"]
        assert len(provider.requests) == 2

    async def test_persistent_failure(self, provider):
        provider.responses = [httpx.Response(503, text="down"), httpx.Response(503, text="down")]

        with pytest.raises(ModelError):
            await self.collect()
