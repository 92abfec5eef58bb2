import json

import httpx
import pytest

from ghostwriter.errors import ConfigError, ProviderAuthError, ProviderConnectionError, ProviderHTTPError
from ghostwriter.runtime.llm.client import ADAPTERS, LLMClient, select_adapter
from ghostwriter.runtime.providers.builtin_provider import BuiltinProvider
from ghostwriter.runtime.types import PROVIDERS, LLMConfig, Message, StopReason


class Recorder:
    def __init__(self, responder):
        self.responder = responder
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def _client(config, responder):
    rec = Recorder(responder)
    http = httpx.AsyncClient(transport=httpx.MockTransport(rec))
    return LLMClient(config, http_client=http), rec, http


def _chat_completion(message, finish_reason="stop"):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [{"index": 0, "message": {"role": "assistant", **message}, "finish_reason": finish_reason}],
    }


def test_every_provider_has_an_adapter():
    assert set(ADAPTERS) == set(PROVIDERS)
    with pytest.raises(ConfigError):
        select_adapter("mystery")


@pytest.mark.asyncio
async def test_anthropic_call_posts_messages_with_headers():
    def respond(request):
        return httpx.Response(
            200,
            json={
                "content": [{"type": "tool_use", "id": "toolu_1", "name": "read_file", "input": {"path": "x"}}],
                "stop_reason": "tool_use",
            },
        )

    cfg = LLMConfig(provider="anthropic", model="claude", api_key="secret", base_url="https://api.anthropic.com")
    llm, rec, http = _client(cfg, respond)
    async with http:
        resp = await llm.call([Message.system("sys"), Message.user("hi")], BuiltinProvider().tools())

    req = rec.requests[0]
    assert str(req.url) == "https://api.anthropic.com/v1/messages"
    assert req.headers["x-api-key"] == "secret"
    assert req.headers["anthropic-version"] == "2023-06-01"
    body = json.loads(req.content)
    assert body["system"] == "sys"
    assert len(body["tools"]) == 7
    assert resp.stop_reason is StopReason.TOOL_USE
    assert resp.tool_calls[0].arguments == {"path": "x"}


@pytest.mark.asyncio
async def test_openai_family_goes_through_sdk():
    def respond(request):
        return httpx.Response(200, json=_chat_completion({"content": "Hello!"}))

    cfg = LLMConfig(provider="kimi", model="kimi-k2", api_key="k", base_url="https://api.moonshot.cn/v1")
    llm, rec, http = _client(cfg, respond)
    async with http:
        resp = await llm.call([Message.user("hi")])

    req = rec.requests[0]
    assert str(req.url) == "https://api.moonshot.cn/v1/chat/completions"
    assert req.headers["authorization"] == "Bearer k"
    assert json.loads(req.content)["model"] == "kimi-k2"
    assert resp.text == "Hello!"
    assert resp.stop_reason is StopReason.END_TURN


@pytest.mark.asyncio
async def test_missing_key_fails_before_network():
    llm, rec, http = _client(LLMConfig(provider="openai", model="gpt"), lambda r: httpx.Response(200))
    async with http:
        with pytest.raises(ProviderAuthError):
            await llm.call([Message.user("hi")])
    assert rec.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["anthropic", "openai", "ollama"])
async def test_http_errors_are_mapped(provider):
    cfg = LLMConfig(provider=provider, model="m", api_key="k", base_url="http://backend.test/v1" if provider == "openai" else "http://backend.test")
    llm, rec, http = _client(cfg, lambda r: httpx.Response(500, json={"error": {"message": "boom"}}))
    async with http:
        with pytest.raises(ProviderHTTPError) as exc:
            await llm.call([Message.user("hi")])
    assert exc.value.status == 500
    assert exc.value.provider == provider


@pytest.mark.asyncio
async def test_unreachable_ollama_is_connection_error():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    llm, rec, http = _client(LLMConfig(provider="ollama", model="llama3.2"), refuse)
    async with http:
        with pytest.raises(ProviderConnectionError):
            await llm.call([Message.user("hi")])
        ok, err = await llm.check_connection()
    assert ok is False
    assert "Ollama" in err


@pytest.mark.asyncio
async def test_switch_provider_and_update_config(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ak")
    monkeypatch.delenv("ANTHROPIC_BASE_URL", raising=False)
    llm = LLMClient(LLMConfig(provider="openai", model="gpt", api_key="k", max_tokens=999, temperature=0.1))

    cfg = llm.switch_provider("Anthropic")
    assert cfg.provider == "anthropic"
    assert cfg.api_key == "ak"
    assert cfg.model == "claude-sonnet-4-20250514"
    assert cfg.max_tokens == 999

    llm.update_config(model="claude-opus")
    assert llm.provider_info() == {"provider": "anthropic", "model": "claude-opus", "base_url": "https://api.anthropic.com"}

    with pytest.raises(ConfigError):
        llm.switch_provider("mystery")
    assert llm.config.provider == "anthropic"
    await llm.aclose()


@pytest.mark.asyncio
async def test_list_ollama_models():
    def respond(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "llama3.2"}, {"name": "qwen2.5-coder"}]})

    llm, rec, http = _client(LLMConfig(provider="ollama", model="llama3.2", base_url="http://localhost:11434"), respond)
    async with http:
        assert await llm.list_ollama_models() == ["llama3.2", "qwen2.5-coder"]
