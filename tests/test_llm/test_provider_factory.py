import json

import httpx
import pytest

from gaia.config import Config
from gaia.exceptions import ConfigurationError, LLMAPIError
from gaia.llm import (
    MistralProvider,
    Message,
    OllamaProvider,
    OpenAIProvider,
    create_provider,
    create_provider_from_config,
    model_exists,
    resolve_provider_name,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_create_provider_supports_ollama():
    provider = create_provider(provider="ollama", model="llama3.2", host="gpu-box", port=11500)
    assert isinstance(provider, OllamaProvider)
    assert provider.model == "llama3.2"
    assert provider.base_url == "http://gpu-box:11500"


def test_create_provider_supports_hosted_apis():
    openai = create_provider(provider="OpenAI", model="", api_key="k")
    assert isinstance(openai, OpenAIProvider)
    assert openai.model == "gpt-4o-mini"
    mistral = create_provider(provider="mistral", model="mistral-small-latest", api_key="k")
    assert isinstance(mistral, MistralProvider)
    assert mistral.model == "mistral-small-latest"


def test_create_provider_rejects_unknown():
    with pytest.raises(ValueError, match="not supported"):
        create_provider(provider="bard", model="x")


def test_ollama_requires_model():
    with pytest.raises(ConfigurationError):
        OllamaProvider(model="  ")


@pytest.mark.parametrize(
    ("host", "port", "expected"),
    [
        ("localhost", 11434, "ollama"),
        ("api.openai.com", 443, "openai"),
        ("https://api.mistral.ai", 443, "mistral"),
        ("api.openai.com", 8443, "ollama"),
    ],
)
def test_resolve_provider_name(host, port, expected):
    assert resolve_provider_name(host, port) == expected


@pytest.mark.parametrize(("host", "port"), [("", 11434), ("localhost", 0)])
def test_resolve_provider_name_rejects_bad_endpoint(host, port):
    with pytest.raises(ConfigurationError):
        resolve_provider_name(host, port)


def test_create_provider_from_config():
    provider = create_provider_from_config(Config(model="qwen3:8b", host="localhost", port=11434))
    assert isinstance(provider, OllamaProvider)
    assert provider.model == "qwen3:8b"


def test_model_exists_matches_tags():
    names = ["mistral:latest", "qwen3:8b"]
    assert model_exists(names, "mistral")
    assert model_exists(names, "MISTRAL:latest")
    assert model_exists(names, "qwen3")
    assert not model_exists(names, "qwen3:32b")
    assert not model_exists(names, "")
    assert not model_exists([], "mistral")


@pytest.mark.asyncio
async def test_ollama_complete_posts_chat_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": "mistral",
                "message": {"role": "assistant", "content": "ls -la"},
                "prompt_eval_count": 10,
                "eval_count": 3,
            },
        )

    provider = OllamaProvider(model="mistral", client=_client(handler), temperature=0.2)
    response = await provider.complete([Message(role="system", content="s"), Message(role="user", content="list")])
    await provider.close()

    assert response.content == "ls -la"
    assert response.usage == {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13}
    assert seen["url"] == "http://localhost:11434/api/chat"
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"] == {"temperature": 0.2}
    assert seen["body"]["messages"][1] == {"role": "user", "content": "list"}


@pytest.mark.asyncio
async def test_ollama_http_error_raises():
    provider = OllamaProvider(client=_client(lambda request: httpx.Response(500, text="boom")))
    with pytest.raises(LLMAPIError) as exc_info:
        await provider.complete([Message(role="user", content="hi")])
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_ollama_streaming_yields_chunks():
    lines = [
        {"message": {"content": "Hello"}, "done": False},
        {"message": {"content": " world"}, "done": False},
        {"message": {"content": ""}, "done": True},
    ]
    body = "\n".join(json.dumps(line) for line in lines) + "\n"
    provider = OllamaProvider(client=_client(lambda request: httpx.Response(200, text=body)))
    chunks = [chunk async for chunk in provider.complete_streaming([Message(role="user", content="hi")])]
    assert chunks == ["Hello", " world"]


@pytest.mark.asyncio
async def test_ensure_model_pulls_missing_model():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "llama3.2:latest"}]})
        return httpx.Response(200, text='{"status":"pulling"}\n{"status":"success"}\n')

    await OllamaProvider(model="mistral", client=_client(handler)).ensure_model()
    assert paths == ["/api/tags", "/api/pull"]


@pytest.mark.asyncio
async def test_ensure_model_skips_pull_when_present():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"models": [{"name": "mistral:latest"}]})

    await OllamaProvider(model="mistral", client=_client(handler)).ensure_model()
    assert paths == ["/api/tags"]


@pytest.mark.asyncio
async def test_openai_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    provider = OpenAIProvider(client=_client(lambda request: httpx.Response(200, json={})))
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY environment variable is not set"):
        await provider.complete([Message(role="user", content="hi")])


@pytest.mark.asyncio
async def test_openai_complete_sends_bearer_token(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["url"] = str(request.url)
        return httpx.Response(
            200,
            json={"model": "gpt-4o-mini", "choices": [{"message": {"content": "pong"}}], "usage": {"total_tokens": 5}},
        )

    response = await OpenAIProvider(client=_client(handler)).complete([Message(role="user", content="ping")])
    assert response.content == "pong"
    assert response.usage == {"total_tokens": 5}
    assert seen["auth"] == "Bearer sk-test"
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"


@pytest.mark.asyncio
async def test_mistral_streaming_parses_sse():
    body = (
        'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        ": keep-alive\n\n"
        'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        "data: [DONE]\n\n"
    )
    provider = MistralProvider(api_key="k", client=_client(lambda request: httpx.Response(200, text=body)))
    chunks = [chunk async for chunk in provider.complete_streaming([Message(role="user", content="hi")])]
    assert chunks == ["Hel", "lo"]
