import pytest

from gaia.cache import ResponseCache
from gaia.config import DEFAULT_ROLE_KEYWORDS
from gaia.exceptions import LLMAPIError
from gaia.llm import LLMProvider, LLMResponse
from gaia.roles import AutoRoleSettings, RoleDetector, build_detection_cache_key, classify_role_with_llm

ROLES = ["default", "describe", "shell", "code", "commit", "branch"]


class ClassifierProvider(LLMProvider):
    def __init__(self, reply: str = "describe"):
        self.reply = reply
        self.calls: list[list] = []

    async def complete(self, messages, temperature=None, max_tokens=None):
        self.calls.append(list(messages))
        return LLMResponse(content=self.reply, model="classifier")

    async def complete_streaming(self, messages, temperature=None, max_tokens=None):
        yield self.reply


class BrokenProvider(ClassifierProvider):
    async def complete(self, messages, temperature=None, max_tokens=None):
        raise LLMAPIError("model not loaded", status_code=404)


def _detector(mode="hybrid", provider=None, cache=None, enabled=True, keywords=None):
    settings = AutoRoleSettings(
        enabled=enabled,
        mode=mode,
        keywords=DEFAULT_ROLE_KEYWORDS if keywords is None else keywords,
    )
    return RoleDetector(settings, ROLES, provider=provider, cache=cache)


def test_default_role_is_always_available():
    detector = RoleDetector(AutoRoleSettings(), ["shell", "code"])
    assert detector.roles == ["default", "shell", "code"]


@pytest.mark.asyncio
async def test_disabled_detection_returns_default():
    provider = ClassifierProvider()
    result = await _detector(enabled=False, provider=provider).detect("run ls", explicit_role="shell")
    assert result.role == "default"
    assert result.method == "default"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_explicit_role_wins():
    result = await _detector(provider=ClassifierProvider()).detect("what is x", explicit_role="code")
    assert (result.role, result.method, result.reason) == ("code", "explicit", "role explicitly provided")


@pytest.mark.asyncio
async def test_heuristic_match_skips_llm():
    provider = ClassifierProvider(reply="code")
    result = await _detector(provider=provider).detect("generate git commit message")
    assert result.role == "commit"
    assert result.method == "heuristic"
    assert result.score == pytest.approx(0.6)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_llm_classifies_when_heuristic_fails():
    provider = ClassifierProvider(reply=" Describe. ")
    result = await _detector(provider=provider, keywords={}).detect("Please summarize the quarterly numbers")
    assert result.role == "describe"
    assert result.method == "llm"
    assert len(provider.calls) == 1
    assert "Available roles: default, describe, shell, code, commit, branch" in provider.calls[0][1].content


@pytest.mark.asyncio
async def test_unknown_llm_reply_falls_back_to_default():
    provider = ClassifierProvider(reply="poetry")
    result = await _detector(provider=provider, keywords={}).detect("Write me a haiku about autumn leaves")
    assert result.role == "default"
    assert result.method == "llm"


@pytest.mark.asyncio
async def test_llm_failure_falls_back_to_default():
    result = await _detector(provider=BrokenProvider(), keywords={}).detect("Write me a haiku about autumn leaves")
    assert result.role == "default"
    assert result.method == "default"
    assert result.reason == "no role detected, using default"


@pytest.mark.asyncio
async def test_heuristic_mode_never_calls_llm():
    provider = ClassifierProvider()
    result = await _detector(mode="heuristic", provider=provider, keywords={}).detect(
        "Write me a haiku about autumn leaves"
    )
    assert result.method == "default"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_detection_is_cached(tmp_path):
    cache = ResponseCache(tmp_path / "cache")
    provider = ClassifierProvider(reply="describe")
    detector = _detector(provider=provider, cache=cache, keywords={})
    message = "Please summarize the quarterly numbers"

    first = await detector.detect(message)
    second = await detector.detect(message)

    assert first == second
    assert len(provider.calls) == 1
    stored = cache.get_json(build_detection_cache_key(message, ROLES))
    assert stored["role"] == "describe"
    assert stored["method"] == "llm"


@pytest.mark.asyncio
async def test_malformed_cached_detection_is_ignored(tmp_path):
    cache = ResponseCache(tmp_path)
    message = "generate git commit message"
    cache.put_json(build_detection_cache_key(message, ROLES), {"role": "shell", "method": "guess"})
    result = await _detector(cache=cache).detect(message)
    assert result.role == "commit"


@pytest.mark.asyncio
async def test_classifier_request_is_isolated():
    provider = ClassifierProvider(reply="shell")
    role, reason = await classify_role_with_llm(provider, "list files", ["default", "shell"], "be brief")
    assert role == "shell"
    assert reason == "LLM selected based on message analysis"
    messages = provider.calls[0]
    assert [m.role for m in messages] == ["system", "user"]
    assert messages[0].content == "be brief"
    assert "User message: list files" in messages[1].content
