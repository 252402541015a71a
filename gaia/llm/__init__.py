"""LLM providers - direct HTTP calls to Ollama, OpenAI and Mistral APIs."""

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from gaia.exceptions import ConfigurationError, LLMAPIError, LLMError
from gaia.logging import get_logger

log = get_logger(__name__)


OPENAI_HOST = "api.openai.com"
MISTRAL_HOST = "api.mistral.ai"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
MISTRAL_CHAT_URL = "https://api.mistral.ai/v1/chat/completions"
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
MISTRAL_DEFAULT_MODEL = "mistral-medium-latest"


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: str
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        pass

    @abstractmethod
    async def complete_streaming(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        pass

    async def ensure_model(self) -> None:
        """Make sure the configured model is usable (hosted APIs need nothing)."""
        return None

    async def close(self) -> None:
        """Release provider resources."""
        return None


def _convert_messages(messages: list[Message]) -> list[dict[str, str]]:
    """Convert messages (or plain dicts) to the wire format."""
    result = []
    for msg in messages:
        if isinstance(msg, dict):
            role = str(msg.get("role") or "")
            content = str(msg.get("content") or "")
        else:
            role = str(getattr(msg, "role", "") or "")
            content = str(getattr(msg, "content", "") or "")
        if role in {"system", "user", "assistant"}:
            result.append({"role": role, "content": content})
    return result


def model_exists(names: list[str], model: str) -> bool:
    """Check whether `model` is among locally available Ollama model names.

    An untagged model name matches any tag of the same base name.
    """
    wanted = str(model or "").strip()
    if not wanted:
        return False
    wanted_has_tag = ":" in wanted
    wanted_base = wanted.split(":")[0]
    for raw in names:
        name = str(raw or "").strip()
        if not name:
            continue
        if name.lower() == wanted.lower():
            return True
        if not wanted_has_tag and name.split(":")[0].lower() == wanted_base.lower():
            return True
    return False


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    name = "ollama"

    def __init__(
        self,
        model: str = "mistral",
        base_url: str = "http://localhost:11434",
        temperature: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'mistral', 'qwen3:32b')
            base_url: Ollama API base URL
            temperature: Optional sampling temperature
            client: Optional preconfigured HTTP client
        """
        if not str(model or "").strip():
            raise ConfigurationError("configuration error: model name is not set")
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.client = client or httpx.AsyncClient(timeout=120.0, follow_redirects=True)

    def _body(
        self,
        messages: list[Message],
        stream: bool,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": _convert_messages(messages),
            "stream": stream,
        }
        options: dict[str, Any] = {}
        effective_temperature = temperature if temperature is not None else self.temperature
        if effective_temperature is not None:
            options["temperature"] = effective_temperature
        if max_tokens:
            options["num_predict"] = max_tokens
        if options:
            body["options"] = options
        return body

    async def complete(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._body(messages, False, temperature, max_tokens)

        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(body["messages"]))
            response = await self.client.post(url, json=body)
        except httpx.HTTPError as e:
            raise LLMAPIError(
                f"failed to connect to API server at {self.base_url}: {e}. Please ensure the server is running"
            ) from e

        if not response.is_success:
            raise LLMAPIError(
                f"Ollama API error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"Ollama response decode error: {e}") from e

        message = data.get("message") or {}
        usage = {
            "prompt_tokens": int(data.get("prompt_eval_count", 0) or 0),
            "completion_tokens": int(data.get("eval_count", 0) or 0),
        }
        usage["total_tokens"] = usage["prompt_tokens"] + usage["completion_tokens"]
        return LLMResponse(
            content=str(message.get("content") or ""),
            model=str(data.get("model") or self.model),
            usage=usage,
        )

    async def complete_streaming(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._body(messages, True, temperature, max_tokens)

        try:
            async with self.client.stream("POST", url, json=body) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise LLMError(f"Ollama stream decode error: {e}") from e
                    content = (chunk.get("message") or {}).get("content")
                    if content:
                        yield content
                    if chunk.get("done"):
                        break
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}") from e

    async def list_models(self) -> list[str]:
        """Return model names known to the Ollama server."""
        url = f"{self.base_url}/api/tags"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise LLMAPIError(
                f"failed to connect to API server at {self.base_url}: {e}. Please ensure the server is running"
            ) from e
        if response.status_code != 200:
            raise LLMAPIError(
                f"API server returned status {response.status_code}. Please check server configuration",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"failed to decode API response: {e}") from e
        return [str(item.get("name") or "") for item in data.get("models") or []]

    async def pull_model(self) -> None:
        """Download the model, logging progress as it arrives."""
        url = f"{self.base_url}/api/pull"
        try:
            async with self.client.stream("POST", url, json={"name": self.model}) as response:
                if response.status_code != 200:
                    detail = (await response.aread()).decode("utf-8", errors="replace").strip()
                    raise LLMAPIError(
                        f"failed to pull model '{self.model}': API returned status {response.status_code}"
                        + (f". Response: {detail}" if detail else ""),
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        progress = json.loads(line)
                    except json.JSONDecodeError:
                        log.warning("Undecodable pull progress line", line=line[:200])
                        continue
                    log.info(
                        "Pulling model",
                        model=self.model,
                        status=progress.get("status", ""),
                        completed=progress.get("completed"),
                        total=progress.get("total"),
                    )
        except httpx.HTTPError as e:
            raise LLMAPIError(f"failed to pull model '{self.model}': {e}") from e

    async def ensure_model(self) -> None:
        """Pull the model when the server does not have it yet."""
        if model_exists(await self.list_models(), self.model):
            return
        log.warning("Model not found, pulling", model=self.model)
        await self.pull_model()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OpenAICompatibleProvider(LLMProvider):
    """Hosted chat-completions API (OpenAI wire format)."""

    chat_url: str = OPENAI_CHAT_URL
    api_key_env: str = "OPENAI_API_KEY"
    default_model: str = OPENAI_DEFAULT_MODEL

    def __init__(
        self,
        model: str = "",
        api_key: str | None = None,
        temperature: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.model = str(model or "").strip() or self.default_model
        self.api_key = api_key if api_key is not None else os.environ.get(self.api_key_env, "")
        self.temperature = temperature
        self.client = client or httpx.AsyncClient(timeout=120.0, follow_redirects=True)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ConfigurationError(f"{self.api_key_env} environment variable is not set")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _body(
        self,
        messages: list[Message],
        stream: bool,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": _convert_messages(messages),
            "stream": stream,
        }
        effective_temperature = temperature if temperature is not None else self.temperature
        if effective_temperature is not None:
            body["temperature"] = effective_temperature
        if max_tokens:
            body["max_tokens"] = max_tokens
        return body

    async def complete(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        headers = self._headers()
        body = self._body(messages, False, temperature, max_tokens)
        try:
            log.debug("Calling chat completions", provider=self.name, model=self.model)
            response = await self.client.post(self.chat_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise LLMAPIError(f"failed to call {self.name} API: {e}") from e

        if not response.is_success:
            raise LLMAPIError(
                f"{self.name} API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMError(f"failed to decode {self.name} response: {e}") from e

        choices = data.get("choices") or []
        if not choices:
            raise LLMError(f"{self.name} response has no choices")
        content = str((choices[0].get("message") or {}).get("content") or "")
        usage = {key: int(value) for key, value in (data.get("usage") or {}).items() if isinstance(value, int)}
        return LLMResponse(content=content, model=str(data.get("model") or self.model), usage=usage)

    async def complete_streaming(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a completion from server-sent events."""
        headers = self._headers()
        body = self._body(messages, True, temperature, max_tokens)
        try:
            async with self.client.stream("POST", self.chat_url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"{self.name} API error: {response.status_code} - {error_text}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line or line.startswith(":"):
                        continue
                    if line == "data: [DONE]":
                        break
                    if not line.startswith("data: "):
                        continue
                    try:
                        chunk = json.loads(line[len("data: "):])
                    except json.JSONDecodeError:
                        # partial SSE frames are skipped
                        continue
                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    delta = (choices[0].get("delta") or {}).get("content")
                    if delta:
                        yield delta
        except httpx.HTTPError as e:
            raise LLMAPIError(f"{self.name} streaming error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI chat completions."""

    name = "openai"
    chat_url = OPENAI_CHAT_URL
    api_key_env = "OPENAI_API_KEY"
    default_model = OPENAI_DEFAULT_MODEL


class MistralProvider(OpenAICompatibleProvider):
    """Mistral AI chat completions."""

    name = "mistral"
    chat_url = MISTRAL_CHAT_URL
    api_key_env = "MISTRAL_API_KEY"
    default_model = MISTRAL_DEFAULT_MODEL


def resolve_provider_name(host: str, port: int) -> str:
    """Pick the provider for a configured host/port pair."""
    cleaned = str(host or "").strip().lower()
    if not cleaned:
        raise ConfigurationError("configuration error: host is not set")
    if int(port) <= 0:
        raise ConfigurationError(f"configuration error: port is invalid ({port})")
    if OPENAI_HOST in cleaned and int(port) == 443:
        return "openai"
    if MISTRAL_HOST in cleaned and int(port) == 443:
        return "mistral"
    return "ollama"


def create_provider(
    provider: str = "ollama",
    model: str = "mistral",
    host: str = "localhost",
    port: int = 11434,
    api_key: str | None = None,
    temperature: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> LLMProvider:
    """Create an LLM provider.

    Args:
        provider: Provider name (ollama, openai, mistral)
        model: Model name
        host: Ollama host (ignored by hosted APIs)
        port: Ollama port (ignored by hosted APIs)
        api_key: Optional API key (hosted APIs read their env var otherwise)
        temperature: Default temperature
        client: Optional preconfigured HTTP client

    Returns:
        Configured LLMProvider instance
    """
    normalized = str(provider or "").strip().lower()
    if normalized == "ollama":
        return OllamaProvider(
            model=model,
            base_url=f"http://{host}:{port}",
            temperature=temperature,
            client=client,
        )
    if normalized == "openai":
        return OpenAIProvider(model=model, api_key=api_key, temperature=temperature, client=client)
    if normalized == "mistral":
        return MistralProvider(model=model, api_key=api_key, temperature=temperature, client=client)
    raise ValueError(f"Provider '{provider}' not supported. Use 'ollama', 'openai' or 'mistral'.")


def create_provider_from_config(cfg: Any, client: httpx.AsyncClient | None = None) -> LLMProvider:
    """Create the provider selected by a loaded `Config`."""
    return create_provider(
        provider=resolve_provider_name(cfg.host, cfg.port),
        model=cfg.model,
        host=cfg.host,
        port=cfg.port,
        client=client,
    )
