"""Ask/chat pipeline: role selection, caching and the provider call."""

import os
import platform
from dataclasses import dataclass, field
from typing import Callable

from gaia.cache import ResponseCache, build_response_key
from gaia.config import Config
from gaia.exceptions import CacheError
from gaia.llm import LLMProvider, Message, resolve_provider_name
from gaia.logging import get_logger
from gaia.roles import DetectionResult, RoleDetector

log = get_logger(__name__)


def current_shell() -> str:
    return os.environ.get("SHELL", "")


def current_os() -> str:
    return platform.system().lower()


def render_role_template(template: str, shell: str | None = None, os_name: str | None = None) -> str:
    """Fill `%s` placeholders in a role template with shell, then OS name."""
    if "%s" not in template:
        return template
    values = iter([current_shell() if shell is None else shell, current_os() if os_name is None else os_name])
    pieces = template.split("%s")
    rendered = [pieces[0]]
    for piece in pieces[1:]:
        rendered.append(next(values, ""))
        rendered.append(piece)
    return "".join(rendered)


@dataclass
class ChatSession:
    """Message history owned by one ask/chat invocation."""

    history: list[Message] = field(default_factory=list)

    def add_message(self, role: str, content: str) -> None:
        self.history.append(Message(role=role, content=content))

    def clear(self) -> None:
        self.history.clear()


class Assistant:
    """Answers user messages with the configured provider."""

    def __init__(
        self,
        config: Config,
        provider: LLMProvider,
        detector: RoleDetector,
        cache: ResponseCache | None = None,
        session: ChatSession | None = None,
    ):
        self.config = config
        self.provider = provider
        self.detector = detector
        self.cache = cache
        self.session = session or ChatSession()
        self._model_checked = False

    async def _ensure_model(self) -> None:
        if self._model_checked:
            return
        await self.provider.ensure_model()
        self._model_checked = True

    def build_messages(self, message: str, role: str) -> tuple[list[Message], str]:
        """Return the request messages and the raw role template used."""
        template = self.config.roles.get(role, "")
        system = Message(role="system", content=render_role_template(template))
        return [system, *self.session.history, Message(role="user", content=message)], template

    def _cache_key(self, role: str, template: str, messages: list[Message]) -> str:
        return build_response_key(
            provider=resolve_provider_name(self.config.host, self.config.port),
            host=self.config.host,
            port=self.config.port,
            model=self.config.model,
            system_role=role,
            role_template=template,
            messages=[msg.to_dict() for msg in messages],
        )

    async def detect_role(self, message: str, explicit_role: str = "") -> DetectionResult:
        # an explicit role wins even when auto-detection is turned off
        if explicit_role:
            return DetectionResult(role=explicit_role, method="explicit", reason="role explicitly provided")
        return await self.detector.detect(message)

    async def process_message(
        self,
        message: str,
        explicit_role: str = "",
        stream_to: Callable[[str], None] | None = None,
    ) -> str:
        """Answer `message`, streaming chunks to `stream_to` when given."""
        detection = await self.detect_role(message, explicit_role)
        messages, template = self.build_messages(message, detection.role)

        key = self._cache_key(detection.role, template, messages) if self.cache is not None else ""
        response = self.cache.get(key) if self.cache is not None else None

        if response is not None:
            if stream_to is not None:
                stream_to(response)
        else:
            await self._ensure_model()
            if stream_to is not None:
                chunks: list[str] = []
                async for chunk in self.provider.complete_streaming(messages):
                    chunks.append(chunk)
                    stream_to(chunk)
                response = "".join(chunks)
            else:
                response = (await self.provider.complete(messages)).content
            if self.cache is not None:
                try:
                    self.cache.put(key, response)
                except CacheError as e:
                    log.warning("Failed to write response cache", error=str(e))

        self.session.add_message("user", message)
        self.session.add_message("assistant", response)
        return response
