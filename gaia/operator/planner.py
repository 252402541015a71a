"""Planner: prompts the model and turns its reply into a Decision."""

import re

from gaia.llm import LLMProvider, Message
from gaia.logging import get_logger
from gaia.operator.state import ConversationState, Decision, parse_decision
from gaia.operator.tools import ToolRegistry

log = get_logger(__name__)

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([^`]+)```", re.DOTALL)

SYSTEM_PROMPT = (
    "You are an operator investigating a goal. Respond only with a single JSON object, "
    "no markdown or explanation. "
    'Either {"action":"answer","content":"..."} to finish with a summary, or '
    '{"action":"tool","name":"...","args":{...},"reasoning":"..."} to run one tool. '
    "Do not run destructive commands (e.g. rm -rf, sudo). "
)


def extract_json(text: str) -> str:
    """Pull the first JSON object out of a model reply.

    A fenced code block wins. Otherwise the first `{` is matched to its
    closing brace by depth counting; braces inside strings are not special.
    """
    s = str(text or "").strip()
    match = _FENCED_BLOCK_RE.search(s)
    if match:
        return match.group(1).strip()

    start = s.find("{")
    if start < 0:
        return s
    depth = 0
    for i in range(start, len(s)):
        char = s[i]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return s[start : i + 1]
    return s[start:]


def build_system_prompt(registry: ToolRegistry) -> str:
    lines = ["Available tools (respond with JSON only):"]
    for name in registry.list_tools():
        tool = registry.get(name)
        if tool is None:
            continue
        schema = ", ".join(f"{key}: {value}" for key, value in tool.schema.items())
        lines.append(f"- {tool.name}: {tool.description}. Args: {schema}")
    return SYSTEM_PROMPT + "\n".join(lines) + "\n"


class Planner:
    """Asks the completion provider for the next decision."""

    def __init__(self, provider: LLMProvider, model: str = ""):
        self.provider = provider
        self.model = model

    def build_messages(self, state: ConversationState, registry: ToolRegistry) -> list[Message]:
        return [Message(role="system", content=build_system_prompt(registry)), *state.to_messages()]

    async def decide(self, state: ConversationState, registry: ToolRegistry) -> tuple[Decision, str]:
        """Return the parsed decision and the JSON text it came from.

        Raises:
            InvalidDecisionError: the reply could not be parsed
            LLMError: the provider call failed
        """
        messages = self.build_messages(state, registry)
        log.debug("Requesting decision", model=self.model or "default", messages=len(messages))
        response = await self.provider.complete(messages)
        raw = extract_json(response.content)
        return parse_decision(raw), raw
