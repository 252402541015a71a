"""Conversation state and decision parsing for the investigate loop."""

import json
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ValidationError, model_validator

from gaia.exceptions import DecisionDecodeError, DecisionValidationError
from gaia.llm import Message


@dataclass
class Step:
    """One turn: an assistant decision or a user observation."""

    role: Literal["assistant", "user"]
    content: str


@dataclass
class ConversationState:
    """Goal plus the append-only list of steps taken so far."""

    goal: str
    steps: list[Step] = field(default_factory=list)

    def append_decision(self, raw: str) -> None:
        """Store the decision JSON exactly as the model produced it."""
        self.steps.append(Step(role="assistant", content=raw))

    def append_observation(self, text: str) -> None:
        self.steps.append(Step(role="user", content=text))

    def last_answer_or_partial(self) -> str:
        """Most recent assistant content, else the goal."""
        for step in reversed(self.steps):
            if step.role == "assistant":
                return step.content
        return self.goal

    def to_messages(self) -> list[Message]:
        messages = [Message(role="user", content=f"Goal: {self.goal}")]
        messages.extend(Message(role=step.role, content=step.content) for step in self.steps)
        return messages


class Decision(BaseModel):
    """Parsed planner output: a final answer or one tool call."""

    action: Literal["answer", "tool"]
    content: str = ""
    name: str = ""
    args: dict[str, str] | None = None
    reasoning: str = ""

    @model_validator(mode="after")
    def _check_tool_call(self) -> "Decision":
        if self.action == "tool" and (not self.name or self.args is None):
            raise ValueError("tool decision missing name or args")
        return self


def parse_decision(raw: str) -> Decision:
    """Parse extracted JSON text into a Decision.

    Raises:
        DecisionDecodeError: text is not valid JSON
        DecisionValidationError: JSON does not describe a valid decision
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecisionDecodeError(f"invalid JSON: {e}", raw=raw) from e
    if not isinstance(data, dict):
        raise DecisionDecodeError("invalid JSON: expected an object", raw=raw)
    try:
        return Decision.model_validate(data)
    except ValidationError as e:
        if any(err.get("loc") == ("action",) for err in e.errors()):
            message = f"invalid action {data.get('action', '')!r} (expected answer or tool)"
        elif any(err.get("type") == "value_error" for err in e.errors()):
            message = "tool decision missing name or args"
        else:
            message = f"invalid decision: {e.error_count()} field error(s)"
        raise DecisionValidationError(message, raw=raw) from e
