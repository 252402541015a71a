"""Operator loop: plan, guard, execute and observe until the model answers."""

from dataclasses import dataclass, field

from gaia.exceptions import (
    EmptyGoalError,
    InvalidDecisionError,
    MaxStepsReachedError,
    RepeatedParseFailureError,
)
from gaia.llm import LLMProvider
from gaia.logging import get_logger
from gaia.operator.executor import MAX_OUTPUT_BYTES, Executor, format_observation
from gaia.operator.planner import Planner
from gaia.operator.safety import Confirmer, GuardOptions, SafetyGuard
from gaia.operator.state import ConversationState
from gaia.operator.tools import ShellRunner, ToolRegistry, default_tool_registry

log = get_logger(__name__)

DEFAULT_MAX_STEPS = 10
DEFAULT_MAX_PARSE_FAILURES = 2
OBSERVATION_PREVIEW_CHARS = 200


@dataclass
class RunOptions:
    """Options for one investigate run."""

    max_steps: int = DEFAULT_MAX_STEPS
    dry_run: bool = False
    yes: bool = False
    confirm_medium_risk: bool = False
    denylist: list[str] = field(default_factory=list)
    allowlist: list[str] = field(default_factory=list)
    confirmer: Confirmer | None = None
    shell_runner: ShellRunner | None = None
    max_output_bytes: int = MAX_OUTPUT_BYTES
    max_parse_failures: int = DEFAULT_MAX_PARSE_FAILURES
    model: str = ""

    def guard_options(self) -> GuardOptions:
        return GuardOptions(
            denylist=list(self.denylist),
            allowlist=list(self.allowlist),
            confirm_medium_risk=self.confirm_medium_risk,
            dry_run=self.dry_run,
            yes=self.yes,
            confirmer=self.confirmer,
        )


def _preview(text: str) -> str:
    if len(text) > OBSERVATION_PREVIEW_CHARS:
        return text[:OBSERVATION_PREVIEW_CHARS] + "..."
    return text


class OperatorLoop:
    """Bounded planner/guard/executor loop for one goal.

    Each iteration appends the decision (when it parses) and exactly one
    observation. Parse failures are retried up to `max_parse_failures`
    consecutive times; unknown tools, guard blocks and command failures are
    reported back to the model as observations.
    """

    def __init__(
        self,
        provider: LLMProvider,
        options: RunOptions | None = None,
        registry: ToolRegistry | None = None,
    ):
        self.options = options or RunOptions()
        self.registry = registry or default_tool_registry(self.options.shell_runner)
        self.planner = Planner(provider, model=self.options.model)
        self.guard = SafetyGuard(self.options.guard_options())
        self.executor = Executor(self.options.max_output_bytes)
        self.state: ConversationState | None = None

    def _observe(self, state: ConversationState, text: str) -> None:
        state.append_observation(text)
        log.debug("Observation", text=_preview(text))

    async def run(self, goal: str) -> str:
        """Investigate `goal` and return the model's final answer.

        Raises:
            EmptyGoalError: goal is blank
            MaxStepsReachedError: no answer within `max_steps`
            RepeatedParseFailureError: too many unparseable replies in a row
        """
        goal = str(goal or "").strip()
        if not goal:
            raise EmptyGoalError()

        opts = self.options
        max_steps = opts.max_steps if opts.max_steps > 0 else DEFAULT_MAX_STEPS
        max_parse_failures = opts.max_parse_failures if opts.max_parse_failures > 0 else DEFAULT_MAX_PARSE_FAILURES

        state = ConversationState(goal=goal)
        self.state = state
        parse_failures = 0

        for step in range(max_steps):
            try:
                decision, raw = await self.planner.decide(state, self.registry)
            except InvalidDecisionError as e:
                parse_failures += 1
                state.append_observation(f"error: Invalid response: {e}. Respond with valid JSON only.")
                log.debug("Parse error", step=step, error=str(e), failures=parse_failures)
                if parse_failures >= max_parse_failures:
                    raise RepeatedParseFailureError(state.last_answer_or_partial(), e) from e
                continue
            parse_failures = 0

            state.append_decision(raw)
            log.debug(
                "Decision",
                step=step,
                action=decision.action,
                name=decision.name or None,
                args=decision.args,
                reasoning=decision.reasoning or None,
            )

            if decision.action == "answer":
                return decision.content.strip()

            tool = self.registry.get(decision.name)
            if tool is None:
                self._observe(state, f"error: Unknown tool: {decision.name}")
                continue

            args = decision.args or {}
            verdict = self.guard.allow(tool, args)
            if not verdict.allowed:
                self._observe(state, f"blocked: {verdict.reason}")
                continue

            if opts.dry_run:
                observation = f"dry_run: Would run: {decision.name}"
                if "cmd" in args:
                    observation += f" {args['cmd']}"
                self._observe(state, observation)
                continue

            outcome = await self.executor.run(tool, args)
            self._observe(state, format_observation(outcome.stdout, outcome.stderr, outcome.error))

        raise MaxStepsReachedError(state.last_answer_or_partial())


async def run(goal: str, provider: LLMProvider, options: RunOptions | None = None) -> str:
    """Run one investigation with the default tool registry."""
    return await OperatorLoop(provider, options).run(goal)
