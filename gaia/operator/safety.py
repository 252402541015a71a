"""Safety guard deciding whether a requested tool call may run."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, NamedTuple, Protocol

from gaia.logging import get_logger

if TYPE_CHECKING:
    from gaia.operator.tools import Tool

log = get_logger(__name__)

RUN_CMD_NAME = "run_cmd"


class RiskLevel(IntEnum):
    """How dangerous a tool call is. CRITICAL is never allowed."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def label(cls, value: int) -> str:
        try:
            return str(cls(value))
        except ValueError:
            return "unknown"


class Confirmer(Protocol):
    """Asks a human to approve a tool call."""

    def confirm(self, message: str) -> bool: ...


class GuardDecision(NamedTuple):
    allowed: bool
    reason: str = ""


@dataclass
class GuardOptions:
    """Per-run guard policy."""

    denylist: list[str] = field(default_factory=list)
    allowlist: list[str] = field(default_factory=list)
    confirm_medium_risk: bool = False
    dry_run: bool = False
    yes: bool = False
    confirmer: Confirmer | None = None


def describe_tool_call(name: str, args: dict[str, str] | None) -> str:
    """Human readable description of a tool call for confirmation prompts."""
    args = args or {}
    if name == RUN_CMD_NAME and "cmd" in args:
        return f"Run command: {args['cmd']}"
    return f"{name} with args: " + " ".join(str(args.get("cmd", "")).split())


def _clean_entries(entries: list[str]) -> list[tuple[str, str]]:
    cleaned = []
    for entry in entries or []:
        normalized = str(entry or "").strip().lower()
        if normalized:
            cleaned.append((str(entry), normalized))
    return cleaned


class SafetyGuard:
    """Applies the guard policy to tool calls.

    Checks run in a fixed order: critical risk, empty command, denylist,
    allowlist, dry-run, then confirmation. Dry-run and `yes` skip only the
    confirmation step.
    """

    def __init__(self, options: GuardOptions | None = None):
        self.options = options or GuardOptions()

    def allow(self, tool: "Tool | None", args: dict[str, str] | None) -> GuardDecision:
        opts = self.options
        args = args or {}
        if tool is None:
            return GuardDecision(False, "no tool")
        if tool.risk_level >= RiskLevel.CRITICAL:
            return GuardDecision(False, f"tool {tool.name} is not allowed (critical risk)")

        if tool.name == RUN_CMD_NAME:
            cmd = str(args.get("cmd", "")).strip()
            if not cmd:
                return GuardDecision(False, "empty command")
            cmd_lower = cmd.lower()
            for entry, needle in _clean_entries(opts.denylist):
                if needle in cmd_lower:
                    return GuardDecision(False, f"command blocked by denylist: {entry}")
            allow_entries = _clean_entries(opts.allowlist)
            if allow_entries and not any(
                cmd_lower.startswith(needle) or needle in cmd_lower for _, needle in allow_entries
            ):
                return GuardDecision(False, "command not in allowlist")

        if opts.dry_run:
            return GuardDecision(True)

        if tool.risk_level >= RiskLevel.MEDIUM and opts.confirm_medium_risk and not opts.yes:
            if opts.confirmer is None:
                log.warning(
                    "Tool call requires confirmation but no confirmer is configured; allowing",
                    tool=tool.name,
                    risk=str(tool.risk_level),
                )
                return GuardDecision(True)
            try:
                confirmed = opts.confirmer.confirm(describe_tool_call(tool.name, args))
            except Exception as e:
                return GuardDecision(False, f"confirmation failed: {e}")
            if not confirmed:
                return GuardDecision(False, "user declined")

        return GuardDecision(True)


def allow(tool: "Tool | None", args: dict[str, str] | None, options: GuardOptions) -> GuardDecision:
    """Check one tool call against `options`."""
    return SafetyGuard(options).allow(tool, args)
