"""Investigate mode: a bounded loop letting the model run guarded shell commands."""

from gaia.operator.executor import ExecutionOutcome, Executor, format_observation, truncate_output
from gaia.operator.loop import OperatorLoop, RunOptions, run
from gaia.operator.planner import Planner, extract_json
from gaia.operator.safety import (
    RUN_CMD_NAME,
    Confirmer,
    GuardDecision,
    GuardOptions,
    RiskLevel,
    SafetyGuard,
    allow,
    describe_tool_call,
)
from gaia.operator.shell import SubprocessShellRunner
from gaia.operator.state import ConversationState, Decision, Step, parse_decision
from gaia.operator.tools import NoopShellRunner, ShellRunner, Tool, ToolRegistry, default_tool_registry

__all__ = [
    "RUN_CMD_NAME",
    "Confirmer",
    "ConversationState",
    "Decision",
    "ExecutionOutcome",
    "Executor",
    "GuardDecision",
    "GuardOptions",
    "NoopShellRunner",
    "OperatorLoop",
    "Planner",
    "RiskLevel",
    "RunOptions",
    "SafetyGuard",
    "ShellRunner",
    "Step",
    "SubprocessShellRunner",
    "Tool",
    "ToolRegistry",
    "allow",
    "default_tool_registry",
    "describe_tool_call",
    "extract_json",
    "format_observation",
    "parse_decision",
    "run",
    "truncate_output",
]
