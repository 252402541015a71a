"""Tool descriptors and the tool registry."""

import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from gaia.logging import get_logger
from gaia.operator.safety import RUN_CMD_NAME, RiskLevel

log = get_logger(__name__)

ToolExecutorFn = Callable[[dict[str, str]], Awaitable[tuple[str, str]]]

RUN_CMD_DESCRIPTION = "Execute a shell command. Use for reading system state (e.g. df, du, find)."


class ShellRunner(Protocol):
    """Runs one shell command and returns (stdout, stderr).

    Exit code 1 is not an error. Other failures raise CommandExecutionError.
    """

    async def run(self, cmd: str) -> tuple[str, str]: ...


class NoopShellRunner:
    """Shell runner used when none is injected; never executes anything."""

    async def run(self, cmd: str) -> tuple[str, str]:
        log.warning("No shell runner configured; command not executed", command=cmd)
        return "", ""


@dataclass(frozen=True)
class Tool:
    """A callable tool the planner may request."""

    name: str
    description: str
    risk_level: RiskLevel = RiskLevel.MEDIUM
    schema: dict[str, str] = field(default_factory=dict)
    executor: ToolExecutorFn | None = None


class ToolRegistry:
    """Tools by name. Registration overwrites an existing tool of the same name."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._lock = threading.Lock()

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError("Tool must have a name")
        log.debug("Registering tool", tool=tool.name, risk=str(tool.risk_level))
        with self._lock:
            self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        with self._lock:
            self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list_tools(self) -> list[str]:
        """Registered tool names, sorted."""
        with self._lock:
            return sorted(self._tools)


def run_cmd_tool(shell_runner: ShellRunner | None = None) -> Tool:
    """Build the `run_cmd` tool bound to a shell runner."""
    runner = shell_runner or NoopShellRunner()

    async def _execute(args: dict[str, str]) -> tuple[str, str]:
        return await runner.run(args.get("cmd", ""))

    return Tool(
        name=RUN_CMD_NAME,
        description=RUN_CMD_DESCRIPTION,
        risk_level=RiskLevel.MEDIUM,
        schema={"cmd": "shell command to run"},
        executor=_execute,
    )


def default_tool_registry(shell_runner: ShellRunner | None = None) -> ToolRegistry:
    """Registry holding only the built-in `run_cmd` tool."""
    registry = ToolRegistry()
    registry.register(run_cmd_tool(shell_runner))
    return registry
