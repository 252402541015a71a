"""Tool execution with output truncation."""

from dataclasses import dataclass

from gaia.exceptions import CommandExecutionError, ToolExecutionError
from gaia.logging import get_logger
from gaia.operator.tools import Tool

log = get_logger(__name__)

MAX_OUTPUT_BYTES = 4096
TRUNCATION_MARKER = "\n(truncated)"


@dataclass
class ExecutionOutcome:
    stdout: str = ""
    stderr: str = ""
    error: str | None = None


def truncate_output(text: str, max_bytes: int = MAX_OUTPUT_BYTES) -> str:
    """Cut text to `max_bytes` UTF-8 bytes and mark it as truncated."""
    limit = max_bytes if max_bytes > 0 else MAX_OUTPUT_BYTES
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore") + TRUNCATION_MARKER


def format_observation(stdout: str, stderr: str, error: str | BaseException | None) -> str:
    """Render tool output as the observation text fed back to the planner."""
    parts = []
    if stdout:
        parts.append(f"stdout:\n{stdout}\n")
    if stderr:
        parts.append(f"stderr:\n{stderr}\n")
    if error:
        parts.append(f"error: {error}")
    return "".join(parts).strip()


class Executor:
    """Runs tools and truncates what they print."""

    def __init__(self, max_output_bytes: int = MAX_OUTPUT_BYTES):
        self.max_output_bytes = max_output_bytes if max_output_bytes > 0 else MAX_OUTPUT_BYTES

    async def run(self, tool: Tool | None, args: dict[str, str]) -> ExecutionOutcome:
        """Execute `tool` with `args`.

        Failures inside the tool are reported in the outcome, not raised.

        Raises:
            ToolExecutionError: tool is missing or has no executor
        """
        if tool is None or tool.executor is None:
            raise ToolExecutionError(getattr(tool, "name", "") or "<none>", "missing tool or executor")

        outcome = ExecutionOutcome()
        try:
            outcome.stdout, outcome.stderr = await tool.executor(args)
        except CommandExecutionError as e:
            outcome.stdout, outcome.stderr, outcome.error = e.stdout, e.stderr, str(e)
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            outcome.error = str(e)

        outcome.stdout = truncate_output(outcome.stdout, self.max_output_bytes)
        outcome.stderr = truncate_output(outcome.stderr, self.max_output_bytes)
        return outcome
