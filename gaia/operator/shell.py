"""Subprocess-backed shell runner."""

import asyncio
import os

from gaia.exceptions import CommandExecutionError, CommandTimeoutError
from gaia.logging import get_logger

log = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace").rstrip()


class SubprocessShellRunner:
    """Runs commands through `<shell> -c` with a per-command timeout."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS, shell: str = "sh"):
        self.timeout = float(timeout) if timeout and timeout > 0 else DEFAULT_TIMEOUT_SECONDS
        self.shell = shell or "sh"

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            process.kill()
        await process.wait()

    async def run(self, cmd: str) -> tuple[str, str]:
        """Run `cmd` and return (stdout, stderr).

        Raises:
            CommandExecutionError: empty command, start failure, or exit code other than 0/1
            CommandTimeoutError: command exceeded the timeout and was killed
        """
        command = str(cmd or "").strip()
        if not command:
            raise CommandExecutionError("empty command")

        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")

        log.debug("Executing shell command", command=command, timeout=self.timeout)
        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise CommandExecutionError(f"failed to start command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            log.warning("Shell command timed out", command=command, timeout=self.timeout)
            raise CommandTimeoutError(self.timeout)
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        stdout_text = _decode(stdout)
        stderr_text = _decode(stderr)
        # exit code 1 usually means "no results" (grep, diff), not failure
        if process.returncode not in (0, 1):
            raise CommandExecutionError(
                f"command failed with exit code {process.returncode}",
                exit_code=process.returncode,
                stdout=stdout_text,
                stderr=stderr_text,
            )
        return stdout_text, stderr_text
