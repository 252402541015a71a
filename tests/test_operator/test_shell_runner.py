import pytest

from gaia.exceptions import CommandExecutionError, CommandTimeoutError
from gaia.operator.shell import SubprocessShellRunner


@pytest.mark.asyncio
async def test_echo_returns_trimmed_stdout():
    stdout, stderr = await SubprocessShellRunner().run("echo hello")
    assert stdout == "hello"
    assert stderr == ""


@pytest.mark.asyncio
async def test_stderr_is_captured():
    stdout, stderr = await SubprocessShellRunner().run("echo oops 1>&2")
    assert stdout == ""
    assert stderr == "oops"


@pytest.mark.asyncio
async def test_exit_code_one_is_not_a_failure():
    stdout, _ = await SubprocessShellRunner().run("echo partial; exit 1")
    assert stdout == "partial"


@pytest.mark.asyncio
async def test_other_exit_codes_raise_with_output():
    with pytest.raises(CommandExecutionError) as exc_info:
        await SubprocessShellRunner().run("echo out; echo err 1>&2; exit 2")
    error = exc_info.value
    assert error.exit_code == 2
    assert error.stdout == "out"
    assert error.stderr == "err"
    assert str(error) == "command failed with exit code 2"


@pytest.mark.asyncio
async def test_empty_command_raises():
    with pytest.raises(CommandExecutionError, match="empty command"):
        await SubprocessShellRunner().run("  ")


@pytest.mark.asyncio
async def test_timeout_kills_command():
    with pytest.raises(CommandTimeoutError) as exc_info:
        await SubprocessShellRunner(timeout=0.2).run("sleep 5")
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_shell_fails_to_start():
    runner = SubprocessShellRunner(shell="/nonexistent/shell")
    with pytest.raises(CommandExecutionError, match="failed to start command"):
        await runner.run("echo hi")


def test_non_positive_timeout_uses_default():
    assert SubprocessShellRunner(timeout=0).timeout == 30.0
