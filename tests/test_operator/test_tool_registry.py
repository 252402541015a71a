from concurrent.futures import ThreadPoolExecutor

import pytest

from gaia.operator.safety import RUN_CMD_NAME, RiskLevel
from gaia.operator.tools import NoopShellRunner, Tool, ToolRegistry, default_tool_registry


class RecordingShellRunner:
    def __init__(self, stdout: str = "ok", stderr: str = ""):
        self.stdout = stdout
        self.stderr = stderr
        self.commands: list[str] = []

    async def run(self, cmd: str) -> tuple[str, str]:
        self.commands.append(cmd)
        return self.stdout, self.stderr


def test_default_registry_has_only_run_cmd():
    registry = default_tool_registry()
    assert registry.list_tools() == [RUN_CMD_NAME]
    tool = registry.get(RUN_CMD_NAME)
    assert tool is not None
    assert tool.risk_level == RiskLevel.MEDIUM
    assert tool.schema == {"cmd": "shell command to run"}
    assert "df, du, find" in tool.description


def test_register_overwrites_and_lists_sorted():
    registry = ToolRegistry()
    registry.register(Tool(name="zeta", description="first"))
    registry.register(Tool(name="alpha", description="a"))
    registry.register(Tool(name="zeta", description="second"))
    assert registry.list_tools() == ["alpha", "zeta"]
    assert registry.get("zeta").description == "second"


def test_get_missing_tool_returns_none_and_unregister():
    registry = default_tool_registry()
    assert registry.get("nope") is None
    assert registry.has_tool(RUN_CMD_NAME)
    registry.unregister(RUN_CMD_NAME)
    assert not registry.has_tool(RUN_CMD_NAME)


def test_register_requires_name():
    with pytest.raises(ValueError):
        ToolRegistry().register(Tool(name="", description="nameless"))


@pytest.mark.asyncio
async def test_run_cmd_delegates_to_shell_runner():
    runner = RecordingShellRunner(stdout="/dev/sda1 50%")
    tool = default_tool_registry(runner).get(RUN_CMD_NAME)
    assert await tool.executor({"cmd": "df -h"}) == ("/dev/sda1 50%", "")
    assert runner.commands == ["df -h"]


@pytest.mark.asyncio
async def test_run_cmd_without_runner_is_noop():
    tool = default_tool_registry().get(RUN_CMD_NAME)
    assert await tool.executor({"cmd": "df -h"}) == ("", "")
    assert await NoopShellRunner().run("ls") == ("", "")


def test_concurrent_register_and_lookup():
    registry = default_tool_registry()

    def _register(i: int) -> None:
        registry.register(Tool(name=f"tool-{i}", description=str(i)))

    def _lookup(i: int) -> bool:
        names = registry.list_tools()
        return registry.get(RUN_CMD_NAME) is not None and RUN_CMD_NAME in names

    with ThreadPoolExecutor(max_workers=8) as pool:
        writes = [pool.submit(_register, i) for i in range(50)]
        reads = [pool.submit(_lookup, i) for i in range(50)]
        for future in writes:
            future.result()
        assert all(future.result() for future in reads)

    assert len(registry.list_tools()) == 51
    assert registry.get("tool-49").description == "49"
