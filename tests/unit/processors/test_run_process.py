"""Unit tests — run_process / kill_process_tree against real POSIX shell processes."""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import psutil
import pytest

from startset.exceptions import ProcessLaunchError
from startset.models import ExecutionStatus, PayloadClass, ScriptCandidate
from startset.processors import CommandScriptProcessor, ExecutableProcessor, run_process

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh")


def _gone(pid: int, within: float = 3.0) -> bool:
    deadline = time.monotonic() + within
    while time.monotonic() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return True
        except psutil.NoSuchProcess:
            return True
        time.sleep(0.05)
    return False


def _script(tmp_path: Path, name: str, body: str) -> ScriptCandidate:
    directory = tmp_path / "on-demand"
    directory.mkdir(exist_ok=True)
    path = directory / name
    path.write_text(body)
    return ScriptCandidate.from_path(path, PayloadClass.ON_DEMAND)


@pytest.mark.unit
class TestRunProcess:
    async def test_captures_output_and_exit_code(self) -> None:
        result = await run_process(["/bin/sh", "-c", "echo out; echo err >&2; exit 4"], timeout=10)
        assert result.exit_code == 4
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert not result.timed_out

    async def test_output_truncated(self) -> None:
        result = await run_process(
            ["/bin/sh", "-c", "i=0; while [ $i -lt 500 ]; do echo 0123456789; i=$((i+1)); done"],
            timeout=10,
            max_output_bytes=100,
        )
        assert result.exit_code == 0
        assert result.stdout.startswith("0123456789")
        assert result.stdout.endswith("[output truncated]")
        assert len(result.stdout) < 200

    async def test_runs_in_cwd(self, tmp_path: Path) -> None:
        result = await run_process(["/bin/sh", "-c", "pwd"], timeout=10, cwd=tmp_path)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_launch_failure_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessLaunchError):
            await run_process([str(tmp_path / "does-not-exist")], timeout=5)

    async def test_timeout_kills_process_tree(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "child.pid"
        script = f"sleep 60 & echo $! > {pid_file}; wait"
        start = time.monotonic()
        result = await run_process(["/bin/sh", "-c", script], timeout=0.5)
        assert time.monotonic() - start < 10
        assert result.timed_out
        child_pid = int(pid_file.read_text().strip())
        assert _gone(child_pid)

    async def test_cancel_event_stops_process(self) -> None:
        cancel = asyncio.Event()
        task = asyncio.create_task(
            run_process(["/bin/sh", "-c", "sleep 60"], timeout=60, cancel_event=cancel)
        )
        await asyncio.sleep(0.2)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=10)
        assert result.cancelled
        assert not result.timed_out


@pytest.mark.unit
class TestProcessorExecute:
    async def test_shell_script_success(self, tmp_path: Path) -> None:
        candidate = _script(tmp_path, "hello.sh", "echo hello from $(basename $PWD)\n")
        outcome = await CommandScriptProcessor().execute(candidate, timeout=10)
        assert outcome.status is ExecutionStatus.SUCCESS
        assert outcome.exit_code == 0
        assert "hello from on-demand" in outcome.stdout
        assert outcome.duration is not None

    async def test_shell_script_failure(self, tmp_path: Path) -> None:
        candidate = _script(tmp_path, "fail.sh", "exit 3\n")
        outcome = await CommandScriptProcessor().execute(candidate, timeout=10)
        assert outcome.status is ExecutionStatus.FAILED
        assert outcome.error == "Exit code: 3"

    async def test_shell_script_timeout(self, tmp_path: Path) -> None:
        candidate = _script(tmp_path, "slow.sh", "sleep 60\n")
        outcome = await CommandScriptProcessor().execute(candidate, timeout=0.3)
        assert outcome.status is ExecutionStatus.TIMEOUT
        assert "timed out" in outcome.error

    async def test_non_executable_file_is_failed(self, tmp_path: Path) -> None:
        candidate = _script(tmp_path, "tool.exe", "not a binary")
        outcome = await ExecutableProcessor().execute(candidate, timeout=5)
        assert outcome.status is ExecutionStatus.FAILED
        assert outcome.error
