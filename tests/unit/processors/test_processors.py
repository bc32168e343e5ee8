"""Unit tests — processors (command building, classification, ProcessorSet)."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from startset.exceptions import ProcessLaunchError
from startset.models import ExecutionStatus, PayloadClass, ScriptCandidate, utcnow
from startset.processors import (
    CommandScriptProcessor,
    ExecutableProcessor,
    InterpreterScriptProcessor,
    PackageProcessor,
    ProcessorSet,
    ProcessResult,
)
from startset.processors import interpreter as interpreter_module
from startset.processors import package as package_module


def _candidate(name: str, payload_class: PayloadClass = PayloadClass.BOOT_EVERY) -> ScriptCandidate:
    return ScriptCandidate(path=Path("/scripts") / payload_class.value / name, payload_class=payload_class)


@pytest.mark.unit
class TestProcessorSet:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("a.ps1", InterpreterScriptProcessor),
            ("b.CMD", CommandScriptProcessor),
            ("c.bat", CommandScriptProcessor),
            ("d.sh", CommandScriptProcessor),
            ("e.exe", ExecutableProcessor),
            ("f.MSI", PackageProcessor),
            ("g.msix", PackageProcessor),
        ],
    )
    def test_select(self, name: str, expected: type) -> None:
        assert isinstance(ProcessorSet.default().select(_candidate(name)), expected)

    def test_no_match(self) -> None:
        assert ProcessorSet.default().select(_candidate("tool.vbs")) is None

    def test_first_match_wins(self) -> None:
        first = CommandScriptProcessor()
        second = CommandScriptProcessor()
        assert ProcessorSet([first, second]).select(_candidate("a.sh")) is first

    def test_len_and_iter(self) -> None:
        processors = ProcessorSet.default()
        assert len(processors) == 4
        assert [p.name for p in processors] == ["powershell", "command", "executable", "package"]


@pytest.mark.unit
class TestInterpreterScriptProcessor:
    def test_command_line(self) -> None:
        with patch.object(interpreter_module, "find_powershell", return_value="/usr/bin/pwsh"):
            argv = InterpreterScriptProcessor().build_command(_candidate("a.ps1"))
        assert argv[0] == "/usr/bin/pwsh"
        assert argv[1:6] == ["-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-File"]
        assert argv[-1].endswith("a.ps1")

    def test_missing_interpreter_raises(self) -> None:
        with patch.object(interpreter_module, "find_powershell", return_value=None):
            with pytest.raises(ProcessLaunchError):
                InterpreterScriptProcessor().build_command(_candidate("a.ps1"))

    async def test_missing_interpreter_is_failed_outcome(self) -> None:
        with patch.object(interpreter_module, "find_powershell", return_value=None):
            outcome = await InterpreterScriptProcessor().execute(_candidate("a.ps1"), timeout=5)
        assert outcome.status is ExecutionStatus.FAILED
        assert "PowerShell" in outcome.error


@pytest.mark.unit
class TestCommandScriptProcessor:
    def test_shell_script(self) -> None:
        argv = CommandScriptProcessor().build_command(_candidate("a.sh"))
        assert argv[0] == "/bin/sh"

    def test_batch_uses_comspec(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMSPEC", r"C:\Windows\System32\cmd.exe")
        argv = CommandScriptProcessor().build_command(_candidate("a.cmd"))
        assert argv[:2] == [r"C:\Windows\System32\cmd.exe", "/c"]

    def test_batch_default_shell(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("COMSPEC", raising=False)
        argv = CommandScriptProcessor().build_command(_candidate("a.bat"))
        assert argv[:2] == ["cmd.exe", "/c"]


@pytest.mark.unit
class TestExecutableProcessor:
    def test_spawned_directly(self) -> None:
        candidate = _candidate("tool.exe")
        assert ExecutableProcessor().build_command(candidate) == [str(candidate.path)]


@pytest.mark.unit
class TestPackageProcessor:
    def test_msi_quiet_install_with_log(self, tmp_path: Path) -> None:
        processor = PackageProcessor(logs_dir=tmp_path / "logs")
        argv = processor.build_command(_candidate("agent.msi"))
        assert argv[:5] == ["msiexec", "/i", str(_candidate("agent.msi").path), "/qn", "/norestart"]
        assert argv[5] == "/l*v"
        assert Path(argv[6]).parent == tmp_path / "logs"
        assert Path(argv[6]).name.startswith("agent_")

    def test_msi_without_logs_dir(self) -> None:
        argv = PackageProcessor().build_command(_candidate("agent.msi"))
        assert "/l*v" not in argv

    def test_msi_log_name(self, tmp_path: Path) -> None:
        processor = PackageProcessor(logs_dir=tmp_path)
        path = processor.msi_log_path(_candidate("agent.msi"), now=datetime(2024, 3, 5, 7, 8, 9))
        assert path == tmp_path / "agent_20240305_070809.log"

    def test_msix_uses_add_appx(self) -> None:
        with patch.object(package_module, "find_powershell", return_value="powershell.exe"):
            argv = PackageProcessor().build_command(_candidate("app's.msix"))
        assert argv[0] == "powershell.exe"
        assert "Add-AppxPackage -Path '" in argv[-1]
        assert "app''s.msix" in argv[-1]
        assert argv[-1].endswith("-ForceApplicationShutdown")

    def test_reboot_required_is_success(self) -> None:
        processor = PackageProcessor()
        outcome = processor._classify(
            _candidate("agent.msi"), ProcessResult(exit_code=3010), utcnow(), 60
        )
        assert outcome.status is ExecutionStatus.SUCCESS
        assert outcome.exit_code == 3010

    def test_failure_described(self) -> None:
        processor = PackageProcessor()
        outcome = processor._classify(
            _candidate("agent.msi"), ProcessResult(exit_code=1603), utcnow(), 60
        )
        assert outcome.status is ExecutionStatus.FAILED
        assert outcome.error == "Exit code: 1603 (Fatal error during installation)"

    def test_unknown_code(self) -> None:
        assert PackageProcessor().describe_exit(4242) == "Unknown error (4242)"


@pytest.mark.unit
class TestClassification:
    def test_plain_exit_code(self) -> None:
        outcome = CommandScriptProcessor()._classify(
            _candidate("a.sh"), ProcessResult(exit_code=2), utcnow(), 60
        )
        assert outcome.status is ExecutionStatus.FAILED
        assert outcome.error == "Exit code: 2"

    def test_timeout_reports_elapsed_limit(self) -> None:
        outcome = CommandScriptProcessor()._classify(
            _candidate("a.sh"), ProcessResult(exit_code=-9, timed_out=True), utcnow(), 120
        )
        assert outcome.status is ExecutionStatus.TIMEOUT
        assert outcome.error == "timed out after 120 seconds"

    def test_cancelled_is_timeout(self) -> None:
        outcome = CommandScriptProcessor()._classify(
            _candidate("a.sh"), ProcessResult(exit_code=-9, cancelled=True), utcnow(), 120
        )
        assert outcome.status is ExecutionStatus.TIMEOUT
        assert outcome.error == "cancelled"

    def test_exe_success_only_zero(self) -> None:
        outcome = ExecutableProcessor()._classify(
            _candidate("a.exe"), ProcessResult(exit_code=3010), utcnow(), 60
        )
        assert outcome.status is ExecutionStatus.FAILED
