"""Installer package processor (``.msi``, ``.msix``).

MSI packages go through ``msiexec`` in quiet, no-restart mode with a verbose
log written to ``<script_root>/logs/<stem>_<yyyyMMdd_HHmmss>.log``.  MSIX
packages are added with PowerShell's ``Add-AppxPackage``.

Exit code 3010 (ERROR_SUCCESS_REBOOT_REQUIRED) counts as success.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from startset.models import ScriptCandidate
from startset.processors.base import BaseProcessor
from startset.processors.interpreter import find_powershell

REBOOT_REQUIRED = 3010

MSI_EXIT_CODES: dict[int, str] = {
    0: "Success",
    13: "Data is invalid",
    87: "Invalid parameter",
    120: "Function call not implemented",
    1259: "Product not found",
    1601: "Installation service not started",
    1602: "User cancelled installation",
    1603: "Fatal error during installation",
    1604: "Installation suspended, incomplete",
    1605: "This action is only valid for products that are currently installed",
    1618: "Another installation is already in progress",
    1619: "Installation package could not be opened",
    1620: "Installation package path not found",
    1624: "Error applying transforms",
    1625: "Installation prohibited by policy",
    1638: "Another version of this product is already installed",
    1639: "Invalid command line argument",
    REBOOT_REQUIRED: "Restart required",
}


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class PackageProcessor(BaseProcessor):
    name = "package"
    extensions = frozenset({".msi", ".msix"})
    success_codes = frozenset({0, REBOOT_REQUIRED})

    def __init__(self, logs_dir: Path | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._logs_dir = logs_dir

    def build_command(self, candidate: ScriptCandidate) -> list[str]:
        if candidate.extension == ".msix":
            shell = find_powershell(prefer_core=False) or "powershell.exe"
            command = (
                f"Add-AppxPackage -Path {_ps_quote(str(candidate.path))} "
                "-ForceApplicationShutdown"
            )
            return [shell, "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", command]

        argv = ["msiexec", "/i", str(candidate.path), "/qn", "/norestart"]
        log_file = self.msi_log_path(candidate)
        if log_file is not None:
            argv += ["/l*v", str(log_file)]
        return argv

    def msi_log_path(self, candidate: ScriptCandidate, now: datetime | None = None) -> Path | None:
        if self._logs_dir is None:
            return None
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        return self._logs_dir / f"{candidate.path.stem}_{stamp}.log"

    def describe_exit(self, exit_code: int) -> str | None:
        if exit_code in MSI_EXIT_CODES:
            return MSI_EXIT_CODES[exit_code]
        return f"Unknown error ({exit_code})"
