"""PowerShell script processor (``.ps1``)."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

from startset.exceptions import ProcessLaunchError
from startset.models import ScriptCandidate
from startset.processors.base import BaseProcessor

_WINDOWS_PWSH = (
    Path(r"C:\Program Files\PowerShell\7\pwsh.exe"),
    Path(r"C:\Program Files (x86)\PowerShell\7\pwsh.exe"),
)


def find_powershell(prefer_core: bool = True) -> str | None:
    """Locate a PowerShell binary, preferring PowerShell 7 (``pwsh``)."""
    names = ["pwsh", "powershell"] if prefer_core else ["powershell", "pwsh"]
    if sys.platform == "win32" and prefer_core:
        for candidate in _WINDOWS_PWSH:
            if candidate.exists():
                return str(candidate)
    for name in names:
        found = shutil.which(name)
        if found:
            return found
    return None


class InterpreterScriptProcessor(BaseProcessor):
    name = "powershell"
    extensions = frozenset({".ps1"})

    def build_command(self, candidate: ScriptCandidate) -> list[str]:
        interpreter = find_powershell()
        if interpreter is None:
            raise ProcessLaunchError(["pwsh"], "no PowerShell interpreter found on PATH")
        return [
            interpreter,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-File",
            str(candidate.path),
        ]
