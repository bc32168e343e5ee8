"""Command-shell script processor (``.cmd``, ``.bat``, ``.sh``)."""

from __future__ import annotations

import os

from startset.models import ScriptCandidate
from startset.processors.base import BaseProcessor

POSIX_SHELL = "/bin/sh"


class CommandScriptProcessor(BaseProcessor):
    name = "command"
    extensions = frozenset({".cmd", ".bat", ".sh"})

    def build_command(self, candidate: ScriptCandidate) -> list[str]:
        if candidate.extension == ".sh":
            return [POSIX_SHELL, str(candidate.path)]
        comspec = os.environ.get("COMSPEC", "cmd.exe")
        return [comspec, "/c", str(candidate.path)]
