"""Native executable processor (``.exe``) — the file is spawned directly."""

from __future__ import annotations

from startset.models import ScriptCandidate
from startset.processors.base import BaseProcessor


class ExecutableProcessor(BaseProcessor):
    name = "executable"
    extensions = frozenset({".exe"})

    def build_command(self, candidate: ScriptCandidate) -> list[str]:
        return [str(candidate.path)]
