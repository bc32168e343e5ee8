"""Script processors — one runner per script family.

processors/
  base.py         — BaseProcessor + run_process / kill_process_tree
  interpreter.py  — InterpreterScriptProcessor (.ps1)
  command.py      — CommandScriptProcessor (.cmd, .bat, .sh)
  executable.py   — ExecutableProcessor (.exe)
  package.py      — PackageProcessor (.msi, .msix)
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from startset.models import ScriptCandidate
from startset.processors.base import (
    DEFAULT_MAX_OUTPUT_BYTES,
    BaseProcessor,
    ProcessResult,
    kill_process_tree,
    run_process,
)
from startset.processors.command import CommandScriptProcessor
from startset.processors.executable import ExecutableProcessor
from startset.processors.interpreter import InterpreterScriptProcessor
from startset.processors.package import PackageProcessor


class ProcessorSet:
    """Ordered processor registry.  The first processor supporting a candidate wins."""

    def __init__(self, processors: Iterable[BaseProcessor]) -> None:
        self._processors = list(processors)

    def __iter__(self):
        return iter(self._processors)

    def __len__(self) -> int:
        return len(self._processors)

    def select(self, candidate: ScriptCandidate) -> BaseProcessor | None:
        for processor in self._processors:
            if processor.supports(candidate):
                return processor
        return None

    @classmethod
    def default(
        cls,
        logs_dir: Path | None = None,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        log_output: bool = True,
    ) -> "ProcessorSet":
        common = {"max_output_bytes": max_output_bytes, "log_output": log_output}
        return cls(
            [
                InterpreterScriptProcessor(**common),
                CommandScriptProcessor(**common),
                ExecutableProcessor(**common),
                PackageProcessor(logs_dir=logs_dir, **common),
            ]
        )


__all__ = [
    "BaseProcessor",
    "CommandScriptProcessor",
    "ExecutableProcessor",
    "InterpreterScriptProcessor",
    "PackageProcessor",
    "ProcessResult",
    "ProcessorSet",
    "kill_process_tree",
    "run_process",
]
