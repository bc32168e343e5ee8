"""StartSet — Exception hierarchy.

All exceptions raised by the agent inherit from StartSetError so that callers
can catch the full family with a single except clause when needed.

The execution engine never lets these escape ``ExecutionEngine.run()``:
every failure there is turned into a skip or an ExecutionOutcome.  They are
raised at internal seams (ledgers, owner resolution, process launch) and
surface directly only through the CLI.

Hierarchy:
    StartSetError
    ├── ConfigurationError
    ├── LedgerError
    │   ├── LedgerReadError
    │   └── LedgerWriteError
    ├── OwnerResolutionError
    └── ProcessorError
        └── ProcessLaunchError
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class StartSetError(Exception):
    """Base exception for all StartSet errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class ConfigurationError(StartSetError):
    """The preferences file could not be read, parsed, or written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Configuration error in '{path}': {reason}",
            context={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------


class LedgerError(StartSetError):
    """Base for integrity / run-once ledger persistence errors."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Ledger '{path}': {reason}",
            context={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason


class LedgerReadError(LedgerError):
    """The ledger file exists but could not be read or parsed."""


class LedgerWriteError(LedgerError):
    """The ledger file could not be written."""


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


class OwnerResolutionError(StartSetError):
    """The owning identity of a script file could not be determined."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Cannot resolve owner of '{path}': {reason}",
            context={"path": str(path), "reason": reason},
        )
        self.path = path


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


class ProcessorError(StartSetError):
    """Base for script processor errors."""


class ProcessLaunchError(ProcessorError):
    """The interpreter / installer / executable could not be started."""

    def __init__(self, argv: list[str], reason: str) -> None:
        super().__init__(
            f"Failed to launch '{argv[0] if argv else '?'}': {reason}",
            context={"argv": argv, "reason": reason},
        )
        self.argv = argv
