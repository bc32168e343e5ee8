"""StartSet data models.

Transient engine state (candidates, outcomes) is represented with plain
dataclasses; the two persisted ledgers are pydantic models so they can be
validated on load and dumped as JSON / YAML without an ORM.

Key classes
-----------
PayloadClass        — when and under which privilege a script runs
TriggerKind         — which event asked for a run (maps to payload classes)
ExecutionStatus     — classification of one script run
SkipReason          — why admission or idempotency filtering skipped a script
ScriptCandidate     — one discovered file (never persisted)
ExecutionOutcome    — immutable result of one candidate
TrackingEntry       — one row of a run-once ledger
RunOnceLedger       — run-once ledger document (JSON)
ChecksumEntry       — one row of the integrity ledger
ChecksumLedger      — integrity ledger document (YAML)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

LEDGER_FORMAT_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PayloadClass(str, Enum):
    """The nine fixed script categories.  Values double as directory names."""

    BOOT_ONCE = "boot-once"
    BOOT_EVERY = "boot-every"
    LOGIN_WINDOW = "login-window"
    LOGIN_ONCE = "login-once"
    LOGIN_EVERY = "login-every"
    LOGIN_PRIVILEGED_ONCE = "login-privileged-once"
    LOGIN_PRIVILEGED_EVERY = "login-privileged-every"
    ON_DEMAND = "on-demand"
    ON_DEMAND_PRIVILEGED = "on-demand-privileged"

    @property
    def directory_name(self) -> str:
        return self.value

    @property
    def requires_elevation(self) -> bool:
        return self in _ELEVATED

    @property
    def is_user_context(self) -> bool:
        return self in _USER_CONTEXT

    @property
    def is_run_once(self) -> bool:
        return self in _RUN_ONCE

    @property
    def delete_after_success(self) -> bool:
        return self is PayloadClass.BOOT_ONCE

    @classmethod
    def parse(cls, text: str) -> "PayloadClass":
        """Accept ``boot-once``, ``boot_once``, ``BOOT_ONCE`` or ``BootOnce``."""
        normalized = text.strip().replace("_", "-").lower()
        for member in cls:
            if member.value == normalized or member.name.replace("_", "").lower() == normalized:
                return member
        raise ValueError(f"Unknown payload class: {text!r}")


_ELEVATED = frozenset(
    {
        PayloadClass.BOOT_ONCE,
        PayloadClass.BOOT_EVERY,
        PayloadClass.LOGIN_WINDOW,
        PayloadClass.LOGIN_PRIVILEGED_ONCE,
        PayloadClass.LOGIN_PRIVILEGED_EVERY,
        PayloadClass.ON_DEMAND_PRIVILEGED,
    }
)
_USER_CONTEXT = frozenset(
    {PayloadClass.LOGIN_ONCE, PayloadClass.LOGIN_EVERY, PayloadClass.ON_DEMAND}
)
_RUN_ONCE = frozenset(
    {PayloadClass.BOOT_ONCE, PayloadClass.LOGIN_ONCE, PayloadClass.LOGIN_PRIVILEGED_ONCE}
)


class TriggerKind(str, Enum):
    """Event that initiates an engine run."""

    BOOT = "boot"
    LOGIN = "login"
    LOGIN_WINDOW = "login-window"
    LOGIN_PRIVILEGED = "login-privileged"
    ON_DEMAND = "on-demand"
    ON_DEMAND_PRIVILEGED = "on-demand-privileged"
    CLEANUP = "cleanup"
    MANUAL = "manual"

    @property
    def payload_classes(self) -> tuple[PayloadClass, ...]:
        return _TRIGGER_PAYLOADS[self]

    @property
    def marker_name(self) -> str | None:
        """Marker filename under the script root, for marker-driven triggers."""
        return _TRIGGER_MARKERS.get(self)

    @classmethod
    def from_marker(cls, name: str) -> "TriggerKind | None":
        for kind, marker in _TRIGGER_MARKERS.items():
            if marker == name:
                return kind
        return None


_TRIGGER_PAYLOADS: dict[TriggerKind, tuple[PayloadClass, ...]] = {
    TriggerKind.BOOT: (PayloadClass.BOOT_ONCE, PayloadClass.BOOT_EVERY),
    TriggerKind.LOGIN: (PayloadClass.LOGIN_ONCE, PayloadClass.LOGIN_EVERY),
    TriggerKind.LOGIN_WINDOW: (PayloadClass.LOGIN_WINDOW,),
    TriggerKind.LOGIN_PRIVILEGED: (
        PayloadClass.LOGIN_PRIVILEGED_ONCE,
        PayloadClass.LOGIN_PRIVILEGED_EVERY,
    ),
    TriggerKind.ON_DEMAND: (PayloadClass.ON_DEMAND,),
    TriggerKind.ON_DEMAND_PRIVILEGED: (PayloadClass.ON_DEMAND_PRIVILEGED,),
    TriggerKind.CLEANUP: (),
    TriggerKind.MANUAL: (),
}

_TRIGGER_MARKERS: dict[TriggerKind, str] = {
    TriggerKind.ON_DEMAND: ".startset.ondemand",
    TriggerKind.ON_DEMAND_PRIVILEGED: ".startset.ondemand-privileged",
    TriggerKind.LOGIN_PRIVILEGED: ".startset.login-privileged",
    TriggerKind.CLEANUP: ".startset.cleanup",
}


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"
    UNSUPPORTED_TYPE = "unsupported-type"


class SkipReason(str, Enum):
    CHECKSUM_MISMATCH = "checksum-mismatch"
    PERMISSION_DENIED = "permission-denied"
    ALREADY_EXECUTED = "already-executed"


# ---------------------------------------------------------------------------
# Engine-transient records
# ---------------------------------------------------------------------------


@dataclass
class ScriptCandidate:
    """One discovered file, rebuilt on every discovery pass."""

    path: Path
    payload_class: PayloadClass
    content_hash: str | None = None
    size: int | None = None
    modified_at: datetime | None = None
    skip_reason: SkipReason | None = None
    skip_detail: str | None = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def sort_key(self) -> str:
        return self.filename.casefold()

    @property
    def tracking_key(self) -> str:
        return self.filename.lower()

    @property
    def should_skip(self) -> bool:
        return self.skip_reason is not None

    @property
    def admission(self) -> str:
        return "proceed" if self.skip_reason is None else f"skip:{self.skip_reason.value}"

    def skip(self, reason: SkipReason, detail: str | None = None) -> None:
        """Mark the candidate skipped.  The first reason recorded wins."""
        if self.skip_reason is None:
            self.skip_reason = reason
            self.skip_detail = detail

    @classmethod
    def from_path(cls, path: Path, payload_class: PayloadClass) -> "ScriptCandidate":
        st = path.stat()
        return cls(
            path=path.absolute(),
            payload_class=payload_class,
            size=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of running one ScriptCandidate.  Immutable once produced."""

    candidate: ScriptCandidate
    status: ExecutionStatus
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    skip_reason: SkipReason | None = None

    @property
    def duration(self) -> timedelta | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @classmethod
    def skipped(cls, candidate: ScriptCandidate) -> "ExecutionOutcome":
        now = utcnow()
        reason = candidate.skip_reason
        return cls(
            candidate=candidate,
            status=ExecutionStatus.SKIPPED,
            started_at=now,
            finished_at=now,
            skip_reason=reason,
            error=candidate.skip_detail or (reason.value if reason else None),
        )

    @classmethod
    def unsupported(cls, candidate: ScriptCandidate) -> "ExecutionOutcome":
        now = utcnow()
        return cls(
            candidate=candidate,
            status=ExecutionStatus.UNSUPPORTED_TYPE,
            started_at=now,
            finished_at=now,
            error=f"No processor found for extension: {candidate.extension or '(none)'}",
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "script": str(self.candidate.path),
            "payload_class": self.candidate.payload_class.value,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "duration_s": round(self.duration.total_seconds(), 3) if self.duration else None,
        }


# ---------------------------------------------------------------------------
# Persisted ledgers
# ---------------------------------------------------------------------------


class TrackingEntry(BaseModel):
    script_path: str
    checksum: str
    executed_at: datetime
    payload_type: str
    exit_code: int = 0
    success: bool = False
    username: str | None = None
    notes: str | None = None


class RunOnceLedger(BaseModel):
    version: int = LEDGER_FORMAT_VERSION
    last_modified: datetime = Field(default_factory=utcnow)
    entries: dict[str, TrackingEntry] = Field(default_factory=dict)


class ChecksumEntry(BaseModel):
    sha256: str
    size: int = 0
    recorded_at: datetime = Field(default_factory=utcnow)
    comment: str | None = None


class ChecksumLedger(BaseModel):
    version: int = LEDGER_FORMAT_VERSION
    last_modified: datetime = Field(default_factory=utcnow)
    checksums: dict[str, ChecksumEntry] = Field(default_factory=dict)


def normalize_key(filename_or_path: str) -> str:
    """Run-once / override key: lower-cased basename."""
    return os.path.basename(filename_or_path.strip().replace("\\", "/")).lower()
