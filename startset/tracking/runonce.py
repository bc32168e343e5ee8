"""Run-once tracker — per-scope ledger of executed run-once scripts.

One ledger exists for the system scope (``share/runonce-system.json``) and one
per user (``share/runonce-user-<user>.json``).  Entries are keyed by the
lower-cased script filename, so renaming the directory a script lives in
does not make it run again, but editing its content does (when a hash is
supplied to ``has_executed``).

Every mutation runs under the process-wide lock of the ledger file, re-reads
the document from disk, applies the change and rewrites the file atomically.
Two trackers bound to the same file therefore never lose each other's
entries.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from startset.exceptions import LedgerReadError, LedgerWriteError
from startset.layout import ScriptLayout
from startset.ledger import path_lock, write_atomic
from startset.logging import get_logger
from startset.models import (
    ExecutionOutcome,
    RunOnceLedger,
    TrackingEntry,
    normalize_key,
    utcnow,
)

log = get_logger(__name__)


class RunOnceTracker:
    def __init__(self, ledger_path: Path, username: str | None = None) -> None:
        self._ledger_path = Path(ledger_path)
        self._username = username
        self._lock = path_lock(self._ledger_path)
        self._ledger = self._load()

    @property
    def ledger_path(self) -> Path:
        return self._ledger_path

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def count(self) -> int:
        return len(self._ledger.entries)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_executed(self, filename: str, current_hash: str | None = None) -> bool:
        """True when a successful entry exists and its checksum still matches.

        A changed checksum means the script was edited after it ran, so it is
        eligible again.
        """
        self.reload()
        entry = self._ledger.entries.get(normalize_key(filename))
        if entry is None:
            return False
        if current_hash and entry.checksum and entry.checksum.lower() != current_hash.lower():
            log.info(
                "runonce_script_changed",
                script=filename,
                recorded=entry.checksum,
                current=current_hash,
            )
            return False
        return entry.success

    def get(self, filename: str) -> TrackingEntry | None:
        return self._ledger.entries.get(normalize_key(filename))

    def entries(self) -> dict[str, TrackingEntry]:
        return dict(self._ledger.entries)

    def reload(self) -> None:
        with self._lock:
            self._ledger = self._load()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_execution(self, outcome: ExecutionOutcome) -> None:
        candidate = outcome.candidate
        entry = TrackingEntry(
            script_path=str(candidate.path),
            checksum=candidate.content_hash or "",
            executed_at=outcome.finished_at or outcome.started_at,
            payload_type=candidate.payload_class.value,
            exit_code=outcome.exit_code if outcome.exit_code is not None else -1,
            success=outcome.succeeded,
            username=self._username,
        )
        self._upsert(candidate.tracking_key, entry)
        log.debug("runonce_recorded", script=candidate.filename, success=entry.success)

    def mark_executed(self, filename: str, content_hash: str, payload_class_label: str) -> None:
        entry = TrackingEntry(
            script_path=filename,
            checksum=content_hash,
            executed_at=utcnow(),
            payload_type=payload_class_label,
            exit_code=0,
            success=True,
            username=self._username,
            notes="Manually marked as executed",
        )
        self._upsert(normalize_key(filename), entry)
        log.info("runonce_marked", script=filename)

    def clear_execution(self, filename: str) -> bool:
        key = normalize_key(filename)
        with self._lock:
            self._ledger = self._load()
            removed = self._ledger.entries.pop(key, None) is not None
            if removed:
                self._persist()
        if removed:
            log.info("runonce_cleared", script=filename)
        return removed

    def clear_all(self) -> int:
        with self._lock:
            self._ledger = self._load()
            count = len(self._ledger.entries)
            self._ledger.entries.clear()
            self._persist()
        log.info("runonce_cleared_all", count=count, ledger=str(self._ledger_path))
        return count

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _upsert(self, key: str, entry: TrackingEntry) -> None:
        with self._lock:
            self._ledger = self._load()
            self._ledger.entries[key] = entry
            self._persist()

    def _read(self) -> RunOnceLedger:
        if not self._ledger_path.exists():
            return RunOnceLedger()
        try:
            raw = json.loads(self._ledger_path.read_text(encoding="utf-8") or "{}")
            return RunOnceLedger.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            raise LedgerReadError(self._ledger_path, str(exc)) from exc

    def _load(self) -> RunOnceLedger:
        try:
            return self._read()
        except LedgerReadError as exc:
            log.warning("runonce_ledger_unreadable", path=str(exc.path), error=exc.reason)
            return RunOnceLedger()

    def _persist(self) -> None:
        self._ledger.last_modified = utcnow()
        try:
            write_atomic(self._ledger_path, self._ledger.model_dump_json(indent=2))
        except LedgerWriteError as exc:
            log.error("runonce_ledger_write_failed", path=str(exc.path), error=exc.reason)


def tracker_for(layout: ScriptLayout, username: str | None = None) -> RunOnceTracker:
    """System tracker when *username* is None, else that user's tracker."""
    if username:
        return RunOnceTracker(layout.user_ledger(username), username=username)
    return RunOnceTracker(layout.system_ledger)
