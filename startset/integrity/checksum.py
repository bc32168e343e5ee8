"""Integrity ledger — SHA-256 baselines for managed scripts.

The ledger lives at ``share/checksums.yaml`` and maps absolute script paths
to their recorded digest.  A script without an entry is considered valid:
baselines are opt-in per script (``startset checksum <file> --record``).

Persistence failures never abort a run.  A ledger that cannot be loaded is
replaced by an empty one in memory; a ledger that cannot be written is
logged and the in-memory state is kept.  ``validate`` re-reads the file, so
baselines recorded by another process apply to the next check.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import yaml
from pydantic import ValidationError

from startset.exceptions import LedgerReadError, LedgerWriteError
from startset.ledger import path_lock, write_atomic
from startset.logging import get_logger
from startset.models import ChecksumEntry, ChecksumLedger, utcnow

log = get_logger(__name__)

_CHUNK = 64 * 1024


def _key(path: Path | str) -> str:
    return str(Path(path).absolute())


class IntegrityService:
    """Computes, records and validates script content hashes."""

    def __init__(self, ledger_path: Path) -> None:
        self._ledger_path = Path(ledger_path)
        self._lock = path_lock(self._ledger_path)
        self._ledger = self._load()

    @property
    def ledger_path(self) -> Path:
        return self._ledger_path

    @staticmethod
    def hash_file(path: Path | str) -> str:
        """Return the lower-case hex SHA-256 of the file, streamed in chunks."""
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                digest.update(chunk)
        return digest.hexdigest()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def validate(self, path: Path | str) -> bool:
        """True when no baseline exists or the current content matches it."""
        self.reload()
        entry = self._ledger.checksums.get(_key(path))
        if entry is None:
            return True
        try:
            actual = self.hash_file(path)
        except OSError as exc:
            log.warning("checksum_unreadable", script=str(path), error=str(exc))
            return False
        if actual != entry.sha256.lower():
            log.warning(
                "checksum_mismatch",
                script=str(path),
                expected=entry.sha256,
                actual=actual,
            )
            return False
        return True

    def get(self, path: Path | str) -> ChecksumEntry | None:
        return self._ledger.checksums.get(_key(path))

    def entries(self) -> dict[str, ChecksumEntry]:
        return dict(self._ledger.checksums)

    def reload(self) -> None:
        with self._lock:
            self._ledger = self._load()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record(self, path: Path | str, comment: str | None = None) -> ChecksumEntry:
        """Compute and store the baseline for *path*.

        Raises OSError when the script itself cannot be read.
        """
        digest = self.hash_file(path)
        entry = ChecksumEntry(
            sha256=digest,
            size=Path(path).stat().st_size,
            recorded_at=utcnow(),
            comment=comment,
        )
        with self._lock:
            self._ledger = self._load()
            self._ledger.checksums[_key(path)] = entry
            self._persist()
        log.info("checksum_recorded", script=str(path), sha256=digest)
        return entry

    def remove(self, path: Path | str) -> bool:
        with self._lock:
            self._ledger = self._load()
            removed = self._ledger.checksums.pop(_key(path), None) is not None
            if removed:
                self._persist()
        if removed:
            log.info("checksum_removed", script=str(path))
        return removed

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self) -> ChecksumLedger:
        if not self._ledger_path.exists():
            return ChecksumLedger()
        try:
            with self._ledger_path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            return ChecksumLedger.model_validate(raw)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            raise LedgerReadError(self._ledger_path, str(exc)) from exc

    def _load(self) -> ChecksumLedger:
        try:
            return self._read()
        except LedgerReadError as exc:
            log.warning("checksum_ledger_unreadable", path=str(exc.path), error=exc.reason)
            return ChecksumLedger()

    def _persist(self) -> None:
        self._ledger.last_modified = utcnow()
        document = self._ledger.model_dump(mode="json")
        try:
            write_atomic(
                self._ledger_path,
                yaml.safe_dump(document, sort_keys=False, default_flow_style=False),
            )
        except LedgerWriteError as exc:
            log.error("checksum_ledger_write_failed", path=str(exc.path), error=exc.reason)
