"""Shared helpers for the file-backed ledgers.

Both ledgers (run-once JSON, checksum YAML) are small documents rewritten
wholesale on every mutation.  Writers in one process are serialized by a
lock keyed on the resolved file path, so two tracker instances pointing at
the same ledger never interleave a read-modify-write.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from startset.exceptions import LedgerWriteError

_path_locks: dict[str, threading.RLock] = {}
_meta_lock = threading.Lock()


def path_lock(path: Path) -> threading.RLock:
    """Return (or create) the process-wide lock for *path*."""
    resolved = str(Path(path).resolve())
    with _meta_lock:
        if resolved not in _path_locks:
            _path_locks[resolved] = threading.RLock()
        return _path_locks[resolved]


def write_atomic(path: Path, text: str) -> None:
    """Write *text* to a sibling temp file, then rename it over *path*."""
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as exc:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise LedgerWriteError(path, str(exc)) from exc
