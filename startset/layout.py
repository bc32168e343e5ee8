"""StartSet — Directory layout under the script root.

    <script_root>/
        boot-once/ boot-every/ login-window/ login-once/ login-every/
        login-privileged-once/ login-privileged-every/
        on-demand/ on-demand-privileged/
        share/      run-once ledgers, checksum ledger
        logs/       agent log, MSI verbose logs
        config.yaml
        .startset.*  trigger marker files
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from startset.config import CONFIG_FILENAME
from startset.logging import get_logger
from startset.models import PayloadClass, TriggerKind

log = get_logger(__name__)

MARKER_PREFIX = ".startset."
SYSTEM_LEDGER_NAME = "runonce-system.json"
CHECKSUM_LEDGER_NAME = "checksums.yaml"


@dataclass(frozen=True)
class ScriptLayout:
    root: Path

    @property
    def share_dir(self) -> Path:
        return self.root / "share"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def checksum_ledger(self) -> Path:
        return self.share_dir / CHECKSUM_LEDGER_NAME

    @property
    def system_ledger(self) -> Path:
        return self.share_dir / SYSTEM_LEDGER_NAME

    def user_ledger(self, username: str) -> Path:
        # Percent-encoding keeps distinct names on distinct files.
        safe = quote(username.strip().lower(), safe="._-")
        return self.share_dir / f"runonce-user-{safe}.json"

    def payload_dir(self, payload_class: PayloadClass) -> Path:
        return self.root / payload_class.directory_name

    def marker(self, kind: TriggerKind) -> Path:
        name = kind.marker_name
        if name is None:
            raise ValueError(f"Trigger {kind.value!r} has no marker file")
        return self.root / name

    def markers(self) -> list[Path]:
        return [self.root / k.marker_name for k in TriggerKind if k.marker_name]

    def ensure(self) -> None:
        """Create the root, the nine payload directories, share/ and logs/."""
        for directory in (
            self.root,
            *(self.payload_dir(pc) for pc in PayloadClass),
            self.share_dir,
            self.logs_dir,
        ):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                log.debug("directory_created", path=str(directory))
