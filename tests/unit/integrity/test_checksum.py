"""Unit tests — IntegrityService (hashing, baselines, ledger persistence)."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import yaml

from startset.integrity.checksum import IntegrityService


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "share" / "checksums.yaml"


@pytest.fixture
def script(tmp_path: Path) -> Path:
    path = tmp_path / "boot-once" / "setup.ps1"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"Write-Host 'hello'\n")
    return path


@pytest.mark.unit
class TestHashFile:
    def test_matches_hashlib(self, script: Path) -> None:
        expected = hashlib.sha256(script.read_bytes()).hexdigest()
        assert IntegrityService.hash_file(script) == expected

    def test_content_only(self, tmp_path: Path) -> None:
        a = tmp_path / "a.cmd"
        b = tmp_path / "other-name.bat"
        a.write_bytes(b"same")
        b.write_bytes(b"same")
        assert IntegrityService.hash_file(a) == IntegrityService.hash_file(b)

    def test_large_file_streams(self, tmp_path: Path) -> None:
        big = tmp_path / "big.exe"
        data = b"\x00\x01" * 200_000
        big.write_bytes(data)
        assert IntegrityService.hash_file(big) == hashlib.sha256(data).hexdigest()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            IntegrityService.hash_file(tmp_path / "nope.ps1")


@pytest.mark.unit
class TestValidate:
    def test_no_baseline_is_valid(self, ledger_path: Path, script: Path) -> None:
        assert IntegrityService(ledger_path).validate(script) is True

    def test_record_then_validate(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        svc.record(script)
        assert svc.validate(script) is True

    def test_modified_content_fails(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        svc.record(script)
        script.write_bytes(b"Remove-Item -Recurse C:\\\n")
        assert svc.validate(script) is False

    def test_deleted_file_with_baseline_fails(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        svc.record(script)
        script.unlink()
        assert svc.validate(script) is False

    def test_uppercase_baseline_accepted(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        entry = svc.record(script)
        document = yaml.safe_load(ledger_path.read_text())
        document["checksums"][str(script.absolute())]["sha256"] = entry.sha256.upper()
        ledger_path.write_text(yaml.safe_dump(document))
        assert IntegrityService(ledger_path).validate(script) is True


@pytest.mark.unit
class TestPersistence:
    def test_ledger_document_shape(self, ledger_path: Path, script: Path) -> None:
        IntegrityService(ledger_path).record(script, comment="baseline")
        document = yaml.safe_load(ledger_path.read_text())
        assert document["version"] == 1
        assert "last_modified" in document
        entry = document["checksums"][str(script.absolute())]
        assert entry["comment"] == "baseline"
        assert entry["size"] == script.stat().st_size

    def test_record_overwrites(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        first = svc.record(script)
        script.write_bytes(b"changed")
        second = svc.record(script)
        assert first.sha256 != second.sha256
        assert len(svc.entries()) == 1
        assert svc.validate(script)

    def test_visible_to_new_instance(self, ledger_path: Path, script: Path) -> None:
        IntegrityService(ledger_path).record(script)
        assert IntegrityService(ledger_path).get(script) is not None

    def test_validate_sees_baseline_recorded_elsewhere(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        script.write_text("v2")
        IntegrityService(ledger_path).record(script)
        assert svc.validate(script)

        script.write_text("v3")
        assert not svc.validate(script)

    def test_two_instances_keep_each_others_entries(self, ledger_path: Path, tmp_path: Path) -> None:
        a = tmp_path / "a.ps1"
        b = tmp_path / "b.ps1"
        a.write_text("a")
        b.write_text("b")
        first = IntegrityService(ledger_path)
        second = IntegrityService(ledger_path)
        first.record(a)
        second.record(b)
        reloaded = IntegrityService(ledger_path)
        assert reloaded.get(a) is not None
        assert reloaded.get(b) is not None

    def test_remove(self, ledger_path: Path, script: Path) -> None:
        svc = IntegrityService(ledger_path)
        svc.record(script)
        assert svc.remove(script) is True
        assert svc.remove(script) is False
        assert IntegrityService(ledger_path).get(script) is None

    def test_corrupt_ledger_falls_back_to_empty(self, ledger_path: Path, script: Path) -> None:
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text("checksums: [not, a, mapping\n")
        svc = IntegrityService(ledger_path)
        assert svc.entries() == {}
        assert svc.validate(script) is True

    def test_record_unreadable_script_raises(self, ledger_path: Path, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            IntegrityService(ledger_path).record(tmp_path / "missing.ps1")

    def test_write_failure_keeps_memory_state(self, tmp_path: Path, script: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        svc = IntegrityService(blocker / "checksums.yaml")
        svc.record(script)
        assert svc.get(script) is not None
