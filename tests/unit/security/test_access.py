"""Unit tests — AccessValidator (ownership / permission gate)."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from startset.exceptions import OwnerResolutionError
from startset.models import PayloadClass
from startset.security.access import (
    AccessValidator,
    OwnerInfo,
    is_trusted_sid,
    resolve_owner,
)


def _resolver(**kwargs):
    def resolve(path: Path) -> OwnerInfo:
        return OwnerInfo(**kwargs)

    return resolve


@pytest.fixture
def script(tmp_path: Path) -> Path:
    path = tmp_path / "setup.exe"
    path.write_bytes(b"MZ")
    return path


@pytest.mark.unit
class TestTrustedSids:
    @pytest.mark.parametrize(
        "sid",
        [
            "S-1-5-18",
            "S-1-5-32-544",
            "S-1-5-21-1004336348-1177238915-682003330-500",
            "S-1-5-80-956008885-3418522649-1831038044-1853292631-2271478464",
        ],
    )
    def test_trusted(self, sid: str) -> None:
        assert is_trusted_sid(sid)

    @pytest.mark.parametrize(
        "sid",
        ["S-1-5-21-1004336348-1177238915-682003330-1001", "S-1-1-0", "S-1-5-32-545"],
    )
    def test_untrusted(self, sid: str) -> None:
        assert not is_trusted_sid(sid)


@pytest.mark.unit
class TestElevatedClasses:
    def test_root_owner_valid(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="root", uid=0, gid=0, mode=0o100644))
        check = validator.validate_script(script, PayloadClass.ON_DEMAND_PRIVILEGED)
        assert check.is_valid
        assert check.owner == "root"

    def test_system_sid_valid(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="SYSTEM", sid="S-1-5-18"))
        assert validator.validate_script(script, PayloadClass.BOOT_ONCE).is_valid

    def test_non_admin_rejected(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="mallory", uid=1001, gid=1001, mode=0o100644))
        check = validator.validate_script(script, PayloadClass.ON_DEMAND_PRIVILEGED)
        assert not check.is_valid
        assert check.owner == "mallory"
        assert "not a trusted" in check.error

    def test_configured_trusted_owner(self, script: Path) -> None:
        validator = AccessValidator(
            _resolver(name="Deploy", uid=500, gid=0, mode=0o100644),
            trusted_owners=["deploy"],
        )
        assert validator.validate_script(script, PayloadClass.BOOT_EVERY).is_valid

    def test_configured_trusted_sid(self, script: Path) -> None:
        sid = "S-1-5-21-1-2-3-1105"
        validator = AccessValidator(_resolver(sid=sid), trusted_owners=[sid])
        assert validator.validate_script(script, PayloadClass.LOGIN_WINDOW).is_valid

    def test_world_writable_rejected(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="root", uid=0, gid=0, mode=0o100666))
        check = validator.validate_script(script, PayloadClass.BOOT_ONCE)
        assert not check.is_valid
        assert "world-writable" in check.error

    def test_group_writable_non_root_group_rejected(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="root", uid=0, gid=100, mode=0o100664))
        check = validator.validate_script(script, PayloadClass.BOOT_ONCE)
        assert not check.is_valid
        assert "group-writable" in check.error

    def test_group_writable_root_group_allowed(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="root", uid=0, gid=0, mode=0o100664))
        assert validator.validate_script(script, PayloadClass.BOOT_ONCE).is_valid

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX mode bits")
    def test_world_writable_directory_rejected(self, tmp_path: Path) -> None:
        shared = tmp_path / "shared"
        shared.mkdir()
        os.chmod(shared, 0o777)
        script = shared / "a.sh"
        script.write_text("true\n")
        validator = AccessValidator(_resolver(name="root", uid=0, gid=0, mode=0o100644))
        check = validator.validate_script(script, PayloadClass.BOOT_ONCE)
        assert not check.is_valid
        assert "sticky" in check.error

    def test_resolver_error_is_invalid(self, script: Path) -> None:
        def broken(path: Path) -> OwnerInfo:
            raise OwnerResolutionError(path, "no owner resolver for this platform")

        check = AccessValidator(broken).validate_script(script, PayloadClass.BOOT_ONCE)
        assert not check.is_valid
        assert "no owner resolver" in check.error


@pytest.mark.unit
class TestUserContextClasses:
    def test_readable_file_valid(self, script: Path) -> None:
        validator = AccessValidator(_resolver(name="mallory", uid=1001))
        assert validator.validate_script(script, PayloadClass.LOGIN_ONCE).is_valid

    def test_missing_file_invalid(self, tmp_path: Path) -> None:
        check = AccessValidator().validate_script(tmp_path / "gone.ps1", PayloadClass.ON_DEMAND)
        assert not check.is_valid
        assert check.error


@pytest.mark.unit
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX owner lookup")
class TestResolveOwner:
    def test_reports_current_uid(self, script: Path) -> None:
        info = resolve_owner(script)
        assert info.uid == os.getuid()
        assert info.mode is not None

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OwnerResolutionError):
            resolve_owner(tmp_path / "gone")
