"""Access validator — ownership and permission gate for script files.

Scripts in elevated payload classes run with the agent's privileges, so the
file must be owned by a trusted identity:

    - uid 0 / ``root``
    - Local System (``S-1-5-18``)
    - Built-in Administrators group (``S-1-5-32-544``)
    - Built-in Administrator account (``S-1-5-21-…-500``)
    - Service identities (``S-1-5-80-…``)
    - Any name or SID listed in ``preferences.trusted_owners``

On POSIX hosts the mode bits must also keep non-root users from swapping the
content: no group write (unless the group is root's), no world write, and a
parent directory that is not world-writable without the sticky bit.

User-context classes only require the file to be readable.

Owner lookup goes through a resolver callable.  The default resolver uses
``os.stat`` + ``pwd`` and raises OwnerResolutionError on hosts without a
POSIX user database; pass a platform resolver to support other models.
Every failure is reported as ``AccessCheck(is_valid=False, ...)``.
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from startset.exceptions import OwnerResolutionError
from startset.logging import get_logger
from startset.models import PayloadClass

log = get_logger(__name__)

SID_LOCAL_SYSTEM = "S-1-5-18"
SID_ADMINISTRATORS = "S-1-5-32-544"
_SID_DOMAIN_PREFIX = "S-1-5-21-"
_SID_SERVICE_PREFIX = "S-1-5-80-"


@dataclass(frozen=True)
class OwnerInfo:
    name: str | None = None
    uid: int | None = None
    sid: str | None = None
    gid: int | None = None
    mode: int | None = None


@dataclass(frozen=True)
class AccessCheck:
    is_valid: bool
    owner: str | None = None
    error: str | None = None


OwnerResolver = Callable[[Path], OwnerInfo]


def resolve_owner(path: Path) -> OwnerInfo:
    """Default POSIX resolver: owner uid/name, group and mode of *path*."""
    try:
        import pwd
    except ImportError as exc:
        raise OwnerResolutionError(path, "no owner resolver for this platform") from exc

    try:
        st = os.stat(path)
    except OSError as exc:
        raise OwnerResolutionError(path, str(exc)) from exc
    try:
        name: str | None = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        name = None
    return OwnerInfo(name=name, uid=st.st_uid, gid=st.st_gid, mode=st.st_mode)


def is_trusted_sid(sid: str) -> bool:
    sid = sid.upper()
    if sid in (SID_LOCAL_SYSTEM, SID_ADMINISTRATORS):
        return True
    if sid.startswith(_SID_DOMAIN_PREFIX) and sid.endswith("-500"):
        return True
    return sid.startswith(_SID_SERVICE_PREFIX)


class AccessValidator:
    def __init__(
        self,
        owner_resolver: OwnerResolver | None = None,
        trusted_owners: Iterable[str] = (),
    ) -> None:
        self._resolve = owner_resolver or resolve_owner
        self._trusted = {t.casefold() for t in trusted_owners}

    def validate_script(self, path: Path, payload_class: PayloadClass) -> AccessCheck:
        try:
            if payload_class.requires_elevation:
                return self._check_elevated(Path(path))
            return self._check_readable(Path(path))
        except Exception as exc:
            log.warning("access_check_failed", script=str(path), error=str(exc))
            return AccessCheck(is_valid=False, error=str(exc))

    def is_trusted(self, owner: OwnerInfo) -> bool:
        if owner.uid == 0 or owner.name == "root":
            return True
        if owner.sid and (is_trusted_sid(owner.sid) or owner.sid.casefold() in self._trusted):
            return True
        return bool(owner.name) and owner.name.casefold() in self._trusted

    # ------------------------------------------------------------------

    def _check_elevated(self, path: Path) -> AccessCheck:
        owner = self._resolve(path)
        label = owner.name or owner.sid or (str(owner.uid) if owner.uid is not None else None)
        if not self.is_trusted(owner):
            return AccessCheck(
                is_valid=False,
                owner=label,
                error=f"Script owner '{label}' is not a trusted administrative identity",
            )
        if owner.mode is not None:
            problem = self._mode_problem(path, owner)
            if problem:
                return AccessCheck(is_valid=False, owner=label, error=problem)
        return AccessCheck(is_valid=True, owner=label)

    @staticmethod
    def _mode_problem(path: Path, owner: OwnerInfo) -> str | None:
        mode = owner.mode or 0
        if mode & stat.S_IWOTH:
            return "Script is world-writable"
        if mode & stat.S_IWGRP and owner.gid not in (0, None):
            return "Script is group-writable by a non-root group"
        parent_mode = os.stat(path.parent).st_mode
        if parent_mode & stat.S_IWOTH and not parent_mode & stat.S_ISVTX:
            return "Script directory is world-writable without the sticky bit"
        return None

    @staticmethod
    def _check_readable(path: Path) -> AccessCheck:
        with path.open("rb"):
            pass
        return AccessCheck(is_valid=True)
