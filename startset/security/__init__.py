"""Ownership / permission gating for script files."""

from startset.security.access import AccessCheck, AccessValidator, OwnerInfo, resolve_owner

__all__ = ["AccessCheck", "AccessValidator", "OwnerInfo", "resolve_owner"]
