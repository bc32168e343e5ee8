"""Script content integrity (SHA-256 baselines)."""

from startset.integrity.checksum import IntegrityService

__all__ = ["IntegrityService"]
