"""Run-once idempotency ledgers."""

from startset.tracking.runonce import RunOnceTracker, tracker_for

__all__ = ["RunOnceTracker", "tracker_for"]
