"""ExecutionEngine — discovery, admission, filtering, dispatch, bookkeeping.

One call to ``run()`` processes a list of payload classes for one scope
(system, or a username)::

    ignored user?  ──yes──▶ []
        │
    ensure directories
        │
    network gate (optional) ──unreachable & not tolerated──▶ []
        │
    for each payload class:
        discover   allowed extensions, ordered by case-insensitive filename
        admit      hash → checksum gate → ownership gate
        filter     run-once tracker (overrides bypass it)
        dispatch   first supporting processor, per-script timeout
        record     successful run-once → tracker; boot-once → delete file
        │
    summary log, return outcomes

The engine holds no persistent state: ledgers belong to the integrity
service and the run-once trackers.  No exception escapes ``run()``; every
failure is either a skip or an ExecutionOutcome.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Iterable

from startset.config import Settings
from startset.integrity.checksum import IntegrityService
from startset.layout import ScriptLayout
from startset.logging import bind_run_context, get_logger
from startset.models import (
    ExecutionOutcome,
    ExecutionStatus,
    PayloadClass,
    ScriptCandidate,
    SkipReason,
)
from startset.network.monitor import ConnectivityMonitor
from startset.processors import ProcessorSet
from startset.security.access import AccessValidator
from startset.tracking.runonce import RunOnceTracker, tracker_for

log = get_logger(__name__)

TrackerFactory = Callable[[str | None], RunOnceTracker]


def summarize(outcomes: Iterable[ExecutionOutcome]) -> dict[str, int]:
    """Count outcomes per status.  Every status is present, zeros included."""
    counts = {status.value: 0 for status in ExecutionStatus}
    for outcome in outcomes:
        counts[outcome.status.value] += 1
    return counts


class ExecutionEngine:
    """Coordinates one engine run.  Collaborators default to the settings-derived ones."""

    def __init__(
        self,
        settings: Settings,
        *,
        layout: ScriptLayout | None = None,
        processors: ProcessorSet | None = None,
        integrity: IntegrityService | None = None,
        access: AccessValidator | None = None,
        network: ConnectivityMonitor | None = None,
        tracker_factory: TrackerFactory | None = None,
    ) -> None:
        self._injected = {
            "processors": processors,
            "integrity": integrity,
            "access": access,
        }
        self._layout_override = layout
        self._network = network or ConnectivityMonitor()
        self._tracker_factory = tracker_factory
        self.update_settings(settings)

    # ---------------------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------------------

    def update_settings(self, settings: Settings) -> None:
        """Swap in a new configuration (preferences file reload)."""
        prefs = settings.preferences
        self._settings = settings
        self._layout = self._layout_override or ScriptLayout(settings.paths.script_root)
        self._processors = self._injected["processors"] or ProcessorSet.default(
            logs_dir=self._layout.logs_dir,
            max_output_bytes=prefs.max_output_bytes,
            log_output=prefs.log_script_output,
        )
        self._integrity = self._injected["integrity"] or IntegrityService(
            self._layout.checksum_ledger
        )
        self._access = self._injected["access"] or AccessValidator(
            trusted_owners=prefs.trusted_owners
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def layout(self) -> ScriptLayout:
        return self._layout

    @property
    def integrity(self) -> IntegrityService:
        return self._integrity

    def tracker(self, username: str | None) -> RunOnceTracker:
        if self._tracker_factory is not None:
            return self._tracker_factory(username)
        return tracker_for(self._layout, username)

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def run(
        self,
        payload_classes: Iterable[PayloadClass],
        username: str | None = None,
        wait_for_network: bool | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ExecutionOutcome]:
        prefs = self._settings.preferences
        classes = list(payload_classes)

        if username and prefs.is_ignored_user(username):
            return []

        outcomes: list[ExecutionOutcome] = []
        try:
            self._ensure_layout()

            gate = prefs.wait_for_network if wait_for_network is None else wait_for_network
            if gate and not await self._network_gate(cancel_event):
                return []

            for payload_class in classes:
                if cancel_event is not None and cancel_event.is_set():
                    log.warning("engine_cancelled", remaining=payload_class.value)
                    break
                bind_run_context(payload_class=payload_class.value, username=username)
                outcomes.extend(await self._run_class(payload_class, username, cancel_event))
        except Exception as exc:
            log.exception("engine_run_error", error=str(exc))

        counts = summarize(outcomes)
        log.info(
            "engine_run_complete",
            payload_classes=[pc.value for pc in classes],
            total=len(outcomes),
            succeeded=counts[ExecutionStatus.SUCCESS.value],
            failed=len(outcomes)
            - counts[ExecutionStatus.SUCCESS.value]
            - counts[ExecutionStatus.SKIPPED.value],
            skipped=counts[ExecutionStatus.SKIPPED.value],
        )
        return outcomes

    def discover(self, payload_class: PayloadClass) -> list[ScriptCandidate]:
        """Files of *payload_class* with an allowed extension, in execution order."""
        directory = self._layout.payload_dir(payload_class)
        if not directory.is_dir():
            log.debug("payload_directory_missing", path=str(directory))
            return []

        allowed = set(self._settings.preferences.allowed_extensions)
        candidates: list[ScriptCandidate] = []
        for entry in directory.iterdir():
            if entry.suffix.lower() not in allowed:
                continue
            try:
                if not entry.is_file():
                    continue
                candidates.append(ScriptCandidate.from_path(entry, payload_class))
            except OSError as exc:
                log.warning("script_discovery_failed", script=str(entry), error=str(exc))
        candidates.sort(key=lambda c: c.sort_key)
        return candidates

    def cleanup_markers(self) -> int:
        """Delete every trigger marker file.  Returns how many were removed."""
        removed = 0
        for marker in self._layout.markers():
            if _unlink(marker):
                removed += 1
        log.info("markers_cleaned", count=removed)
        return removed

    def cleanup_on_demand(self) -> int:
        """Empty both on-demand directories.  Returns how many files were removed."""
        removed = 0
        for payload_class in (PayloadClass.ON_DEMAND, PayloadClass.ON_DEMAND_PRIVILEGED):
            directory = self._layout.payload_dir(payload_class)
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                if entry.is_file() and _unlink(entry):
                    removed += 1
        log.info("on_demand_cleaned", count=removed)
        return removed

    # ---------------------------------------------------------------------------
    # Pipeline stages
    # ---------------------------------------------------------------------------

    def _ensure_layout(self) -> None:
        try:
            self._layout.ensure()
        except OSError as exc:
            log.error("layout_create_failed", root=str(self._layout.root), error=str(exc))

    async def _network_gate(self, cancel_event: asyncio.Event | None) -> bool:
        prefs = self._settings.preferences
        connected = await self._network.wait_for_connectivity(
            prefs.network_timeout, cancel_event=cancel_event
        )
        if connected:
            return True
        if cancel_event is not None and cancel_event.is_set():
            return False
        if prefs.ignore_network_failure:
            log.warning("network_unavailable_continuing", timeout=prefs.network_timeout)
            return True
        log.error("network_unavailable_aborting", timeout=prefs.network_timeout)
        return False

    async def _run_class(
        self,
        payload_class: PayloadClass,
        username: str | None,
        cancel_event: asyncio.Event | None,
    ) -> list[ExecutionOutcome]:
        candidates = self.discover(payload_class)
        if not candidates:
            return []
        log.info("scripts_found", count=len(candidates), payload_class=payload_class.value)

        for candidate in candidates:
            self._admit(candidate)

        tracker: RunOnceTracker | None = None
        if payload_class.is_run_once:
            tracker = self.tracker(username if payload_class.is_user_context else None)
            self._filter_executed(candidates, tracker)

        timeout = float(self._settings.preferences.script_timeout)
        if self._settings.preferences.parallel_execution:
            results = await asyncio.gather(
                *(self._process(c, tracker, timeout, cancel_event) for c in candidates)
            )
            return [r for r in results if r is not None]

        outcomes: list[ExecutionOutcome] = []
        for candidate in candidates:
            outcome = await self._process(candidate, tracker, timeout, cancel_event)
            if outcome is None:
                break
            outcomes.append(outcome)
        return outcomes

    def _admit(self, candidate: ScriptCandidate) -> None:
        prefs = self._settings.preferences
        try:
            candidate.content_hash = IntegrityService.hash_file(candidate.path)
        except OSError as exc:
            log.warning("script_hash_failed", script=candidate.filename, error=str(exc))

        if prefs.checksum_validation and not self._integrity.validate(candidate.path):
            candidate.skip(SkipReason.CHECKSUM_MISMATCH, "Checksum validation failed")
            return

        if candidate.payload_class.requires_elevation:
            check = self._access.validate_script(candidate.path, candidate.payload_class)
            if not check.is_valid:
                log.warning(
                    "script_permission_denied",
                    script=candidate.filename,
                    owner=check.owner,
                    error=check.error,
                )
                candidate.skip(SkipReason.PERMISSION_DENIED, check.error)

    def _filter_executed(self, candidates: list[ScriptCandidate], tracker: RunOnceTracker) -> None:
        prefs = self._settings.preferences
        for candidate in candidates:
            if candidate.should_skip:
                continue
            if prefs.is_overridden(candidate.filename):
                log.info("script_overridden", script=candidate.filename)
                continue
            if tracker.has_executed(candidate.filename, candidate.content_hash):
                candidate.skip(SkipReason.ALREADY_EXECUTED, "Already executed (run-once)")

    async def _process(
        self,
        candidate: ScriptCandidate,
        tracker: RunOnceTracker | None,
        timeout: float,
        cancel_event: asyncio.Event | None,
    ) -> ExecutionOutcome | None:
        """Run one candidate.  None means cancellation stopped dispatch first."""
        if candidate.should_skip:
            log.debug("script_skipped", script=candidate.filename, reason=candidate.admission)
            return ExecutionOutcome.skipped(candidate)
        if cancel_event is not None and cancel_event.is_set():
            return None

        processor = self._processors.select(candidate)
        if processor is None:
            log.warning("script_unsupported", script=candidate.filename, extension=candidate.extension)
            return ExecutionOutcome.unsupported(candidate)

        outcome = await processor.execute(candidate, timeout, cancel_event)
        if not outcome.succeeded:
            return outcome

        if tracker is not None:
            tracker.record_execution(outcome)
        if candidate.payload_class.delete_after_success:
            if _unlink(candidate.path):
                log.info("boot_once_script_deleted", script=candidate.filename)
        return outcome


def _unlink(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        log.warning("file_delete_failed", path=str(path), error=str(exc))
        return False
    return True
