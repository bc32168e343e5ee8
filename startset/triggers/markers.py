"""MarkerTriggerSource — on-demand runs requested by dropping a marker file.

Markers live directly under the script root:

    .startset.ondemand               → on-demand
    .startset.ondemand-privileged    → on-demand-privileged
    .startset.cleanup                → delete every marker, run nothing

The login-privileged marker (``.startset.login-privileged``) is not consumed
here: it stays on disk until the next logon picks it up.

On start the source drains markers left over from a previous session, then
watches the root with ``watchfiles.awatch``.  Each marker is deleted after
its run completes.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable

from watchfiles import Change, awatch

from startset.layout import MARKER_PREFIX
from startset.logging import get_logger
from startset.models import TriggerKind
from startset.triggers.base import BaseTriggerSource
from startset.triggers.dispatcher import EngineDispatcher

log = get_logger(__name__)

HANDLED_MARKERS = (
    TriggerKind.CLEANUP,
    TriggerKind.ON_DEMAND,
    TriggerKind.ON_DEMAND_PRIVILEGED,
)

MarkerStream = Callable[[Path, asyncio.Event], AsyncIterator[Iterable[Path]]]


def _marker_filter(change: Change, path: str) -> bool:
    return change in (Change.added, Change.modified) and Path(path).name.startswith(MARKER_PREFIX)


async def watch_markers(root: Path, stop_event: asyncio.Event) -> AsyncIterator[list[Path]]:
    """Yield batches of marker paths created (or touched) under *root*."""
    async for changes in awatch(
        root,
        watch_filter=_marker_filter,
        stop_event=stop_event,
        recursive=False,
    ):
        yield sorted({Path(p) for _, p in changes})


class MarkerTriggerSource(BaseTriggerSource):
    name = "markers"

    def __init__(
        self,
        dispatcher: EngineDispatcher,
        watch: MarkerStream | None = None,
        settle_delay: float = 0.1,
    ) -> None:
        super().__init__(dispatcher)
        self._watch = watch or watch_markers
        self._settle_delay = settle_delay

    async def _run(self) -> None:
        engine = self._dispatcher.engine
        root = engine.layout.root
        try:
            engine.layout.ensure()
        except OSError as exc:
            self.error = f"cannot create script root {root}: {exc}"
            log.error("marker_watch_unavailable", root=str(root), error=str(exc))
            return

        await self.drain_existing()
        log.debug("marker_watch_started", root=str(root))

        async for paths in self._watch(root, self._stop_event):
            if self._stopped:
                return
            for path in paths:
                kind = TriggerKind.from_marker(path.name)
                if kind not in HANDLED_MARKERS:
                    if kind is None:
                        log.warning("marker_unknown", marker=path.name)
                    continue
                if not path.exists():
                    continue
                if await self._sleep(self._settle_delay):
                    return
                await self.handle_marker(kind, path)

    async def drain_existing(self) -> int:
        """Process markers that were already present.  Returns how many were handled."""
        layout = self._dispatcher.engine.layout
        handled = 0
        for kind in HANDLED_MARKERS:
            if self._stopped:
                break
            path = layout.marker(kind)
            if path.exists():
                log.info("marker_leftover", marker=path.name)
                await self.handle_marker(kind, path)
                handled += 1
        return handled

    async def handle_marker(self, kind: TriggerKind, path: Path) -> None:
        log.info("marker_detected", marker=path.name, trigger=kind.value)
        if kind is TriggerKind.CLEANUP:
            self._dispatcher.engine.cleanup_markers()
            return

        await self._dispatch(kind, kind.payload_classes)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("marker_delete_failed", marker=path.name, error=str(exc))
