"""StartSetService — long-running host for the trigger sources.

Wiring::

    Settings ─▶ ExecutionEngine ─▶ EngineDispatcher ◀─┬─ BootTriggerSource
                                                      ├─ LogonTriggerSource
                                                      └─ MarkerTriggerSource

The service runs until SIGINT / SIGTERM or ``stop()``.  Stopping sets the
shared cancel event first, so an in-flight script is killed (process tree
and all) and classified ``timeout`` instead of holding up shutdown.

When ``watch_preferences`` is enabled the preferences file is watched with
``watchfiles``; a change reloads Settings and pushes them into the engine.
A file that fails to parse is logged and the previous settings are kept.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

from watchfiles import awatch

from startset.config import Settings
from startset.engine import ExecutionEngine
from startset.exceptions import StartSetError
from startset.logging import get_logger
from startset.triggers.base import BaseTriggerSource
from startset.triggers.boot import BootTriggerSource
from startset.triggers.dispatcher import EngineDispatcher
from startset.triggers.logon import LogonTriggerSource
from startset.triggers.markers import MarkerTriggerSource

log = get_logger(__name__)


class StartSetService:
    """Owns the engine, the dispatcher and the three trigger sources."""

    def __init__(
        self,
        settings: Settings,
        engine: ExecutionEngine | None = None,
        *,
        boot: bool = True,
        logon: bool = True,
        markers: bool = True,
        watch_preferences: bool = True,
    ) -> None:
        self._settings = settings
        self._engine = engine or ExecutionEngine(settings)
        self._cancel_event = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._dispatcher = EngineDispatcher(self._engine, cancel_event=self._cancel_event)

        self._sources: list[BaseTriggerSource] = []
        if boot:
            self._sources.append(BootTriggerSource(self._dispatcher))
        if logon:
            self._sources.append(LogonTriggerSource(self._dispatcher))
        if markers:
            self._sources.append(MarkerTriggerSource(self._dispatcher))

        self._watch_preferences = watch_preferences
        self._prefs_task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def dispatcher(self) -> EngineDispatcher:
        return self._dispatcher

    @property
    def sources(self) -> list[BaseTriggerSource]:
        return list(self._sources)

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._cancel_event.clear()
        self._stop_requested.clear()

        await self._dispatcher.start()
        for source in self._sources:
            await source.start()
        if self._watch_preferences:
            self._prefs_task = asyncio.create_task(
                self._watch_preferences_file(), name="preferences_watcher"
            )
        log.info(
            "service_started",
            script_root=str(self._engine.layout.root),
            sources=[s.name for s in self._sources],
        )

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self._cancel_event.set()
        self._stop_requested.set()

        for source in reversed(self._sources):
            await source.stop()
        if self._prefs_task is not None and not self._prefs_task.done():
            self._prefs_task.cancel()
            try:
                await self._prefs_task
            except asyncio.CancelledError:
                pass
        self._prefs_task = None
        await self._dispatcher.stop()
        log.info("service_stopped")

    def request_stop(self) -> None:
        self._stop_requested.set()

    async def run(self) -> None:
        """Start, wait for a stop signal, then shut down cleanly."""
        self._install_signal_handlers()
        await self.start()
        try:
            await self._stop_requested.wait()
        finally:
            await self.stop()

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Windows event loops: fall back to the process-level handler.
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_stop))

    async def _watch_preferences_file(self) -> None:
        path = self._settings.source_path
        directory = path.parent
        if not directory.is_dir():
            log.debug("preferences_watch_skipped", path=str(path))
            return

        def _only_config(_change, changed: str) -> bool:
            return Path(changed).name == path.name

        try:
            async for _ in awatch(
                directory,
                watch_filter=_only_config,
                stop_event=self._stop_requested,
                recursive=False,
            ):
                self.reload_preferences(path)
        except Exception as exc:
            log.error("preferences_watch_error", path=str(path), error=str(exc))

    def reload_preferences(self, path: Path | None = None) -> bool:
        """Reload the preferences file and push it into the engine."""
        target = path or self._settings.source_path
        try:
            settings = Settings.load(config_file=target)
        except (StartSetError, ValueError) as exc:
            log.error("preferences_reload_failed", path=str(target), error=str(exc))
            return False
        self._settings = settings
        self._engine.update_settings(settings)
        log.info("preferences_reloaded", path=str(target))
        return True
