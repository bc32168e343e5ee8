"""BaseTriggerSource — abstract base class for all trigger sources.

A source runs in the background as an asyncio task.  When its event occurs
it submits an EngineRequest to the shared EngineDispatcher.

Subclasses implement ``_run()`` and call ``_dispatch(trigger, payload_classes)``
for each event.  ``start()`` is idempotent; ``stop()`` sets the stop event,
cancels the task and waits for it.  An exception escaping ``_run()`` is
logged and kept in ``error``; it never reaches the event loop.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Sequence

from startset.logging import get_logger
from startset.models import ExecutionOutcome, PayloadClass, TriggerKind
from startset.triggers.dispatcher import EngineDispatcher, EngineRequest

log = get_logger(__name__)


class BaseTriggerSource(ABC):
    """Abstract base for boot, logon and marker sources."""

    name: str = "source"

    def __init__(self, dispatcher: EngineDispatcher) -> None:
        self._dispatcher = dispatcher
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self.error: str | None = None  # set on unrecoverable failure

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return  # already running
        self._stop_event.clear()
        self.error = None
        self._task = asyncio.create_task(self._guarded_run(), name=f"source_{self.name}")
        log.debug("trigger_source_started", source=self.name)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        log.debug("trigger_source_stopped", source=self.name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self) -> None:
        """Wait for the background task to finish on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    # ---------------------------------------------------------------------------
    # Abstract implementation hook
    # ---------------------------------------------------------------------------

    @abstractmethod
    async def _run(self) -> None:
        """Main loop.  Run until ``self._stop_event`` is set."""

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _guarded_run(self) -> None:
        """Wrap ``_run()`` so exceptions don't kill the event loop."""
        try:
            await self._run()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error = str(exc)
            log.error("trigger_source_crashed", source=self.name, error=str(exc))

    async def _dispatch(
        self,
        trigger: TriggerKind,
        payload_classes: Sequence[PayloadClass],
        username: str | None = None,
        wait_for_network: bool | None = None,
    ) -> list[ExecutionOutcome]:
        """Submit one engine run.  Errors are caught and logged."""
        try:
            return await self._dispatcher.submit(
                EngineRequest(
                    trigger=trigger,
                    payload_classes=tuple(payload_classes),
                    username=username,
                    wait_for_network=wait_for_network,
                )
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("trigger_dispatch_error", source=self.name, trigger=trigger.value, error=str(exc))
            return []

    async def _sleep(self, seconds: float) -> bool:
        """Sleep up to *seconds*.  Returns True when stop was requested meanwhile."""
        if seconds <= 0:
            return self._stopped
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    @property
    def _stopped(self) -> bool:
        return self._stop_event.is_set()
