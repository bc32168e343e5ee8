"""EngineDispatcher — the single serialized entry point into the engine.

Trigger sources never call ``ExecutionEngine.run()`` directly.  They submit
an EngineRequest; one consumer task drains the queue in arrival order, so a
boot run and a coincident on-demand marker never execute scripts at the
same time and never race on the same run-once ledger.

Usage::

    dispatcher = EngineDispatcher(engine, cancel_event=stop_event)
    await dispatcher.start()

    outcomes = await dispatcher.submit(
        EngineRequest(TriggerKind.BOOT, TriggerKind.BOOT.payload_classes)
    )

    await dispatcher.stop()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from startset.engine import ExecutionEngine
from startset.logging import bind_run_context, clear_run_context, get_logger
from startset.models import ExecutionOutcome, PayloadClass, TriggerKind

log = get_logger(__name__)


@dataclass
class EngineRequest:
    trigger: TriggerKind
    payload_classes: Sequence[PayloadClass]
    username: str | None = None
    wait_for_network: bool | None = None
    future: asyncio.Future[list[ExecutionOutcome]] | None = field(default=None, repr=False)


class EngineDispatcher:
    def __init__(
        self,
        engine: ExecutionEngine,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._engine = engine
        self._cancel_event = cancel_event
        self._queue: asyncio.Queue[EngineRequest] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._busy = False

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="engine_dispatcher")
        log.debug("dispatcher_started")

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        while not self._queue.empty():
            request = self._queue.get_nowait()
            if request.future is not None and not request.future.done():
                request.future.cancel()
        log.debug("dispatcher_stopped")

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def busy(self) -> bool:
        return self._busy

    # ---------------------------------------------------------------------------
    # Public interface
    # ---------------------------------------------------------------------------

    def enqueue(self, request: EngineRequest) -> asyncio.Future[list[ExecutionOutcome]]:
        """Queue *request* and return the future its outcomes resolve."""
        request.future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(request)
        log.debug(
            "engine_request_queued",
            trigger=request.trigger.value,
            username=request.username,
            queue_depth=self._queue.qsize(),
        )
        return request.future

    async def submit(self, request: EngineRequest) -> list[ExecutionOutcome]:
        """Queue *request* and wait for its outcomes."""
        return await self.enqueue(request)

    # ---------------------------------------------------------------------------
    # Internal loop
    # ---------------------------------------------------------------------------

    async def _loop(self) -> None:
        while True:
            request = await self._queue.get()
            future = request.future
            if future is not None and future.done():
                continue

            self._busy = True
            clear_run_context()
            bind_run_context(trigger=request.trigger.value, username=request.username)
            try:
                outcomes = await self._engine.run(
                    request.payload_classes,
                    username=request.username,
                    wait_for_network=request.wait_for_network,
                    cancel_event=self._cancel_event,
                )
            except asyncio.CancelledError:
                if future is not None and not future.done():
                    future.cancel()
                raise
            except Exception as exc:
                log.error("engine_request_failed", trigger=request.trigger.value, error=str(exc))
                outcomes = []
            finally:
                self._busy = False
                clear_run_context()

            if future is not None and not future.done():
                future.set_result(outcomes)
