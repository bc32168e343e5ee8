"""BootTriggerSource — runs the boot payloads once at service start.

Sequence::

    settle delay (default 1s)
    boot-once + boot-every      network gate from preferences
    login-window                no network gate
"""

from __future__ import annotations

from startset.logging import get_logger
from startset.models import ExecutionOutcome, TriggerKind
from startset.triggers.base import BaseTriggerSource
from startset.triggers.dispatcher import EngineDispatcher

log = get_logger(__name__)


class BootTriggerSource(BaseTriggerSource):
    name = "boot"

    def __init__(self, dispatcher: EngineDispatcher, settle_delay: float = 1.0) -> None:
        super().__init__(dispatcher)
        self._settle_delay = settle_delay
        self.outcomes: list[ExecutionOutcome] = []

    async def _run(self) -> None:
        if await self._sleep(self._settle_delay):
            return

        log.info("boot_sequence_started")
        boot = await self._dispatch(TriggerKind.BOOT, TriggerKind.BOOT.payload_classes)
        self.outcomes.extend(boot)
        if self._stopped:
            return

        window = await self._dispatch(
            TriggerKind.LOGIN_WINDOW,
            TriggerKind.LOGIN_WINDOW.payload_classes,
            wait_for_network=False,
        )
        self.outcomes.extend(window)
        log.info("boot_sequence_complete", boot_scripts=len(boot), login_window_scripts=len(window))
