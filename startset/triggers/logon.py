"""LogonTriggerSource — runs login payloads when a user session starts.

The source consumes an async stream of LogonEvent.  The default stream polls
``psutil.users()`` and yields every session that was not present on the
previous poll; sessions already open when the service starts are seeded and
never fire.

Events are filtered before anything runs:

    - empty user names
    - built-in service identities (SYSTEM, LOCAL SERVICE, NETWORK SERVICE,
      ANONYMOUS LOGON, DWM-n, UMFD-n)
    - machine accounts (names ending in ``$``)
    - sessions without a terminal, on hosts where interactive sessions
      always have one

Each accepted logon is handled in its own task so a configured
``login_delay`` never holds back the next user.
"""

from __future__ import annotations

import asyncio
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

import psutil

from startset.logging import get_logger
from startset.models import TriggerKind
from startset.triggers.base import BaseTriggerSource
from startset.triggers.dispatcher import EngineDispatcher

log = get_logger(__name__)

SYSTEM_ACCOUNTS = frozenset({"SYSTEM", "LOCAL SERVICE", "NETWORK SERVICE", "ANONYMOUS LOGON"})
_SESSION_ACCOUNT = re.compile(r"^(DWM|UMFD)-\d+$")


@dataclass(frozen=True)
class LogonEvent:
    username: str
    terminal: str | None = None
    host: str | None = None
    started_at: datetime | None = None


LogonStream = Callable[[asyncio.Event], AsyncIterator[LogonEvent]]


def is_system_account(username: str | None) -> bool:
    if not username or not username.strip():
        return True
    upper = username.strip().upper()
    return upper in SYSTEM_ACCOUNTS or bool(_SESSION_ACCOUNT.match(upper)) or upper.endswith("$")


def _session_key(user) -> tuple:
    return (user.name, user.terminal, user.host, user.started)


async def poll_user_sessions(
    stop_event: asyncio.Event,
    poll_interval: float = 2.0,
) -> AsyncIterator[LogonEvent]:
    """Yield a LogonEvent for each session that appears in ``psutil.users()``."""
    known = {_session_key(u) for u in psutil.users()}
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            return
        except asyncio.TimeoutError:
            pass

        try:
            users = psutil.users()
        except Exception as exc:
            log.warning("user_session_poll_failed", error=str(exc))
            continue

        current = {_session_key(u): u for u in users}
        for key in current.keys() - known:
            user = current[key]
            yield LogonEvent(
                username=user.name,
                terminal=user.terminal,
                host=user.host,
                started_at=datetime.fromtimestamp(user.started, tz=timezone.utc)
                if user.started
                else None,
            )
        known = set(current)


class LogonTriggerSource(BaseTriggerSource):
    name = "logon"

    def __init__(
        self,
        dispatcher: EngineDispatcher,
        events: LogonStream | None = None,
        poll_interval: float = 2.0,
        require_terminal: bool | None = None,
    ) -> None:
        super().__init__(dispatcher)
        self._events = events
        self._poll_interval = poll_interval
        self._require_terminal = sys.platform != "win32" if require_terminal is None else require_terminal
        self._handlers: set[asyncio.Task[None]] = set()

    def accepts(self, event: LogonEvent) -> bool:
        if is_system_account(event.username):
            return False
        if self._require_terminal and not event.terminal:
            return False
        return True

    async def stop(self) -> None:
        await super().stop()
        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)
        self._handlers.clear()

    async def drain(self) -> None:
        """Wait for in-flight logon handlers.  Used by tests and shutdown."""
        if self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

    async def _run(self) -> None:
        if self._events is not None:
            stream = self._events(self._stop_event)
        else:
            stream = poll_user_sessions(self._stop_event, self._poll_interval)

        async for event in stream:
            if self._stopped:
                return
            if not self.accepts(event):
                log.debug("logon_ignored", username=event.username, terminal=event.terminal)
                continue
            log.info("logon_detected", username=event.username, terminal=event.terminal)
            task = asyncio.create_task(self.handle(event), name=f"logon_{event.username}")
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def handle(self, event: LogonEvent) -> None:
        engine = self._dispatcher.engine
        delay = engine.settings.preferences.login_delay
        if delay > 0:
            log.debug("login_delay", username=event.username, seconds=delay)
            if await self._sleep(delay):
                return

        await self._dispatch(
            TriggerKind.LOGIN,
            TriggerKind.LOGIN.payload_classes,
            username=event.username,
            wait_for_network=False,
        )

        marker = engine.layout.marker(TriggerKind.LOGIN_PRIVILEGED)
        if marker.exists() and not self._stopped:
            await self._dispatch(
                TriggerKind.LOGIN_PRIVILEGED,
                TriggerKind.LOGIN_PRIVILEGED.payload_classes,
                username=event.username,
                wait_for_network=False,
            )
            try:
                marker.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("marker_delete_failed", marker=marker.name, error=str(exc))
