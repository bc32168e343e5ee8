"""StartSet — Trigger subsystem.

Trigger sources turn host events into engine runs.  All of them go through
one EngineDispatcher, so at most one engine run is in progress at a time.

Package structure
-----------------
triggers/
  dispatcher.py — EngineDispatcher + EngineRequest (serialized engine access)
  base.py       — BaseTriggerSource ABC
  boot.py       — BootTriggerSource (boot + login-window once at start)
  logon.py      — LogonTriggerSource (user sessions via psutil)
  markers.py    — MarkerTriggerSource (.startset.* files via watchfiles)
  service.py    — StartSetService — wires everything and handles signals
"""

from startset.triggers.base import BaseTriggerSource
from startset.triggers.boot import BootTriggerSource
from startset.triggers.dispatcher import EngineDispatcher, EngineRequest
from startset.triggers.logon import LogonEvent, LogonTriggerSource
from startset.triggers.markers import MarkerTriggerSource
from startset.triggers.service import StartSetService

__all__ = [
    "BaseTriggerSource",
    "BootTriggerSource",
    "EngineDispatcher",
    "EngineRequest",
    "LogonEvent",
    "LogonTriggerSource",
    "MarkerTriggerSource",
    "StartSetService",
]
