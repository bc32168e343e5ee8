"""Connectivity monitor — bounded wait for network reachability.

Boot payloads typically map drives or talk to a management server, so the
engine can hold them until the host has a usable network.  "Usable" is
decided by two independent probes; either one being positive is enough:

    1. psutil interface scan: an up, non-loopback, non-tunnel interface with
       a routable (non link-local) address, plus a default gateway.  The
       gateway is read from ``/proc/net/route`` on Linux and assumed present
       elsewhere once an address is bound.
    2. UDP route probe: ``connect()`` a datagram socket to a public address
       (nothing is sent) and check the kernel picked a non-loopback source.

The wait polls every ``poll_interval`` seconds and returns early when the
supplied cancel event is set.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil

from startset.logging import get_logger
from startset.models import utcnow

log = get_logger(__name__)

_PROC_ROUTE = Path("/proc/net/route")
_RTF_GATEWAY = 0x2
_TUNNEL_PREFIXES = ("tun", "tap", "wg", "utun", "ppp", "gif", "stf", "isatap", "teredo")
_PROBE_ADDRESS = ("192.0.2.1", 53)


@dataclass
class InterfaceStatus:
    name: str
    is_up: bool
    addresses: list[str] = field(default_factory=list)
    has_gateway: bool = False
    usable: bool = False


@dataclass
class NetworkStatus:
    connected: bool
    interfaces: list[InterfaceStatus] = field(default_factory=list)
    probe_address: str | None = None
    checked_at: datetime = field(default_factory=utcnow)


def _is_tunnel(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith(_TUNNEL_PREFIXES)


def _routable(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    return not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def _gateway_interfaces() -> set[str] | None:
    """Interfaces holding a default route, or None when the table is unavailable."""
    if not _PROC_ROUTE.exists():
        return None
    names: set[str] = set()
    try:
        lines = _PROC_ROUTE.read_text().splitlines()[1:]
    except OSError:
        return None
    for line in lines:
        cols = line.split()
        if len(cols) < 4:
            continue
        iface, destination, _gateway, flags = cols[:4]
        try:
            if destination == "00000000" and int(flags, 16) & _RTF_GATEWAY:
                names.add(iface)
        except ValueError:
            continue
    return names


class ConnectivityMonitor:
    def __init__(self, poll_interval: float = 2.0) -> None:
        self._poll = poll_interval

    async def wait_for_connectivity(
        self,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Poll until connected (True), *timeout* elapses or *cancel_event* is set (False)."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(timeout, 0)
        cancel = cancel_event or asyncio.Event()
        log.info("network_wait_started", timeout=timeout)

        while True:
            if cancel.is_set():
                log.info("network_wait_cancelled")
                return False
            if self.is_connected():
                log.info("network_available")
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                log.warning("network_wait_timeout", timeout=timeout)
                return False
            try:
                await asyncio.wait_for(cancel.wait(), timeout=min(self._poll, remaining))
            except asyncio.TimeoutError:
                pass

    def is_connected(self) -> bool:
        try:
            if any(i.usable for i in self._scan_interfaces()):
                return True
        except Exception as exc:
            log.debug("interface_scan_failed", error=str(exc))
        try:
            return self._probe_route() is not None
        except Exception as exc:
            log.debug("route_probe_failed", error=str(exc))
            return False

    def status(self) -> NetworkStatus:
        interfaces = self._scan_interfaces()
        try:
            probe = self._probe_route()
        except OSError:
            probe = None
        return NetworkStatus(
            connected=any(i.usable for i in interfaces) or probe is not None,
            interfaces=interfaces,
            probe_address=probe,
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _scan_interfaces() -> list[InterfaceStatus]:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
        gateways = _gateway_interfaces()
        result: list[InterfaceStatus] = []
        for name, st in sorted(stats.items()):
            if _is_tunnel(name):
                continue
            routable = [
                a.address
                for a in addrs.get(name, [])
                if a.family in (socket.AF_INET, socket.AF_INET6) and _routable(a.address)
            ]
            has_gateway = bool(routable) if gateways is None else name in gateways
            result.append(
                InterfaceStatus(
                    name=name,
                    is_up=st.isup,
                    addresses=routable,
                    has_gateway=has_gateway,
                    usable=st.isup and bool(routable) and has_gateway,
                )
            )
        return result

    @staticmethod
    def _probe_route() -> str | None:
        """Source address the kernel would use for a public destination."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            try:
                sock.connect(_PROBE_ADDRESS)
            except OSError:
                return None
            local = sock.getsockname()[0]
        return local if _routable(local) else None
