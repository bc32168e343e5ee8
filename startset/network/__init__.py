"""Network reachability probing."""

from startset.network.monitor import ConnectivityMonitor, InterfaceStatus, NetworkStatus

__all__ = ["ConnectivityMonitor", "InterfaceStatus", "NetworkStatus"]
