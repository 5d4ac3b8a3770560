"""Network interface abstraction for station-mode Wi-Fi."""

from wifi_station.interface.in_memory_interface import InMemoryNetworkInterface
from wifi_station.interface.network_interface import (
    ApRecord,
    AuthMode,
    CountryConfig,
    EventCategory,
    EventId,
    InterfaceError,
    InterfaceEvent,
    IpInfo,
    NetworkInterface,
    ScanConfig,
    StationConfig,
    StationHandle,
    WifiMode,
)
from wifi_station.interface.nmcli_interface import NmcliNetworkInterface


def get_network_interface(
    mock: bool, interface_name: str = "wlan0", monitor_interval: float = 2.0
) -> NetworkInterface:
    """Get the appropriate network interface implementation.

    Args:
        mock: If True, use the in-memory interface. If False, use NetworkManager.
        interface_name: Wi-Fi device name
        monitor_interval: Seconds between link state polls (NetworkManager only)

    Returns:
        NetworkInterface implementation
    """
    if mock:
        return InMemoryNetworkInterface(name=interface_name)
    return NmcliNetworkInterface(interface_name=interface_name, monitor_interval=monitor_interval)


__all__ = [
    "ApRecord",
    "AuthMode",
    "CountryConfig",
    "EventCategory",
    "EventId",
    "InMemoryNetworkInterface",
    "InterfaceError",
    "InterfaceEvent",
    "IpInfo",
    "NetworkInterface",
    "NmcliNetworkInterface",
    "ScanConfig",
    "StationConfig",
    "StationHandle",
    "WifiMode",
    "get_network_interface",
]
