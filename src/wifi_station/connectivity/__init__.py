"""Station connectivity management: scan, connect, reconnect and teardown."""

from wifi_station.connectivity.errors import (
    ConnectError,
    ConnectTimeoutError,
    DisconnectError,
    InitError,
    InvalidArgumentError,
    NotConnectedError,
    NotReadyError,
    OperationCancelledError,
    QueryError,
    ScanError,
    ScanTimeoutError,
    TeardownError,
    WifiError,
    WifiTimeoutError,
)
from wifi_station.connectivity.manager import UNKNOWN_RSSI, WIFI_NAMESPACE, ConnectivityManager
from wifi_station.connectivity.reconnect import ReconnectPolicy
from wifi_station.connectivity.settings import ManagerSettings
from wifi_station.connectivity.signal import Signal
from wifi_station.connectivity.state import (
    ConnectionSnapshot,
    ConnectionState,
    SignalReading,
    SignalStatus,
)

__all__ = [
    "UNKNOWN_RSSI",
    "WIFI_NAMESPACE",
    "ConnectError",
    "ConnectTimeoutError",
    "ConnectionSnapshot",
    "ConnectionState",
    "ConnectivityManager",
    "DisconnectError",
    "InitError",
    "InvalidArgumentError",
    "ManagerSettings",
    "NotConnectedError",
    "NotReadyError",
    "OperationCancelledError",
    "QueryError",
    "ReconnectPolicy",
    "ScanError",
    "ScanTimeoutError",
    "Signal",
    "SignalReading",
    "SignalStatus",
    "TeardownError",
    "WifiError",
    "WifiTimeoutError",
]
