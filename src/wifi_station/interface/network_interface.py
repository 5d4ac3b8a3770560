"""Abstract network interface for station-mode Wi-Fi drivers.

This module provides the abstract base class that the connectivity manager
drives, along with the value types exchanged across that boundary. Concrete
implementations (NetworkManager, in-memory simulator) deliver asynchronous
events to subscribed handlers on their own threads.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_SSID_LEN = 32
MAX_PASSWORD_LEN = 64


class InterfaceError(Exception):
    """Raised when the network interface rejects or fails a request."""

    def __init__(self, message: str, code: str = "ERR_FAIL") -> None:
        super().__init__(message)
        self.code = code


class WifiMode(Enum):
    """Radio operating modes."""

    NULL = "null"
    STATION = "station"
    ACCESS_POINT = "access_point"


class AuthMode(IntEnum):
    """Authentication modes, ordered from weakest to strongest."""

    OPEN = 0
    WEP = 1
    WPA_PSK = 2
    WPA2_PSK = 3
    WPA_WPA2_PSK = 4
    WPA3_PSK = 5
    WPA2_WPA3_PSK = 6
    UNKNOWN = 99

    @property
    def display_name(self) -> str:
        """Human readable name for log output."""
        return _AUTH_MODE_NAMES.get(self, "Unknown")


_AUTH_MODE_NAMES = {
    AuthMode.OPEN: "Open",
    AuthMode.WEP: "WEP",
    AuthMode.WPA_PSK: "WPA-PSK",
    AuthMode.WPA2_PSK: "WPA2-PSK",
    AuthMode.WPA_WPA2_PSK: "WPA/WPA2-PSK",
    AuthMode.WPA3_PSK: "WPA3-PSK",
    AuthMode.WPA2_WPA3_PSK: "WPA2/WPA3-PSK",
}


class ScanType(Enum):
    """Scan strategies."""

    ACTIVE = "active"
    PASSIVE = "passive"


class EventCategory(Enum):
    """Event categories a handler can subscribe to."""

    WIFI = "wifi"
    IP = "ip"


class EventId(Enum):
    """Event identifiers delivered by the interface."""

    STA_START = "sta_start"
    STA_STOP = "sta_stop"
    STA_CONNECTED = "sta_connected"
    STA_DISCONNECTED = "sta_disconnected"
    SCAN_DONE = "scan_done"
    STA_GOT_IP = "sta_got_ip"
    STA_LOST_IP = "sta_lost_ip"


_IP_EVENTS = (EventId.STA_GOT_IP, EventId.STA_LOST_IP)


@dataclass(frozen=True)
class InterfaceEvent:
    """A single notification from the interface."""

    category: EventCategory
    event_id: EventId
    payload: Dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[InterfaceEvent], None]


def signal_quality(rssi: int) -> str:
    """Classify an RSSI value in dBm.

    Args:
        rssi: Signal strength in dBm

    Returns:
        One of "Excellent", "Good", "Fair", "Weak"
    """
    if rssi > -50:
        return "Excellent"
    if rssi > -70:
        return "Good"
    if rssi > -90:
        return "Fair"
    return "Weak"


@dataclass
class ApRecord:
    """An access point found by a scan."""

    ssid: str
    bssid: str
    rssi: int  # dBm
    authmode: AuthMode = AuthMode.OPEN
    channel: int = 0

    @property
    def quality(self) -> str:
        """Signal quality label."""
        return signal_quality(self.rssi)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ssid": self.ssid,
            "bssid": self.bssid,
            "rssi": self.rssi,
            "authmode": self.authmode.display_name,
            "channel": self.channel,
            "quality": self.quality,
        }


@dataclass(frozen=True)
class PmfConfig:
    """Protected management frame options."""

    capable: bool = True
    required: bool = False


def _truncate_utf8(value: str, max_bytes: int) -> str:
    """Truncate a string to at most max_bytes of UTF-8 without splitting a character."""
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


@dataclass(frozen=True)
class StationConfig:
    """Target network configuration for the station interface.

    Overlong ssid/password values are truncated to the driver field limits.
    """

    ssid: str = ""
    password: str = ""
    auth_threshold: AuthMode = AuthMode.OPEN
    pmf: PmfConfig = field(default_factory=PmfConfig)

    @classmethod
    def for_network(cls, ssid: str, password: Optional[str] = None) -> "StationConfig":
        """Build a permissive configuration for a target network.

        Args:
            ssid: Network SSID
            password: Network password (None for open networks)

        Returns:
            StationConfig with fields truncated to driver limits
        """
        return cls(
            ssid=_truncate_utf8(ssid, MAX_SSID_LEN),
            password=_truncate_utf8(password or "", MAX_PASSWORD_LEN),
        )


@dataclass(frozen=True)
class CountryConfig:
    """Regulatory domain and allowed channel set."""

    code: str = "CN"
    first_channel: int = 1
    channel_count: int = 13


@dataclass(frozen=True)
class ScanConfig:
    """Parameters for a scan request."""

    ssid: Optional[str] = None
    bssid: Optional[str] = None
    channel: int = 0  # 0 = all channels
    show_hidden: bool = True
    scan_type: ScanType = ScanType.ACTIVE
    active_min_ms: int = 200
    active_max_ms: int = 400
    passive_ms: int = 100


@dataclass(frozen=True)
class IpInfo:
    """IPv4 configuration of an interface."""

    ip: str
    netmask: str = "255.255.255.0"
    gateway: str = "0.0.0.0"


@dataclass(frozen=True)
class StationHandle:
    """Opaque handle to a station network interface."""

    name: str


class NetworkInterface(ABC):
    """Abstract base class for station-mode network interface drivers.

    Subclasses implement the driver primitives. Event subscription and
    delivery live here so every implementation dispatches the same way.
    """

    def __init__(self) -> None:
        """Initialize subscription bookkeeping."""
        self._handlers: Dict[EventCategory, List[EventHandler]] = {}
        self._handlers_lock = threading.Lock()

    @abstractmethod
    def init(self) -> None:
        """Initialize the driver in station role."""

    @abstractmethod
    def deinit(self) -> None:
        """Release driver resources."""

    @abstractmethod
    def bring_up(self) -> None:
        """Bring up the network-interface subsystem."""

    @abstractmethod
    def create_station_handle(self) -> StationHandle:
        """Allocate the station interface handle."""

    @abstractmethod
    def destroy_station_handle(self, handle: StationHandle) -> None:
        """Destroy a station interface handle."""

    @abstractmethod
    def set_mode(self, mode: WifiMode) -> None:
        """Set the radio operating mode."""

    @abstractmethod
    def get_mode(self) -> WifiMode:
        """Get the radio operating mode."""

    @abstractmethod
    def set_config(self, config: StationConfig) -> None:
        """Store the station configuration used by connect()."""

    @abstractmethod
    def get_config(self) -> StationConfig:
        """Get the stored station configuration."""

    @abstractmethod
    def start(self) -> None:
        """Start the interface. Emits STA_START."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the interface."""

    @abstractmethod
    def connect(self) -> None:
        """Request association with the configured network.

        Completion is reported asynchronously with STA_GOT_IP, failure or
        link loss with STA_DISCONNECTED.
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Request disassociation from the current network."""

    @abstractmethod
    def set_country(self, country: CountryConfig) -> None:
        """Set the regulatory domain and channel set."""

    @abstractmethod
    def scan_start(self, config: ScanConfig, block: bool = False) -> None:
        """Start a scan. Completion is reported with SCAN_DONE."""

    @abstractmethod
    def scan_stop(self) -> None:
        """Stop any in-progress scan."""

    @abstractmethod
    def get_scan_result_count(self) -> int:
        """Get the number of access points found by the last scan."""

    @abstractmethod
    def get_scan_results(self, max_records: int) -> List[ApRecord]:
        """Fetch up to max_records access points from the last scan."""

    @abstractmethod
    def get_current_ap_info(self) -> ApRecord:
        """Get the access point the station is associated with.

        Raises:
            InterfaceError: If not associated or the query fails
        """

    @abstractmethod
    def get_ip_info(self, handle: StationHandle) -> IpInfo:
        """Get the IPv4 configuration of the station interface."""

    def subscribe(self, category: EventCategory, handler: EventHandler) -> None:
        """Register a handler for an event category.

        Args:
            category: Event category
            handler: Callable receiving InterfaceEvent objects
        """
        with self._handlers_lock:
            handlers = self._handlers.setdefault(category, [])
            if handler not in handlers:
                handlers.append(handler)
        logger.debug("Handler subscribed to %s events", category.value)

    def unsubscribe(self, category: EventCategory, handler: EventHandler) -> None:
        """Remove a previously registered handler.

        Raises:
            InterfaceError: If the handler is not registered
        """
        with self._handlers_lock:
            handlers = self._handlers.get(category, [])
            if handler not in handlers:
                raise InterfaceError(
                    f"Handler not registered for {category.value} events", code="ERR_NOT_FOUND"
                )
            handlers.remove(handler)
        logger.debug("Handler unsubscribed from %s events", category.value)

    def _emit(self, event_id: EventId, payload: Optional[Dict[str, Any]] = None) -> None:
        """Deliver an event to subscribed handlers (for use by subclasses).

        Args:
            event_id: Event identifier
            payload: Optional event data
        """
        category = EventCategory.IP if event_id in _IP_EVENTS else EventCategory.WIFI
        event = InterfaceEvent(category=category, event_id=event_id, payload=payload or {})

        with self._handlers_lock:
            handlers = list(self._handlers.get(category, []))

        logger.debug("Emitting %s/%s to %d handler(s)", category.value, event_id.value, len(handlers))
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in %s event handler: %s", event_id.value, e)
