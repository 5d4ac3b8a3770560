"""Connection state shared between the event thread and callers."""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SignalStatus(Enum):
    """Outcome of a signal strength read."""

    OK = "ok"
    NOT_CONNECTED = "not_connected"
    QUERY_FAILED = "query_failed"


@dataclass(frozen=True)
class SignalReading:
    """Result of a signal strength read; rssi is set only when status is OK."""

    status: SignalStatus
    rssi: Optional[int] = None

    @property
    def ok(self) -> bool:
        """Whether the read produced a value."""
        return self.status == SignalStatus.OK


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Immutable view of the connection state."""

    is_connected: bool
    address: Optional[str] = None
    rssi: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "connected": self.is_connected,
            "address": self.address,
            "rssi": self.rssi,
        }


class ConnectionState:
    """Lock-protected connection record.

    address and rssi are only meaningful while connected and are cleared
    together with the connected flag.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connected = False
        self._address: Optional[str] = None
        self._rssi: Optional[int] = None

    @property
    def is_connected(self) -> bool:
        """Whether an address has been acquired and not lost since."""
        with self._lock:
            return self._connected

    def mark_connected(self, address: str) -> None:
        """Record an acquired address.

        Args:
            address: IPv4 address in dotted-quad form
        """
        with self._lock:
            self._connected = True
            self._address = address

    def mark_disconnected(self) -> bool:
        """Clear the connection.

        Returns:
            True if the state was connected before the call
        """
        with self._lock:
            was_connected = self._connected
            self._connected = False
            self._address = None
            self._rssi = None
            return was_connected

    def record_rssi(self, rssi: int) -> None:
        """Remember the last signal reading while connected."""
        with self._lock:
            if self._connected:
                self._rssi = rssi

    def snapshot(self) -> ConnectionSnapshot:
        """Get a consistent copy of the state."""
        with self._lock:
            return ConnectionSnapshot(
                is_connected=self._connected,
                address=self._address,
                rssi=self._rssi,
            )
