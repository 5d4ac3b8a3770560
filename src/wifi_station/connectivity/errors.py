"""Exceptions raised by the connectivity manager."""

from typing import Optional


class WifiError(Exception):
    """Base class for connectivity manager errors."""


class InitError(WifiError):
    """Raised when bringing the manager up fails."""


class TeardownError(WifiError):
    """Raised when shutting the manager down fails.

    Attributes:
        step: Name of the teardown step that failed
    """

    def __init__(self, message: str, step: str) -> None:
        super().__init__(message)
        self.step = step


class WifiTimeoutError(WifiError, TimeoutError):
    """Raised when a bounded wait expires."""


class ScanError(WifiError):
    """Raised when a scan cannot be completed."""


class NotReadyError(ScanError):
    """Raised when the station never reaches station mode."""


class ScanTimeoutError(ScanError, WifiTimeoutError):
    """Raised when the scan-complete notification does not arrive in time."""


class ConnectError(WifiError):
    """Raised when a connection attempt fails."""


class InvalidArgumentError(ConnectError, ValueError):
    """Raised when connect() is given an unusable argument."""


class ConnectTimeoutError(ConnectError, WifiTimeoutError):
    """Raised when no address is acquired in time."""


class DisconnectError(WifiError):
    """Raised when the interface rejects a disconnect request."""


class NotConnectedError(WifiError):
    """Raised when an operation needs a connection and there is none.

    Attributes:
        display: Short text suitable for a status display
    """

    def __init__(self, message: str = "WiFi not connected", display: str = "Not connected") -> None:
        super().__init__(message)
        self.display = display


class QueryError(WifiError):
    """Raised when the interface cannot answer a status query."""

    def __init__(self, message: str, display: Optional[str] = "Get IP failed") -> None:
        super().__init__(message)
        self.display = display


class OperationCancelledError(WifiError):
    """Raised to a waiter when its wait is cancelled by teardown."""
