"""Single-slot signal used to hand completions from the event thread to a waiter."""

import logging
import threading
from typing import Optional

from wifi_station.connectivity.errors import OperationCancelledError

logger = logging.getLogger(__name__)


class Signal:
    """A binary, cancellable wake-up flag for exactly one waiter.

    set() may be called from any thread and any number of times; at most one
    pending signal is kept. wait() consumes the pending signal. Only one
    thread may wait at a time.
    """

    def __init__(self, name: str) -> None:
        """Initialize the signal.

        Args:
            name: Name used in log messages
        """
        self._name = name
        self._condition = threading.Condition()
        self._pending = False
        self._waiting = False
        self._cancelled = False

    @property
    def name(self) -> str:
        """Signal name."""
        return self._name

    def set(self) -> None:
        """Mark the signal pending and wake the waiter, if any."""
        with self._condition:
            if self._cancelled:
                return
            self._pending = True
            self._condition.notify()

    def clear(self) -> None:
        """Discard a pending signal."""
        with self._condition:
            self._pending = False

    def is_set(self) -> bool:
        """Check whether a signal is pending."""
        with self._condition:
            return self._pending

    def wait(self, timeout: Optional[float]) -> bool:
        """Wait for the signal and consume it.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if the signal was consumed, False on timeout

        Raises:
            RuntimeError: If another thread is already waiting
            OperationCancelledError: If the signal is cancelled before or during the wait
        """
        with self._condition:
            if self._waiting:
                raise RuntimeError(f"Signal '{self._name}' already has a waiter")
            self._waiting = True
            try:
                self._condition.wait_for(lambda: self._pending or self._cancelled, timeout=timeout)
                if self._cancelled:
                    raise OperationCancelledError(f"Wait on '{self._name}' was cancelled")
                if not self._pending:
                    return False
                self._pending = False
                return True
            finally:
                self._waiting = False

    def cancel(self) -> None:
        """Wake any waiter with OperationCancelledError and refuse further signals."""
        with self._condition:
            self._cancelled = True
            self._pending = False
            self._condition.notify_all()
        logger.debug("Signal '%s' cancelled", self._name)
