"""Automatic reconnection after link loss."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """Schedules a reconnect attempt a fixed delay after each link loss.

    Attempts are unbounded unless max_attempts is given. The delay runs on a
    timer thread so the event thread keeps draining events meanwhile. A new
    schedule() replaces a pending one, so at most one attempt is outstanding.
    """

    def __init__(self, delay: float = 3.0, max_attempts: Optional[int] = None) -> None:
        """Initialize the reconnect policy.

        Args:
            delay: Seconds to wait after a disconnect before reconnecting
            max_attempts: Maximum consecutive attempts (None = retry forever)
        """
        self._delay = delay
        self._max_attempts = max_attempts
        self._attempts = 0
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

        logger.debug("ReconnectPolicy initialized (delay=%.1fs, max_attempts=%s)", delay, max_attempts)

    @property
    def attempts(self) -> int:
        """Consecutive attempts since the last reset."""
        with self._lock:
            return self._attempts

    @property
    def exhausted(self) -> bool:
        """Whether the attempt cap has been reached."""
        with self._lock:
            return self._max_attempts is not None and self._attempts >= self._max_attempts

    def is_pending(self) -> bool:
        """Check whether an attempt is waiting on its timer."""
        with self._lock:
            return self._timer is not None

    def schedule(self, action: Callable[[], None]) -> bool:
        """Arm a reconnect attempt.

        Args:
            action: Called on the timer thread once the delay expires

        Returns:
            True if an attempt was scheduled, False if attempts are exhausted
        """
        with self._lock:
            if self._max_attempts is not None and self._attempts >= self._max_attempts:
                logger.error("Giving up reconnecting after %d attempts", self._attempts)
                return False

            if self._timer:
                self._timer.cancel()

            self._timer = threading.Timer(self._delay, self._fire, args=(action,))
            self._timer.daemon = True
            self._timer.start()

        logger.warning("WiFi disconnected, reconnect after %.1fs...", self._delay)
        return True

    def _fire(self, action: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is None or self._timer is not threading.current_thread():
                return
            self._timer = None
            self._attempts += 1
            attempt = self._attempts

        logger.info("Reconnect attempt %d", attempt)
        try:
            action()
        except Exception as e:
            logger.error("Reconnect attempt %d failed: %s", attempt, e)

    def cancel(self) -> None:
        """Cancel a pending attempt."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None

    def reset(self) -> None:
        """Reset the attempt counter after a successful connection."""
        with self._lock:
            if self._attempts:
                logger.info("Reconnected after %d attempt(s)", self._attempts)
            self._attempts = 0
