"""Tunable timings and limits for the connectivity manager."""

from dataclasses import dataclass, field
from typing import Any, Optional

from wifi_station.interface.network_interface import CountryConfig


@dataclass(frozen=True)
class ManagerSettings:  # pylint: disable=too-many-instance-attributes
    """Connectivity manager settings.

    The defaults reproduce the device firmware: readiness polled every
    100 ms for 3 s, 10 s scan bound, 30 s connect bound, 3 s reconnect
    delay and unlimited reconnect attempts.
    """

    ready_poll_interval: float = 0.1
    ready_timeout: float = 3.0
    scan_timeout: float = 10.0
    connect_timeout: float = 30.0
    reconnect_delay: float = 3.0
    max_reconnect_attempts: Optional[int] = None
    event_queue_size: int = 64
    country: CountryConfig = field(default_factory=CountryConfig)

    @classmethod
    def from_config(cls, config: Any) -> "ManagerSettings":
        """Build settings from a ConfigManager, falling back to defaults.

        Args:
            config: Object with a dot-notation get(key, default) method

        Returns:
            ManagerSettings instance
        """
        defaults = cls()
        country = CountryConfig(
            code=config.get("wifi.country.code", defaults.country.code),
            first_channel=config.get("wifi.country.first_channel", defaults.country.first_channel),
            channel_count=config.get("wifi.country.channel_count", defaults.country.channel_count),
        )
        return cls(
            ready_poll_interval=config.get("timing.ready_poll_interval", defaults.ready_poll_interval),
            ready_timeout=config.get("timing.ready_timeout", defaults.ready_timeout),
            scan_timeout=config.get("timing.scan_timeout", defaults.scan_timeout),
            connect_timeout=config.get("timing.connect_timeout", defaults.connect_timeout),
            reconnect_delay=config.get("timing.reconnect_delay", defaults.reconnect_delay),
            max_reconnect_attempts=config.get("reconnect.max_attempts", None),
            event_queue_size=config.get("events.queue_size", defaults.event_queue_size),
            country=country,
        )
