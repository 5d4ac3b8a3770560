"""Main entry point for the Wi-Fi station connectivity manager."""

import argparse
import logging
import signal
import sys
import time
from typing import NoReturn

from wifi_station import __version__
from wifi_station.config import ConfigError, ConfigManager
from wifi_station.connectivity import (
    ConnectError,
    ConnectivityManager,
    InitError,
    ManagerSettings,
    NotConnectedError,
    QueryError,
    ScanError,
    TeardownError,
)
from wifi_station.interface import NetworkInterface, get_network_interface
from wifi_station.storage import InMemorySettingsStore, SettingsStore, YamlSettingsStore

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application.

    Args:
        debug: If True, set log level to DEBUG, otherwise INFO
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Wi-Fi station manager - scan, connect and stay connected"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the in-memory interface instead of NetworkManager (for testing)",
    )
    parser.add_argument(
        "--scan-only",
        action="store_true",
        help="Scan once, print the results and exit",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yml",
        help="Path to configuration file (default: config.yml)",
    )
    return parser.parse_args()


def _load_config(config_path: str) -> ConfigManager:
    """Load and validate configuration, exiting on error."""
    try:
        config = ConfigManager(user_config_path=config_path)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    wifi = config.get_wifi_config()
    if wifi.get("ssid"):
        logger.info("Configured SSID: %s", wifi["ssid"])
    else:
        logger.warning("No SSID configured, scan only")
    return config


def _build_interface(config: ConfigManager, mock_mode: bool) -> NetworkInterface:
    mock = mock_mode or config.get("interface.backend", "nmcli") == "mock"
    interface = get_network_interface(
        mock=mock,
        interface_name=config.get("interface.name", "wlan0"),
        monitor_interval=config.get("interface.monitor_interval", 2.0),
    )
    logger.info("  - Using %s", type(interface).__name__)
    return interface


def _build_store(config: ConfigManager) -> SettingsStore:
    path = config.get("store.path")
    if path:
        logger.info("  - Settings store: %s", path)
        return YamlSettingsStore(path)
    logger.info("  - Settings store: in memory")
    return InMemorySettingsStore()


def _report_connection(manager: ConnectivityManager) -> None:
    """Log the current address and signal strength."""
    try:
        address = manager.get_address()
    except (NotConnectedError, QueryError) as e:
        address = e.display or str(e)
    rssi = manager.get_signal_strength()
    logger.info("IP address: %s", address)
    logger.info("Signal strength: %d dBm", rssi)


def _shutdown(manager: ConnectivityManager) -> None:
    logger.info("Tearing down WiFi...")
    try:
        manager.teardown()
    except TeardownError as e:
        logger.error("Teardown failed at '%s': %s", e.step, e)


def main() -> NoReturn:  # pylint: disable=too-many-statements
    """Main application entry point."""
    args = parse_args()
    setup_logging(args.debug)

    logger.info("=" * 60)
    logger.info("Wi-Fi Station Manager v%s", __version__)
    logger.info("=" * 60)

    config = _load_config(args.config)
    settings = ManagerSettings.from_config(config)

    logger.info("Initializing WiFi...")
    manager = ConnectivityManager(
        interface=_build_interface(config, args.mock),
        store=_build_store(config),
        settings=settings,
    )
    try:
        manager.init()
    except InitError as e:
        logger.error("Failed to initialize WiFi: %s", e)
        sys.exit(1)

    try:
        manager.scan()
    except ScanError as e:
        logger.error("Scan failed: %s", e)

    ssid = config.get("wifi.ssid")
    if args.scan_only or not ssid:
        _shutdown(manager)
        sys.exit(0)

    try:
        manager.connect(ssid, config.get("wifi.password") or None)
    except ConnectError as e:
        logger.error("Connect failed: %s (will keep retrying)", e)
    _report_connection(manager)

    shutdown_requested = False

    def signal_handler(signum: int, _frame: object) -> None:
        nonlocal shutdown_requested
        if shutdown_requested:
            logger.warning("Force quit!")
            sys.exit(1)
        logger.info("Shutdown requested (signal %d)...", signum)
        shutdown_requested = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Station is running, press Ctrl+C to stop")

    try:
        while not shutdown_requested:
            time.sleep(0.1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")

    _shutdown(manager)
    logger.info("Goodbye!")
    sys.exit(0)


if __name__ == "__main__":
    main()
