"""Connectivity manager that keeps a station connected to an access point.

This module provides the ConnectivityManager class, which drives a
NetworkInterface through bring-up, scanning, association and teardown, and
reacts to the interface's asynchronous events:

- STA_START: connect using whatever configuration is stored
- STA_DISCONNECTED: clear the connection and reconnect after a delay
- SCAN_DONE: wake the caller blocked in scan()
- STA_GOT_IP: record the address and wake the caller blocked in connect()

Events are pushed by the interface into a bounded queue and handled by a
single consumer thread, so connection state is only ever changed from one
place (plus a successful explicit disconnect).
"""

import logging
import queue
import threading
import time
from typing import Callable, List, Optional, Set

from wifi_station.connectivity.errors import (
    ConnectError,
    ConnectTimeoutError,
    DisconnectError,
    InitError,
    InvalidArgumentError,
    NotConnectedError,
    NotReadyError,
    QueryError,
    ScanError,
    ScanTimeoutError,
    TeardownError,
)
from wifi_station.connectivity.reconnect import ReconnectPolicy
from wifi_station.connectivity.settings import ManagerSettings
from wifi_station.connectivity.signal import Signal
from wifi_station.connectivity.state import (
    ConnectionSnapshot,
    ConnectionState,
    SignalReading,
    SignalStatus,
)
from wifi_station.interface.network_interface import (
    ApRecord,
    EventCategory,
    EventId,
    InterfaceError,
    InterfaceEvent,
    NetworkInterface,
    ScanConfig,
    StationConfig,
    StationHandle,
    WifiMode,
    signal_quality,
)
from wifi_station.storage.settings_store import SettingsStore, StoreError

logger = logging.getLogger(__name__)

UNKNOWN_RSSI = -127
WIFI_NAMESPACE = "wifi_config"

_STOP = object()


class ConnectivityManager:  # pylint: disable=too-many-instance-attributes
    """Brings a station interface up and keeps it connected.

    One manager owns one interface and one settings store from init() to
    teardown(). Public operations are meant to be called from a single
    caller thread; scan() and connect() must not overlap.
    """

    def __init__(
        self,
        interface: NetworkInterface,
        store: SettingsStore,
        settings: Optional[ManagerSettings] = None,
    ) -> None:
        """Initialize the connectivity manager.

        Args:
            interface: Network interface to drive
            store: Settings store used by the interface
            settings: Timings and limits (firmware defaults if None)
        """
        self._interface = interface
        self._store = store
        self._settings = settings or ManagerSettings()

        self._state = ConnectionState()
        self._reconnect = ReconnectPolicy(
            delay=self._settings.reconnect_delay,
            max_attempts=self._settings.max_reconnect_attempts,
        )
        self._events: "queue.Queue[object]" = queue.Queue(maxsize=self._settings.event_queue_size)
        self._event_thread: Optional[threading.Thread] = None

        self._handle: Optional[StationHandle] = None
        self._scan_signal: Optional[Signal] = None
        self._connect_signal: Optional[Signal] = None
        self._initialized = False
        self._shutting_down = False
        self._teardown_done: Set[str] = set()

        logger.debug("ConnectivityManager created")

    @property
    def settings(self) -> ManagerSettings:
        """Active settings."""
        return self._settings

    @property
    def reconnect_policy(self) -> ReconnectPolicy:
        """Reconnect policy driven by link loss events."""
        return self._reconnect

    def is_initialized(self) -> bool:
        """Check whether init() has completed."""
        return self._initialized

    def status(self) -> ConnectionSnapshot:
        """Get a consistent snapshot of the connection state."""
        return self._state.snapshot()

    # Lifecycle

    def init(self) -> None:
        """Bring the interface up in station mode and start it.

        Completed steps are not unwound when a later step fails.

        Raises:
            InitError: If already initialized or any step fails
        """
        if self._initialized:
            raise InitError("WiFi manager already initialized")

        self._shutting_down = False
        self._teardown_done = set()
        self._run_init_step("init settings store", self._init_store)
        self._run_init_step("bring up network interface", self._create_station)
        self._run_init_step("init driver", self._interface.init)
        self._run_init_step("register event handlers", self._register_handlers)
        self._run_init_step("configure station", self._configure_station)
        self._scan_signal = Signal("scan_done")
        self._connect_signal = Signal("got_ip")
        self._run_init_step("start interface", self._interface.start)

        self._initialized = True
        logger.info("WiFi module initialized (STA mode)")

    def _run_init_step(self, step: str, action: Callable[[], None]) -> None:
        try:
            action()
        except (InterfaceError, StoreError) as e:
            logger.error("Init step '%s' failed: %s", step, e)
            raise InitError(f"Failed to {step}: {e}") from e

    def _init_store(self) -> None:
        self._store.init()
        self._store.erase_namespace(WIFI_NAMESPACE)

    def _create_station(self) -> None:
        self._interface.bring_up()
        self._handle = self._interface.create_station_handle()

    def _register_handlers(self) -> None:
        self._event_thread = threading.Thread(
            target=self._event_loop, daemon=True, name="WifiEvents"
        )
        self._event_thread.start()
        self._interface.subscribe(EventCategory.WIFI, self._enqueue_event)
        self._interface.subscribe(EventCategory.IP, self._enqueue_event)

    def _configure_station(self) -> None:
        self._interface.set_mode(WifiMode.STATION)
        # Accept everything from open networks up, so an empty password never fails
        self._interface.set_config(StationConfig())

    def teardown(self) -> None:
        """Disconnect, stop and release every resource acquired by init().

        Steps that completed in an earlier failed teardown are skipped, so a
        retry resumes at the step that failed.

        Raises:
            TeardownError: At the first failing step; later steps are skipped
        """
        if not self._initialized:
            raise TeardownError("WiFi manager is not initialized", step="check state")

        self._shutting_down = True
        self._reconnect.cancel()

        self._run_teardown_step("disconnect", self._interface.disconnect)
        self._run_teardown_step("stop interface", self._interface.stop)
        self._run_teardown_step("unregister event handlers", self._unregister_handlers)
        self._run_teardown_step("destroy station handle", self._destroy_station)
        self._run_teardown_step("cancel pending waits", self._cancel_signals)
        self._run_teardown_step("deinit driver", self._interface.deinit)
        self._run_teardown_step("deinit settings store", self._store.deinit)

        self._reconnect.cancel()
        self._state.mark_disconnected()
        self._initialized = False
        self._teardown_done = set()
        logger.info("WiFi module deinitialized")

    def _run_teardown_step(self, step: str, action: Callable[[], None]) -> None:
        if step in self._teardown_done:
            logger.debug("Teardown step '%s' already done", step)
            return
        try:
            action()
        except (InterfaceError, StoreError) as e:
            logger.error("Teardown step '%s' failed: %s", step, e)
            raise TeardownError(f"Failed to {step}: {e}", step=step) from e
        self._teardown_done.add(step)

    def _unregister_handlers(self) -> None:
        self._interface.unsubscribe(EventCategory.IP, self._enqueue_event)
        self._interface.unsubscribe(EventCategory.WIFI, self._enqueue_event)

        if self._event_thread is not None:
            self._events.put(_STOP)
            self._event_thread.join(timeout=2.0)
            self._event_thread = None

    def _destroy_station(self) -> None:
        if self._handle is not None:
            self._interface.destroy_station_handle(self._handle)
            self._handle = None

    def _cancel_signals(self) -> None:
        for sig in (self._scan_signal, self._connect_signal):
            if sig is not None:
                sig.cancel()
        self._scan_signal = None
        self._connect_signal = None

    # Scanning

    def scan(self) -> List[ApRecord]:
        """Scan all channels for access points.

        Returns:
            Access points found, in driver order (empty if none)

        Raises:
            NotReadyError: If station mode is not active within the ready timeout
            ScanTimeoutError: If the scan does not complete within the scan timeout
            ScanError: If the interface rejects a scan request
            OperationCancelledError: If teardown runs while waiting
        """
        self._wait_until_ready()
        scan_signal = self._scan_signal
        if scan_signal is None:
            raise NotReadyError("Scan signal not initialized")

        try:
            self._interface.scan_stop()
            scan_signal.clear()
            self._interface.set_country(self._settings.country)
            self._interface.scan_start(ScanConfig(), block=False)
        except InterfaceError as e:
            logger.error("Start scan failed: %s", e)
            raise ScanError(f"Failed to start scan: {e}") from e

        timeout = self._settings.scan_timeout
        if not scan_signal.wait(timeout):
            logger.error("Scan timeout (%.0fs)", timeout)
            raise ScanTimeoutError(f"Scan did not complete within {timeout:.0f}s")

        try:
            ap_count = self._interface.get_scan_result_count()
            if ap_count == 0:
                logger.warning("Found 0 access points")
                return []
            records = self._interface.get_scan_results(ap_count)
        except InterfaceError as e:
            logger.error("Reading scan results failed: %s", e)
            raise ScanError(f"Failed to read scan results: {e}") from e

        self._log_scan_results(records)
        return records

    def _wait_until_ready(self) -> None:
        """Poll until the interface reports station mode.

        Raises:
            NotReadyError: If not initialized or station mode never becomes active
        """
        if not self._initialized:
            raise NotReadyError("WiFi manager is not initialized")

        polls = max(1, round(self._settings.ready_timeout / self._settings.ready_poll_interval))
        for _ in range(polls):
            try:
                if self._interface.get_mode() == WifiMode.STATION:
                    return
            except InterfaceError as e:
                logger.debug("Mode query failed: %s", e)
            time.sleep(self._settings.ready_poll_interval)

        logger.error("WiFi STA mode not ready")
        raise NotReadyError(f"Station mode not active after {self._settings.ready_timeout:.1f}s")

    @staticmethod
    def _log_scan_results(records: List[ApRecord]) -> None:
        logger.info("=" * 60)
        logger.info("Found %d access points:", len(records))
        logger.info("-" * 60)
        logger.info("No. | %-32s | %-14s | Auth Mode", "SSID", "RSSI (dBm)")
        logger.info("-" * 60)
        for index, ap in enumerate(records, start=1):
            logger.info(
                "%3d | %-32s | %-4d %-9s | %s",
                index,
                ap.ssid,
                ap.rssi,
                ap.quality,
                ap.authmode.display_name,
            )
        logger.info("=" * 60)

    # Association

    def connect(self, ssid: str, password: Optional[str] = None) -> None:
        """Connect to a network and wait for an address.

        Overlong ssid/password values are truncated to the driver limits.

        Args:
            ssid: Network SSID (must not be empty)
            password: Network password (None for open networks)

        Raises:
            InvalidArgumentError: If ssid is empty
            ConnectTimeoutError: If no address is acquired within the connect timeout
            ConnectError: If the interface rejects the request
            OperationCancelledError: If teardown runs while waiting
        """
        if not ssid:
            logger.error("SSID is empty")
            raise InvalidArgumentError("SSID must not be empty")

        connect_signal = self._connect_signal
        if not self._initialized or connect_signal is None:
            raise ConnectError("WiFi manager is not initialized")

        config = StationConfig.for_network(ssid, password)
        if config.ssid != ssid or config.password != (password or ""):
            logger.warning("SSID or password truncated to driver limits")

        try:
            self._interface.set_config(config)
            logger.info("Connecting to SSID: %s (password: %s)", ssid, "***" if password else "None")
            connect_signal.clear()
            self._interface.connect()
        except InterfaceError as e:
            logger.error("Connect request failed: %s", e)
            raise ConnectError(f"Failed to connect to {ssid}: {e}") from e

        timeout = self._settings.connect_timeout
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error("Connect timeout (%.0f s)", timeout)
                raise ConnectTimeoutError(f"No address acquired from {ssid} within {timeout:.0f}s")
            if connect_signal.wait(remaining) and self._state.is_connected:
                logger.info("Connect to %s success", ssid)
                return

    def disconnect(self) -> None:
        """Disconnect from the current network.

        Raises:
            DisconnectError: If the interface rejects the request (state unchanged)
        """
        if not self._initialized:
            raise DisconnectError("WiFi manager is not initialized")
        try:
            self._interface.disconnect()
        except InterfaceError as e:
            logger.error("Disconnect failed: %s", e)
            raise DisconnectError(f"Disconnect failed: {e}") from e

        self._state.mark_disconnected()
        logger.info("WiFi disconnected")

    # Queries

    def get_address(self) -> str:
        """Get the station's IPv4 address.

        Returns:
            Address in dotted-quad form

        Raises:
            NotConnectedError: If not connected
            QueryError: If the interface cannot report its address
        """
        if not self._state.is_connected or self._handle is None:
            raise NotConnectedError()

        try:
            ip_info = self._interface.get_ip_info(self._handle)
        except InterfaceError as e:
            logger.error("Get IP info failed: %s", e)
            raise QueryError(f"Failed to read IP info: {e}") from e
        return ip_info.ip

    def read_signal(self) -> SignalReading:
        """Read the signal strength of the current access point.

        Returns:
            SignalReading distinguishing not-connected from a failed query
        """
        if not self._state.is_connected:
            logger.warning("WiFi not connected, RSSI invalid")
            return SignalReading(status=SignalStatus.NOT_CONNECTED)

        try:
            ap_info = self._interface.get_current_ap_info()
        except InterfaceError as e:
            logger.error("Get AP info failed: %s", e)
            return SignalReading(status=SignalStatus.QUERY_FAILED)

        self._state.record_rssi(ap_info.rssi)
        logger.info("Current RSSI: %d dBm (%s)", ap_info.rssi, signal_quality(ap_info.rssi))
        return SignalReading(status=SignalStatus.OK, rssi=ap_info.rssi)

    def get_signal_strength(self) -> int:
        """Get the signal strength in dBm, or -127 when unknown."""
        reading = self.read_signal()
        if reading.ok and reading.rssi is not None:
            return reading.rssi
        return UNKNOWN_RSSI

    # Event handling

    def _enqueue_event(self, event: InterfaceEvent) -> None:
        """Event sink handed to the interface; runs on the interface's thread."""
        try:
            self._events.put_nowait(event)
        except queue.Full:
            logger.error("Event queue full, dropping %s", event.event_id.value)

    def _event_loop(self) -> None:
        """Consume events until the stop marker arrives."""
        while True:
            item = self._events.get()
            if item is _STOP:
                break
            try:
                self._handle_event(item)  # type: ignore[arg-type]
            except Exception as e:
                logger.error("Error handling WiFi event: %s", e)

    def _handle_event(self, event: InterfaceEvent) -> None:
        if event.category == EventCategory.WIFI:
            if event.event_id == EventId.STA_START:
                logger.info("WiFi STA mode started, trying to connect...")
                self._request_connect()
            elif event.event_id == EventId.STA_DISCONNECTED:
                self._on_disconnected(event)
            elif event.event_id == EventId.SCAN_DONE:
                if self._scan_signal is not None:
                    self._scan_signal.set()
            else:
                logger.debug("Ignoring WiFi event: %s", event.event_id.value)
        elif event.category == EventCategory.IP and event.event_id == EventId.STA_GOT_IP:
            self._on_got_ip(event)
        else:
            logger.debug("Ignoring %s event: %s", event.category.value, event.event_id.value)

    def _on_disconnected(self, event: InterfaceEvent) -> None:
        self._state.mark_disconnected()
        reason = event.payload.get("reason", "unknown")
        if self._shutting_down:
            logger.info("WiFi disconnected during shutdown (reason: %s)", reason)
            return
        logger.warning("WiFi disconnected (reason: %s)", reason)
        self._reconnect.schedule(self._request_connect)

    def _on_got_ip(self, event: InterfaceEvent) -> None:
        address = event.payload.get("ip")
        if not address:
            logger.warning("Got IP event without an address")
            return
        logger.info("Got IP: %s", address)
        self._state.mark_connected(address)
        self._reconnect.reset()
        if self._connect_signal is not None:
            self._connect_signal.set()

    def _request_connect(self) -> None:
        """Ask the interface to connect with its stored configuration."""
        if self._shutting_down:
            return
        try:
            self._interface.connect()
        except InterfaceError as e:
            logger.error("Connect request failed: %s", e)
