"""In-memory network interface implementation for testing.

This module provides a simulated station interface that behaves like a
radio driver (asynchronous events, scan results, association) without
requiring Wi-Fi hardware.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from wifi_station.interface.network_interface import (
    ApRecord,
    CountryConfig,
    EventId,
    InterfaceError,
    IpInfo,
    NetworkInterface,
    ScanConfig,
    StationConfig,
    StationHandle,
    WifiMode,
)

logger = logging.getLogger(__name__)


class InMemoryNetworkInterface(NetworkInterface):  # pylint: disable=too-many-instance-attributes
    """Simulated station interface for tests and mock mode.

    Association succeeds when the configured SSID is visible (or listed in
    known_networks) and the password matches known_networks; otherwise a
    STA_DISCONNECTED event is emitted, as a real driver would.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        access_points: Optional[List[ApRecord]] = None,
        known_networks: Optional[Dict[str, str]] = None,
        *,
        address: str = "192.168.4.2",
        associate_delay: float = 0.0,
        scan_delay: float = 0.0,
        auto_associate: bool = True,
        emit_scan_done: bool = True,
        name: str = "wlan0",
    ) -> None:
        """Initialize the in-memory interface.

        Args:
            access_points: Access points visible to scans
            known_networks: Mapping of SSID to password accepted on association
            address: IPv4 address handed out on association
            associate_delay: Simulated association delay (seconds)
            scan_delay: Simulated scan duration (seconds)
            auto_associate: If False, connect requests are recorded but never complete
            emit_scan_done: If False, scans never report completion
            name: Interface name
        """
        super().__init__()
        self._access_points: List[ApRecord] = list(access_points or [])
        self._known_networks: Dict[str, str] = dict(known_networks or {})
        self._address = address
        self._associate_delay = associate_delay
        self._scan_delay = scan_delay
        self._auto_associate = auto_associate
        self._emit_scan_done = emit_scan_done
        self._name = name

        self._initialized = False
        self._up = False
        self._started = False
        self._mode = WifiMode.NULL
        self._config = StationConfig()
        self._country: Optional[CountryConfig] = None
        self._handles: List[StationHandle] = []
        self._connected_ssid: Optional[str] = None
        self._scan_results: List[ApRecord] = []
        self._scanning = False
        self._failures: Dict[str, InterfaceError] = {}
        self._timers: List[threading.Timer] = []
        self._lock = threading.RLock()

        self.connect_requests = 0
        self.disconnect_requests = 0
        self.scan_requests = 0

    # Failure injection

    def inject_failure(self, operation: str, code: str = "ERR_FAIL") -> None:
        """Make an operation raise InterfaceError until cleared (for testing).

        Args:
            operation: Method name, e.g. "connect" or "get_ip_info"
            code: Error code carried by the raised InterfaceError
        """
        with self._lock:
            self._failures[operation] = InterfaceError(f"{operation} failed ({code})", code=code)

    def clear_failure(self, operation: str) -> None:
        """Remove an injected failure."""
        with self._lock:
            self._failures.pop(operation, None)

    def _check_failure(self, operation: str) -> None:
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def _require_started(self) -> None:
        if not self._started:
            raise InterfaceError("Interface not started", code="ERR_WIFI_NOT_STARTED")

    # Lifecycle

    def init(self) -> None:
        with self._lock:
            self._check_failure("init")
            self._initialized = True
            logger.info("InMemoryNetworkInterface initialized - no hardware required")

    def deinit(self) -> None:
        with self._lock:
            self._check_failure("deinit")
            if self._started:
                raise InterfaceError("Interface still started", code="ERR_WIFI_NOT_STOPPED")
            self._cancel_timers()
            self._initialized = False
            self._mode = WifiMode.NULL

    def bring_up(self) -> None:
        with self._lock:
            self._check_failure("bring_up")
            self._up = True

    def create_station_handle(self) -> StationHandle:
        with self._lock:
            self._check_failure("create_station_handle")
            if not self._up:
                raise InterfaceError("Network subsystem not up", code="ERR_INVALID_STATE")
            handle = StationHandle(name=self._name)
            self._handles.append(handle)
            return handle

    def destroy_station_handle(self, handle: StationHandle) -> None:
        with self._lock:
            self._check_failure("destroy_station_handle")
            if handle not in self._handles:
                raise InterfaceError(f"Unknown handle: {handle.name}", code="ERR_INVALID_ARG")
            self._handles.remove(handle)

    def set_mode(self, mode: WifiMode) -> None:
        with self._lock:
            self._check_failure("set_mode")
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
            self._mode = mode

    def get_mode(self) -> WifiMode:
        with self._lock:
            self._check_failure("get_mode")
            return self._mode

    def set_config(self, config: StationConfig) -> None:
        with self._lock:
            self._check_failure("set_config")
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
            self._config = config

    def get_config(self) -> StationConfig:
        with self._lock:
            return self._config

    def start(self) -> None:
        with self._lock:
            self._check_failure("start")
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
            self._started = True
            logger.info("Interface %s started (mode=%s)", self._name, self._mode.value)

        self._emit(EventId.STA_START)

    def stop(self) -> None:
        with self._lock:
            self._check_failure("stop")
            was_connected = self._connected_ssid is not None
            self._connected_ssid = None
            self._scanning = False
            self._started = False
            self._cancel_timers()
            logger.info("Interface %s stopped", self._name)

        if was_connected:
            self._emit(EventId.STA_DISCONNECTED, {"reason": "assoc_leave"})
        self._emit(EventId.STA_STOP)

    # Association

    def connect(self) -> None:
        with self._lock:
            self._check_failure("connect")
            self._require_started()
            self.connect_requests += 1
            config = self._config
            logger.debug("Connect request #%d (ssid=%r)", self.connect_requests, config.ssid)

            if not self._auto_associate or not config.ssid:
                return

            if self._associate_delay > 0:
                timer = threading.Timer(
                    self._associate_delay, self._complete_association, args=(config,)
                )
                timer.daemon = True
                self._timers.append(timer)
                timer.start()
                return

        self._complete_association(config)

    def _complete_association(self, config: StationConfig) -> None:
        """Finish an association attempt for the given configuration."""
        with self._lock:
            if not self._started:
                return
            visible = any(ap.ssid == config.ssid for ap in self._access_points)
            expected = self._known_networks.get(config.ssid)
            if not visible and expected is None:
                reason = "no_ap_found"
            elif expected is not None and expected != config.password:
                reason = "auth_fail"
            else:
                reason = None
                self._connected_ssid = config.ssid

        if reason is not None:
            logger.info("Association with %r failed: %s", config.ssid, reason)
            self._emit(EventId.STA_DISCONNECTED, {"ssid": config.ssid, "reason": reason})
            return

        logger.info("Associated with %r", config.ssid)
        self._emit(EventId.STA_CONNECTED, {"ssid": config.ssid})
        self._emit(EventId.STA_GOT_IP, self._ip_payload())

    def disconnect(self) -> None:
        with self._lock:
            self._check_failure("disconnect")
            self._require_started()
            self.disconnect_requests += 1
            was_connected = self._connected_ssid is not None
            self._connected_ssid = None

        if was_connected:
            self._emit(EventId.STA_DISCONNECTED, {"reason": "assoc_leave"})

    def is_associated(self) -> bool:
        """Check whether the simulated station is associated."""
        with self._lock:
            return self._connected_ssid is not None

    # Scanning

    def set_country(self, country: CountryConfig) -> None:
        with self._lock:
            self._check_failure("set_country")
            self._country = country

    def get_country(self) -> Optional[CountryConfig]:
        """Get the last applied regulatory configuration."""
        with self._lock:
            return self._country

    def scan_start(self, config: ScanConfig, block: bool = False) -> None:
        with self._lock:
            self._check_failure("scan_start")
            self._require_started()
            self.scan_requests += 1
            self._scanning = True
            logger.debug("Scan #%d started (channel=%d)", self.scan_requests, config.channel)

            if self._scan_delay > 0 and not block:
                timer = threading.Timer(self._scan_delay, self._complete_scan)
                timer.daemon = True
                self._timers.append(timer)
                timer.start()
                return

        self._complete_scan()

    def _complete_scan(self) -> None:
        with self._lock:
            if not self._scanning:
                return
            self._scanning = False
            self._scan_results = list(self._access_points)
            emit = self._emit_scan_done

        if emit:
            self._emit(EventId.SCAN_DONE, {"number": len(self._scan_results)})

    def scan_stop(self) -> None:
        with self._lock:
            self._check_failure("scan_stop")
            self._scanning = False

    def get_scan_result_count(self) -> int:
        with self._lock:
            self._check_failure("get_scan_result_count")
            return len(self._scan_results)

    def get_scan_results(self, max_records: int) -> List[ApRecord]:
        with self._lock:
            self._check_failure("get_scan_results")
            records = self._scan_results[:max_records]
            self._scan_results = []
            return records

    def set_access_points(self, access_points: List[ApRecord]) -> None:
        """Replace the simulated access points (for testing)."""
        with self._lock:
            self._access_points = list(access_points)

    # Queries

    def get_current_ap_info(self) -> ApRecord:
        with self._lock:
            self._check_failure("get_current_ap_info")
            if self._connected_ssid is None:
                raise InterfaceError("Station not associated", code="ERR_WIFI_NOT_CONNECT")
            for ap in self._access_points:
                if ap.ssid == self._connected_ssid:
                    return ap
            return ApRecord(ssid=self._connected_ssid, bssid="00:00:00:00:00:00", rssi=-60)

    def get_ip_info(self, handle: StationHandle) -> IpInfo:
        with self._lock:
            self._check_failure("get_ip_info")
            if handle not in self._handles:
                raise InterfaceError(f"Unknown handle: {handle.name}", code="ERR_INVALID_ARG")
            if self._connected_ssid is None:
                return IpInfo(ip="0.0.0.0", netmask="0.0.0.0")
            return IpInfo(ip=self._address, gateway=self._gateway())

    def _gateway(self) -> str:
        return ".".join(self._address.split(".")[:3] + ["1"])

    def _ip_payload(self) -> Dict[str, Any]:
        return {"ip": self._address, "netmask": "255.255.255.0", "gateway": self._gateway()}

    def _cancel_timers(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    # Simulation helpers for testing

    def simulate_got_ip(self, address: Optional[str] = None) -> None:
        """Simulate DHCP completing on the current configuration (for testing)."""
        with self._lock:
            if address is not None:
                self._address = address
            self._connected_ssid = self._config.ssid or "simulated"
            payload = self._ip_payload()
        self._emit(EventId.STA_GOT_IP, payload)

    def simulate_link_loss(self, reason: str = "beacon_timeout") -> None:
        """Simulate the access point going away (for testing)."""
        with self._lock:
            self._connected_ssid = None
        self._emit(EventId.STA_DISCONNECTED, {"reason": reason})

    def simulate_scan_done(self) -> None:
        """Simulate a scan-complete notification (for testing)."""
        self._emit(EventId.SCAN_DONE, {"number": 0})

    def simulate_event(self, event_id: EventId, payload: Optional[Dict[str, Any]] = None) -> None:
        """Deliver an arbitrary event to subscribers (for testing)."""
        self._emit(event_id, payload)
