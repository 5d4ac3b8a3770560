"""Station interface backed by NetworkManager (nmcli).

NetworkManager has no event feed comparable to a radio driver, so this
implementation synthesizes one: scans and association run on worker
threads that emit SCAN_DONE / STA_GOT_IP / STA_DISCONNECTED when they
finish, and a link monitor thread polls the device state to report link
loss and address changes.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import subprocess
import threading
from typing import List, Optional, Set, Tuple

from wifi_station.interface.network_interface import (
    ApRecord,
    AuthMode,
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

# nmcli terse output escapes ':' inside fields as '\:'
_FIELD_SEPARATOR = re.compile(r"(?<!\\):")


def split_terse_line(line: str) -> List[str]:
    """Split a line of `nmcli -t` output into unescaped fields."""
    return [part.replace("\\:", ":").replace("\\\\", "\\") for part in _FIELD_SEPARATOR.split(line)]


def quality_to_dbm(quality: int) -> int:
    """Convert NetworkManager's 0-100 signal quality to an approximate dBm value."""
    quality = max(0, min(100, quality))
    return quality // 2 - 100


def parse_security(security: str) -> AuthMode:
    """Map an nmcli SECURITY field to an AuthMode."""
    flags = security.split()
    if not flags or security.strip() == "--":
        return AuthMode.OPEN
    if "WPA3" in flags:
        return AuthMode.WPA2_WPA3_PSK if "WPA2" in flags else AuthMode.WPA3_PSK
    if "WPA2" in flags:
        return AuthMode.WPA_WPA2_PSK if "WPA1" in flags else AuthMode.WPA2_PSK
    if "WPA1" in flags:
        return AuthMode.WPA_PSK
    if "WEP" in flags:
        return AuthMode.WEP
    return AuthMode.UNKNOWN


class NmcliNetworkInterface(NetworkInterface):  # pylint: disable=too-many-instance-attributes
    """Manages a Wi-Fi device through NetworkManager's nmcli."""

    LIST_FIELDS = "IN-USE,SSID,BSSID,SIGNAL,SECURITY,CHAN"

    def __init__(
        self,
        interface_name: str = "wlan0",
        monitor_interval: float = 2.0,
        command_timeout: float = 30.0,
    ) -> None:
        """Initialize the nmcli interface.

        Args:
            interface_name: Wi-Fi device name
            monitor_interval: Seconds between link state polls
            command_timeout: Timeout for connect/scan commands
        """
        super().__init__()
        self._interface_name = interface_name
        self._monitor_interval = monitor_interval
        self._command_timeout = command_timeout

        self._initialized = False
        self._started = False
        self._mode = WifiMode.NULL
        self._config = StationConfig()
        self._country: Optional[CountryConfig] = None
        self._handles: Set[StationHandle] = set()
        self._scan_results: List[ApRecord] = []
        self._scan_generation = 0
        self._link_up = False
        self._link_address: Optional[str] = None

        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def _run(self, args: List[str], timeout: float = 10.0) -> str:
        """Run an nmcli command and return its stdout.

        Raises:
            InterfaceError: If the command fails, times out or nmcli is missing
        """
        try:
            result = subprocess.run(
                ["nmcli", *args],
                check=True,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return result.stdout
        except subprocess.TimeoutExpired as e:
            raise InterfaceError(f"nmcli {args[0]} timed out", code="ERR_TIMEOUT") from e
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr.strip() if e.stderr else str(e)
            raise InterfaceError(f"nmcli {' '.join(args[:3])} failed: {error_msg}") from e
        except FileNotFoundError as e:
            raise InterfaceError("NetworkManager (nmcli) is not available", code="ERR_NOT_SUPPORTED") from e

    # Lifecycle

    def init(self) -> None:
        self._run(["--version"], timeout=5)
        logger.debug("nmcli is available")
        with self._lock:
            self._initialized = True

    def deinit(self) -> None:
        with self._lock:
            if self._started:
                raise InterfaceError("Interface still started", code="ERR_WIFI_NOT_STOPPED")
            self._initialized = False
            self._mode = WifiMode.NULL
            self._scan_results = []

    def bring_up(self) -> None:
        self._run(["radio", "wifi", "on"])

    def create_station_handle(self) -> StationHandle:
        output = self._run(["-t", "-f", "DEVICE,TYPE", "device", "status"])
        for line in output.strip().split("\n"):
            fields = split_terse_line(line)
            if len(fields) >= 2 and fields[0] == self._interface_name:
                if fields[1] != "wifi":
                    raise InterfaceError(
                        f"{self._interface_name} is not a Wi-Fi device ({fields[1]})",
                        code="ERR_INVALID_ARG",
                    )
                handle = StationHandle(name=self._interface_name)
                with self._lock:
                    self._handles.add(handle)
                return handle
        raise InterfaceError(f"Device {self._interface_name} not found", code="ERR_NOT_FOUND")

    def destroy_station_handle(self, handle: StationHandle) -> None:
        with self._lock:
            if handle not in self._handles:
                raise InterfaceError(f"Unknown handle: {handle.name}", code="ERR_INVALID_ARG")
            self._handles.discard(handle)

    def set_mode(self, mode: WifiMode) -> None:
        if mode == WifiMode.ACCESS_POINT:
            raise InterfaceError("Access point mode is not supported", code="ERR_NOT_SUPPORTED")
        with self._lock:
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
            self._mode = mode

    def get_mode(self) -> WifiMode:
        with self._lock:
            return self._mode

    def set_config(self, config: StationConfig) -> None:
        with self._lock:
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
            self._config = config

    def get_config(self) -> StationConfig:
        with self._lock:
            return self._config

    def start(self) -> None:
        with self._lock:
            if not self._initialized:
                raise InterfaceError("Driver not initialized", code="ERR_WIFI_NOT_INIT")
        self._run(["device", "set", self._interface_name, "managed", "yes"])

        with self._lock:
            self._started = True
            self._stop_event.clear()
            self._monitor_thread = threading.Thread(
                target=self._monitor_loop, daemon=True, name="NmcliLinkMonitor"
            )
            self._monitor_thread.start()

        logger.info("Interface %s started", self._interface_name)
        self._spawn(self._emit, EventId.STA_START)

    def stop(self) -> None:
        with self._lock:
            self._started = False
            self._stop_event.set()
            monitor = self._monitor_thread
            self._monitor_thread = None
            was_up = self._link_up
            self._link_up = False
            self._link_address = None

        # Wait for thread to finish (outside lock)
        if monitor is not None:
            monitor.join(timeout=self._monitor_interval + 1.0)

        logger.info("Interface %s stopped", self._interface_name)
        if was_up:
            self._emit(EventId.STA_DISCONNECTED, {"reason": "assoc_leave"})
        self._emit(EventId.STA_STOP)

    # Association

    def connect(self) -> None:
        with self._lock:
            if not self._started:
                raise InterfaceError("Interface not started", code="ERR_WIFI_NOT_STARTED")
            config = self._config

        if not config.ssid:
            logger.debug("No SSID configured; connect request ignored")
            return

        self._spawn(self._connect_worker, config)

    def _connect_worker(self, config: StationConfig) -> None:
        """Run an association attempt and report the outcome as events."""
        cmd = ["device", "wifi", "connect", config.ssid]
        if config.password:
            cmd.extend(["password", config.password])
        cmd.extend(["ifname", self._interface_name])

        logger.info("Connecting to WiFi network: %s", config.ssid)
        try:
            self._run(cmd, timeout=self._command_timeout)
        except InterfaceError as e:
            logger.error("Failed to connect to %s: %s", config.ssid, e)
            self._emit(EventId.STA_DISCONNECTED, {"ssid": config.ssid, "reason": e.code})
            return

        self._emit(EventId.STA_CONNECTED, {"ssid": config.ssid})
        # Report the address even when it is unchanged from a previous association
        with self._lock:
            self._link_address = None
        try:
            self._update_link_state()
        except InterfaceError as e:
            logger.error("Failed to read link state after connecting: %s", e)

    def disconnect(self) -> None:
        with self._lock:
            if not self._started:
                raise InterfaceError("Interface not started", code="ERR_WIFI_NOT_STARTED")
        connected, _, _ = self._query_device()
        if not connected:
            # nmcli refuses to disconnect an inactive device; nothing to do
            logger.debug("%s is not connected; disconnect is a no-op", self._interface_name)
        else:
            self._run(["device", "disconnect", self._interface_name])
        self._update_link_state(reason="assoc_leave")

    # Scanning

    def set_country(self, country: CountryConfig) -> None:
        # NetworkManager follows the kernel regulatory domain; record only.
        with self._lock:
            self._country = country
        logger.debug(
            "Country %s (channels %d-%d) recorded",
            country.code,
            country.first_channel,
            country.first_channel + country.channel_count - 1,
        )

    def scan_start(self, config: ScanConfig, block: bool = False) -> None:
        with self._lock:
            if not self._started:
                raise InterfaceError("Interface not started", code="ERR_WIFI_NOT_STARTED")
            self._scan_generation += 1
            generation = self._scan_generation

        if block:
            self._scan_worker(config, generation)
        else:
            self._spawn(self._scan_worker, config, generation)

    def _scan_worker(self, config: ScanConfig, generation: int) -> None:
        # Rescan failures are not fatal; the cached list is still returned
        try:
            rescan = subprocess.run(
                ["nmcli", "device", "wifi", "rescan", "ifname", self._interface_name],
                check=False,
                capture_output=True,
                text=True,
                timeout=self._command_timeout,
            )
            if rescan.returncode != 0:
                logger.debug("nmcli rescan returned %d: %s", rescan.returncode, rescan.stderr)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning("nmcli rescan failed: %s", e)

        try:
            records = self._list_access_points(config)
        except InterfaceError as e:
            logger.error("WiFi scan failed: %s", e)
            records = []

        with self._lock:
            if generation != self._scan_generation:
                logger.debug("Discarding results of stopped scan")
                return
            self._scan_results = records

        self._emit(EventId.SCAN_DONE, {"number": len(records)})

    def _list_access_points(self, config: Optional[ScanConfig] = None) -> List[ApRecord]:
        output = self._run(
            ["-t", "-f", self.LIST_FIELDS, "device", "wifi", "list", "ifname", self._interface_name],
            timeout=self._command_timeout,
        )
        records = []
        for line in output.strip().split("\n"):
            if not line:
                continue
            parsed = self._parse_list_line(line)
            if parsed is None:
                continue
            _, record = parsed
            if config is not None:
                if not record.ssid and not config.show_hidden:
                    continue
                if config.ssid and record.ssid != config.ssid:
                    continue
                if config.channel and record.channel != config.channel:
                    continue
            records.append(record)
        return records

    @staticmethod
    def _parse_list_line(line: str) -> Optional[Tuple[bool, ApRecord]]:
        fields = split_terse_line(line)
        if len(fields) < 6:
            return None
        in_use, ssid, bssid, signal_str, security, channel_str = fields[:6]
        try:
            quality = int(signal_str)
        except ValueError:
            quality = 0
        try:
            channel = int(channel_str)
        except ValueError:
            channel = 0
        record = ApRecord(
            ssid="" if ssid == "--" else ssid,
            bssid=bssid,
            rssi=quality_to_dbm(quality),
            authmode=parse_security(security),
            channel=channel,
        )
        return in_use.strip() == "*", record

    def scan_stop(self) -> None:
        with self._lock:
            self._scan_generation += 1

    def get_scan_result_count(self) -> int:
        with self._lock:
            return len(self._scan_results)

    def get_scan_results(self, max_records: int) -> List[ApRecord]:
        with self._lock:
            records = self._scan_results[:max_records]
            self._scan_results = []
            return records

    # Queries

    def get_current_ap_info(self) -> ApRecord:
        output = self._run(
            ["-t", "-f", self.LIST_FIELDS, "device", "wifi", "list", "ifname", self._interface_name]
        )
        for line in output.strip().split("\n"):
            parsed = self._parse_list_line(line) if line else None
            if parsed is not None and parsed[0]:
                return parsed[1]
        raise InterfaceError("Station not associated", code="ERR_WIFI_NOT_CONNECT")

    def get_ip_info(self, handle: StationHandle) -> IpInfo:
        with self._lock:
            if handle not in self._handles:
                raise InterfaceError(f"Unknown handle: {handle.name}", code="ERR_INVALID_ARG")
        _, address, gateway = self._query_device()
        if address is None:
            return IpInfo(ip="0.0.0.0", netmask="0.0.0.0")
        interface = ipaddress.IPv4Interface(address)
        return IpInfo(
            ip=str(interface.ip),
            netmask=str(interface.netmask),
            gateway=gateway or "0.0.0.0",
        )

    def _query_device(self) -> Tuple[bool, Optional[str], Optional[str]]:
        """Query device state.

        Returns:
            Tuple of (connected, "address/prefix" or None, gateway or None)
        """
        output = self._run(
            ["-t", "-f", "GENERAL.STATE,IP4.ADDRESS,IP4.GATEWAY", "device", "show", self._interface_name]
        )
        connected = False
        address = None
        gateway = None
        for line in output.strip().split("\n"):
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            value = value.strip()
            if key == "GENERAL.STATE":
                # e.g. "100 (connected)"
                connected = value.startswith("100")
            elif key.startswith("IP4.ADDRESS") and address is None and value:
                address = value
            elif key == "IP4.GATEWAY" and value and value != "--":
                gateway = value
        return connected, address, gateway

    # Link monitoring

    def _monitor_loop(self) -> None:
        """Background loop that polls the device for link changes."""
        while not self._stop_event.wait(timeout=self._monitor_interval):
            try:
                self._update_link_state()
            except InterfaceError as e:
                logger.debug("Link state poll failed: %s", e)

    def _update_link_state(self, reason: str = "link_lost") -> None:
        """Compare device state with the last known state and emit changes."""
        connected, address, gateway = self._query_device()
        ip = str(ipaddress.IPv4Interface(address).ip) if connected and address else None

        with self._lock:
            was_up = self._link_up
            old_ip = self._link_address
            self._link_up = ip is not None
            self._link_address = ip

        if ip is not None and ip != old_ip:
            interface = ipaddress.IPv4Interface(address)
            logger.info("Link up on %s: %s", self._interface_name, ip)
            self._emit(
                EventId.STA_GOT_IP,
                {"ip": ip, "netmask": str(interface.netmask), "gateway": gateway or "0.0.0.0"},
            )
        elif ip is None and was_up:
            logger.warning("Link down on %s (%s)", self._interface_name, reason)
            self._emit(EventId.STA_DISCONNECTED, {"reason": reason})

    @staticmethod
    def _spawn(target, *args) -> threading.Thread:  # type: ignore[no-untyped-def]
        thread = threading.Thread(target=target, args=args, daemon=True, name="NmcliWorker")
        thread.start()
        return thread
