"""Tests for ConnectivityManager against the in-memory interface."""

import logging
import threading
import time
from typing import List

import pytest

from wifi_station.connectivity import (
    UNKNOWN_RSSI,
    WIFI_NAMESPACE,
    ConnectError,
    ConnectTimeoutError,
    ConnectivityManager,
    DisconnectError,
    InitError,
    InvalidArgumentError,
    ManagerSettings,
    NotConnectedError,
    NotReadyError,
    OperationCancelledError,
    QueryError,
    ScanError,
    ScanTimeoutError,
    SignalStatus,
    TeardownError,
    WifiTimeoutError,
)
from wifi_station.interface import (
    ApRecord,
    EventCategory,
    EventId,
    InMemoryNetworkInterface,
    StationConfig,
    WifiMode,
)
from wifi_station.storage import InMemorySettingsStore
from tests.test_harness import (
    wait_connect_requests,
    wait_connected,
    wait_disconnected,
    wait_for,
)


def _make_manager(interface: InMemoryNetworkInterface, settings: ManagerSettings) -> ConnectivityManager:
    mgr = ConnectivityManager(interface=interface, store=InMemorySettingsStore(), settings=settings)
    mgr.init()
    return mgr


# Tests - Settings


def test_default_settings_match_firmware() -> None:
    """Test default bounds: 10s scan, 30s connect, 3s reconnect, 100ms ready poll."""
    settings = ManagerSettings()
    assert settings.scan_timeout == 10.0
    assert settings.connect_timeout == 30.0
    assert settings.reconnect_delay == 3.0
    assert settings.ready_poll_interval == 0.1
    assert settings.ready_timeout == 3.0
    assert settings.max_reconnect_attempts is None
    assert settings.country.code == "CN"
    assert settings.country.channel_count == 13


# Tests - Init


def test_init_configures_station(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test init leaves the interface started in station mode with a permissive config."""
    assert manager.is_initialized()
    assert interface.get_mode() == WifiMode.STATION

    config = interface.get_config()
    assert config.ssid == ""
    assert config.password == ""
    assert config.pmf.capable is True
    assert config.pmf.required is False


def test_init_erases_wifi_namespace(
    interface: InMemoryNetworkInterface, fast_settings: ManagerSettings
) -> None:
    """Test stale credentials in the settings store are erased on init."""
    store = InMemorySettingsStore()
    store.init()
    store.set(WIFI_NAMESPACE, "ssid", "OldNetwork")
    store.set("other", "key", "kept")

    mgr = ConnectivityManager(interface=interface, store=store, settings=fast_settings)
    mgr.init()
    try:
        assert store.get(WIFI_NAMESPACE, "ssid") is None
        assert store.get("other", "key") == "kept"
    finally:
        mgr.teardown()


def test_init_twice_raises(manager: ConnectivityManager) -> None:
    """Test a second init is rejected."""
    with pytest.raises(InitError):
        manager.init()


def test_init_failure_wraps_interface_error(
    interface: InMemoryNetworkInterface, fast_settings: ManagerSettings
) -> None:
    """Test a driver failure during init surfaces as InitError."""
    interface.inject_failure("init", code="ERR_NO_MEM")
    mgr = ConnectivityManager(interface=interface, store=InMemorySettingsStore(), settings=fast_settings)

    with pytest.raises(InitError, match="init driver"):
        mgr.init()

    assert not mgr.is_initialized()


def test_start_triggers_exactly_one_connect_request(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test the station-started event issues one connect request with the current config."""
    assert wait_connect_requests(interface, 1)
    time.sleep(0.05)
    assert interface.connect_requests == 1
    assert not manager.status().is_connected


def test_start_event_connects_with_preset_config(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test a station-started event uses whatever configuration is already set."""
    assert wait_connect_requests(interface, 1)
    interface.set_config(StationConfig.for_network("HomeNet", "secret123"))

    interface.simulate_event(EventId.STA_START)

    assert wait_connected(manager)
    assert interface.connect_requests == 2


# Tests - Scan


def test_scan_returns_access_points(
    manager: ConnectivityManager,
    interface: InMemoryNetworkInterface,
    access_points: List[ApRecord],
) -> None:
    """Test scan returns every access point in driver order."""
    records = manager.scan()

    assert [ap.ssid for ap in records] == [ap.ssid for ap in access_points]
    assert records[0].rssi == -45
    assert interface.scan_requests == 1


def test_scan_applies_country(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface, fast_settings: ManagerSettings
) -> None:
    """Test scan applies the regulatory domain before starting."""
    manager.scan()
    assert interface.get_country() == fast_settings.country


def test_scan_logs_table(manager: ConnectivityManager, caplog: pytest.LogCaptureFixture) -> None:
    """Test scan results are logged with quality labels and auth mode names."""
    with caplog.at_level(logging.INFO, logger="wifi_station.connectivity.manager"):
        manager.scan()

    text = caplog.text
    assert "Found 3 access points" in text
    assert "Excellent" in text
    assert "Fair" in text
    assert "Weak" in text
    assert "WPA2-PSK" in text
    assert "Excellent | WPA2-PSK" in text
    assert "Fair" + " " * 5 + " | Open" in text


def test_scan_zero_results(fast_settings: ManagerSettings) -> None:
    """Test an empty scan returns an empty list rather than an error."""
    mgr = _make_manager(InMemoryNetworkInterface(access_points=[]), fast_settings)
    try:
        assert mgr.scan() == []
    finally:
        mgr.teardown()


def test_scan_timeout_bound(fast_settings: ManagerSettings) -> None:
    """Test scan times out near scan_timeout when completion never arrives."""
    mgr = _make_manager(InMemoryNetworkInterface(emit_scan_done=False), fast_settings)
    try:
        start = time.monotonic()
        with pytest.raises(ScanTimeoutError):
            mgr.scan()
        elapsed = time.monotonic() - start
    finally:
        mgr.teardown()

    assert elapsed >= fast_settings.scan_timeout * 0.95
    assert elapsed < fast_settings.scan_timeout + 0.5


def test_scan_timeout_is_timeout_error() -> None:
    """Test scan timeouts can be caught as the builtin TimeoutError."""
    assert issubclass(ScanTimeoutError, TimeoutError)
    assert issubclass(ScanTimeoutError, ScanError)
    assert issubclass(ConnectTimeoutError, WifiTimeoutError)


def test_scan_ignores_stale_completions(fast_settings: ManagerSettings) -> None:
    """Test completions delivered before a scan do not satisfy it."""
    interface = InMemoryNetworkInterface(emit_scan_done=False)
    mgr = _make_manager(interface, fast_settings)
    try:
        for _ in range(5):
            interface.simulate_scan_done()
        time.sleep(0.05)

        with pytest.raises(ScanTimeoutError):
            mgr.scan()
    finally:
        mgr.teardown()


def test_scan_with_delayed_completion(fast_settings: ManagerSettings, access_points: List[ApRecord]) -> None:
    """Test scan waits for an asynchronous completion."""
    mgr = _make_manager(InMemoryNetworkInterface(access_points=access_points, scan_delay=0.05), fast_settings)
    try:
        assert len(mgr.scan()) == 3
    finally:
        mgr.teardown()


def test_scan_not_initialized(interface: InMemoryNetworkInterface, fast_settings: ManagerSettings) -> None:
    """Test scan before init is rejected as not ready."""
    mgr = ConnectivityManager(interface=interface, store=InMemorySettingsStore(), settings=fast_settings)
    with pytest.raises(NotReadyError):
        mgr.scan()


def test_scan_not_ready_when_mode_query_fails(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test scan gives up when station mode never becomes active."""
    interface.inject_failure("get_mode")

    with pytest.raises(NotReadyError):
        manager.scan()

    assert interface.scan_requests == 0


def test_scan_start_failure(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test a rejected scan request raises ScanError."""
    interface.inject_failure("scan_start")

    with pytest.raises(ScanError) as excinfo:
        manager.scan()

    assert not isinstance(excinfo.value, ScanTimeoutError)


# Tests - Connect


def test_connect_success(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test connect returns once an address is acquired."""
    manager.connect("HomeNet", "secret123")

    status = manager.status()
    assert status.is_connected
    assert status.address == "192.168.4.2"
    assert interface.is_associated()
    assert manager.get_address() == "192.168.4.2"


def test_connect_open_network(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test connect without a password stores an empty password."""
    manager.connect("CoffeeShop")

    assert manager.status().is_connected
    assert interface.get_config().password == ""


def test_connect_logs_masked_password(
    manager: ConnectivityManager, caplog: pytest.LogCaptureFixture
) -> None:
    """Test the password never appears in logs."""
    with caplog.at_level(logging.INFO, logger="wifi_station.connectivity.manager"):
        manager.connect("HomeNet", "secret123")

    assert "secret123" not in caplog.text
    assert "password: ***" in caplog.text


def test_connect_empty_ssid(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test an empty SSID is rejected before any request is issued."""
    assert wait_connect_requests(interface, 1)

    with pytest.raises(InvalidArgumentError):
        manager.connect("", "whatever")

    assert interface.connect_requests == 1
    assert interface.get_config().ssid == ""


def test_invalid_argument_is_value_error() -> None:
    """Test InvalidArgumentError can be caught as ValueError."""
    assert issubclass(InvalidArgumentError, ValueError)
    assert issubclass(InvalidArgumentError, ConnectError)


def test_connect_timeout_bound(fast_settings: ManagerSettings) -> None:
    """Test connect times out near connect_timeout when no address arrives."""
    interface = InMemoryNetworkInterface(auto_associate=False)
    mgr = _make_manager(interface, fast_settings)
    try:
        start = time.monotonic()
        with pytest.raises(ConnectTimeoutError):
            mgr.connect("Nowhere", "password")
        elapsed = time.monotonic() - start
    finally:
        mgr.teardown()

    assert elapsed >= fast_settings.connect_timeout * 0.95
    assert elapsed < fast_settings.connect_timeout + 0.5
    assert interface.connect_requests == 2


def test_connect_wrong_password_times_out(manager: ConnectivityManager) -> None:
    """Test an authentication failure ends in a timeout, not a success."""
    with pytest.raises(ConnectTimeoutError):
        manager.connect("HomeNet", "wrong")

    assert not manager.status().is_connected


def test_connect_request_failure(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test a rejected connect request raises ConnectError."""
    interface.inject_failure("connect", code="ERR_WIFI_CONN")

    with pytest.raises(ConnectError) as excinfo:
        manager.connect("HomeNet", "secret123")

    assert not isinstance(excinfo.value, ConnectTimeoutError)


def test_connect_truncates_long_ssid(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test an overlong SSID is truncated to 32 bytes."""
    with pytest.raises(ConnectTimeoutError):
        manager.connect("x" * 40)

    assert interface.get_config().ssid == "x" * 32


def test_connect_waits_for_fresh_address(fast_settings: ManagerSettings, access_points: List[ApRecord]) -> None:
    """Test an address acquired before the request does not satisfy connect."""
    interface = InMemoryNetworkInterface(access_points=access_points, auto_associate=False)
    mgr = _make_manager(interface, fast_settings)
    try:
        interface.simulate_got_ip()
        assert wait_connected(mgr)

        with pytest.raises(ConnectTimeoutError):
            mgr.connect("HomeNet")
    finally:
        mgr.teardown()


def test_connect_with_delayed_association(fast_settings: ManagerSettings, access_points: List[ApRecord]) -> None:
    """Test connect waits for an asynchronous association."""
    interface = InMemoryNetworkInterface(
        access_points=access_points,
        known_networks={"HomeNet": "secret123"},
        associate_delay=0.1,
    )
    mgr = _make_manager(interface, fast_settings)
    try:
        mgr.connect("HomeNet", "secret123")
        assert mgr.status().is_connected
    finally:
        mgr.teardown()


def test_connect_not_initialized(interface: InMemoryNetworkInterface) -> None:
    """Test connect before init raises ConnectError."""
    mgr = ConnectivityManager(interface=interface, store=InMemorySettingsStore())
    with pytest.raises(ConnectError):
        mgr.connect("HomeNet", "secret123")


# Tests - Reconnect


def test_link_loss_clears_state_then_reconnects_once(access_points: List[ApRecord]) -> None:
    """Test a disconnect clears state at once and reconnects after the delay."""
    settings = ManagerSettings(ready_poll_interval=0.01, connect_timeout=1.0, reconnect_delay=0.3)
    interface = InMemoryNetworkInterface(
        access_points=access_points,
        known_networks={"HomeNet": "secret123"},
        auto_associate=True,
    )
    mgr = _make_manager(interface, settings)
    try:
        mgr.connect("HomeNet", "secret123")
        requests_before = interface.connect_requests

        interface.simulate_link_loss()

        assert wait_disconnected(mgr, timeout=0.2)
        assert interface.connect_requests == requests_before
        assert wait_for(mgr.reconnect_policy.is_pending, timeout=0.2)

        assert wait_connected(mgr, timeout=1.0)
        assert interface.connect_requests == requests_before + 1
        assert mgr.reconnect_policy.attempts == 0
    finally:
        mgr.teardown()


def test_reconnect_without_association_issues_one_request(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface, fast_settings: ManagerSettings
) -> None:
    """Test a disconnect event issues exactly one connect request after the delay."""
    assert wait_connect_requests(interface, 1)

    interface.simulate_event(EventId.STA_DISCONNECTED, {"reason": "beacon_timeout"})

    assert wait_connect_requests(interface, 2)
    time.sleep(fast_settings.reconnect_delay * 3)
    assert interface.connect_requests == 2


def test_explicit_disconnect_still_reconnects(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test a deliberate disconnect is followed by an automatic reconnect."""
    manager.connect("HomeNet", "secret123")

    manager.disconnect()

    assert not manager.status().is_connected
    assert interface.disconnect_requests == 1
    assert wait_connected(manager)


def test_reconnect_attempts_are_capped(access_points: List[ApRecord]) -> None:
    """Test max_reconnect_attempts stops retrying."""
    settings = ManagerSettings(ready_poll_interval=0.01, reconnect_delay=0.02, max_reconnect_attempts=2)
    interface = InMemoryNetworkInterface(access_points=access_points, known_networks={"HomeNet": "secret123"})
    mgr = _make_manager(interface, settings)
    try:
        assert wait_connect_requests(interface, 1)
        interface.set_config(StationConfig.for_network("HomeNet", "wrong"))

        interface.simulate_link_loss()

        assert wait_for(lambda: mgr.reconnect_policy.exhausted)
        time.sleep(0.1)
        assert interface.connect_requests == 3
    finally:
        mgr.teardown()


# Tests - Disconnect


def test_disconnect_failure_keeps_state(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test a rejected disconnect raises and leaves the connection intact."""
    manager.connect("HomeNet", "secret123")
    interface.inject_failure("disconnect")

    with pytest.raises(DisconnectError):
        manager.disconnect()

    assert manager.status().is_connected

    interface.clear_failure("disconnect")


# Tests - Queries


def test_get_address_not_connected(manager: ConnectivityManager) -> None:
    """Test get_address without a connection."""
    with pytest.raises(NotConnectedError) as excinfo:
        manager.get_address()

    assert excinfo.value.display == "Not connected"


def test_get_address_query_failure(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test get_address when the interface cannot report its address."""
    manager.connect("HomeNet", "secret123")
    interface.inject_failure("get_ip_info")

    with pytest.raises(QueryError) as excinfo:
        manager.get_address()

    assert excinfo.value.display == "Get IP failed"


def test_signal_strength_not_connected(manager: ConnectivityManager) -> None:
    """Test the -127 sentinel when not connected."""
    assert manager.get_signal_strength() == UNKNOWN_RSSI == -127
    assert manager.read_signal().status == SignalStatus.NOT_CONNECTED


def test_signal_strength_connected(manager: ConnectivityManager) -> None:
    """Test signal strength of the current access point."""
    manager.connect("HomeNet", "secret123")

    reading = manager.read_signal()

    assert reading.ok
    assert reading.rssi == -45
    assert manager.get_signal_strength() == -45
    assert manager.status().rssi == -45


def test_signal_strength_query_failure(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test a failed query is distinguishable from not connected."""
    manager.connect("HomeNet", "secret123")
    interface.inject_failure("get_current_ap_info")

    assert manager.read_signal().status == SignalStatus.QUERY_FAILED
    assert manager.get_signal_strength() == UNKNOWN_RSSI


def test_status_to_dict(manager: ConnectivityManager) -> None:
    """Test the status snapshot serializes."""
    manager.connect("HomeNet", "secret123")

    assert manager.status().to_dict() == {"connected": True, "address": "192.168.4.2", "rssi": None}


# Tests - Events


def test_unknown_events_are_ignored(manager: ConnectivityManager, interface: InMemoryNetworkInterface) -> None:
    """Test events without a handler leave state unchanged."""
    interface.simulate_event(EventId.STA_CONNECTED, {"ssid": "HomeNet"})
    interface.simulate_event(EventId.STA_LOST_IP)
    time.sleep(0.05)

    assert not manager.status().is_connected


def test_full_event_queue_drops_events(
    interface: InMemoryNetworkInterface, caplog: pytest.LogCaptureFixture
) -> None:
    """Test events beyond the queue capacity are dropped with an error."""
    mgr = ConnectivityManager(
        interface=interface,
        store=InMemorySettingsStore(),
        settings=ManagerSettings(event_queue_size=1),
    )
    # Not initialized, so nothing consumes the queue
    interface.subscribe(EventCategory.WIFI, mgr._enqueue_event)  # pylint: disable=protected-access

    with caplog.at_level(logging.ERROR, logger="wifi_station.connectivity.manager"):
        interface.simulate_event(EventId.SCAN_DONE)
        interface.simulate_event(EventId.SCAN_DONE)

    assert "Event queue full, dropping scan_done" in caplog.text



# Tests - Teardown


def test_teardown_releases_everything(
    interface: InMemoryNetworkInterface, store: InMemorySettingsStore, fast_settings: ManagerSettings
) -> None:
    """Test teardown stops the interface and closes the store."""
    mgr = ConnectivityManager(interface=interface, store=store, settings=fast_settings)
    mgr.init()
    mgr.connect("HomeNet", "secret123")

    mgr.teardown()

    assert not mgr.is_initialized()
    assert not mgr.status().is_connected
    assert not interface.is_associated()
    assert interface.get_mode() == WifiMode.NULL
    assert not mgr.reconnect_policy.is_pending()


def test_teardown_does_not_reconnect(
    interface: InMemoryNetworkInterface, fast_settings: ManagerSettings
) -> None:
    """Test the disconnect issued by teardown does not schedule a reconnect."""
    mgr = _make_manager(interface, fast_settings)
    mgr.connect("HomeNet", "secret123")
    requests = interface.connect_requests

    mgr.teardown()
    time.sleep(fast_settings.reconnect_delay * 3)

    assert interface.connect_requests == requests


def test_teardown_failure_reports_step(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test the failing teardown step is named and later steps are skipped."""
    interface.inject_failure("stop")

    with pytest.raises(TeardownError) as excinfo:
        manager.teardown()

    assert excinfo.value.step == "stop interface"
    assert manager.is_initialized()

    interface.clear_failure("stop")
    manager.teardown()
    assert not manager.is_initialized()


def test_teardown_retry_resumes_at_failed_step(
    manager: ConnectivityManager, interface: InMemoryNetworkInterface
) -> None:
    """Test a retry after a late teardown failure skips the steps already done."""
    interface.inject_failure("deinit")

    with pytest.raises(TeardownError) as excinfo:
        manager.teardown()

    assert excinfo.value.step == "deinit driver"
    assert manager.is_initialized()
    disconnects = interface.disconnect_requests

    interface.clear_failure("deinit")
    manager.teardown()

    assert not manager.is_initialized()
    assert interface.disconnect_requests == disconnects
    assert interface.get_mode() == WifiMode.NULL

    manager.init()
    assert manager.is_initialized()


def test_teardown_not_initialized(interface: InMemoryNetworkInterface) -> None:
    """Test teardown before init is rejected."""
    mgr = ConnectivityManager(interface=interface, store=InMemorySettingsStore())
    with pytest.raises(TeardownError):
        mgr.teardown()


def test_teardown_cancels_pending_scan() -> None:
    """Test a scan blocked in its wait is woken with OperationCancelledError."""
    settings = ManagerSettings(ready_poll_interval=0.01, scan_timeout=5.0)
    interface = InMemoryNetworkInterface(emit_scan_done=False)
    mgr = _make_manager(interface, settings)
    errors: List[Exception] = []

    def run_scan() -> None:
        try:
            mgr.scan()
        except Exception as e:  # pylint: disable=broad-exception-caught
            errors.append(e)

    thread = threading.Thread(target=run_scan)
    thread.start()
    assert wait_for(lambda: interface.scan_requests == 1)
    time.sleep(0.05)

    mgr.teardown()
    thread.join(timeout=1.0)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], OperationCancelledError)


def test_reinit_after_teardown(interface: InMemoryNetworkInterface, fast_settings: ManagerSettings) -> None:
    """Test the manager can be brought up again after teardown."""
    mgr = _make_manager(interface, fast_settings)
    mgr.teardown()

    mgr.init()
    try:
        mgr.connect("HomeNet", "secret123")
        assert mgr.status().is_connected
    finally:
        mgr.teardown()
