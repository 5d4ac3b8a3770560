"""Shared pytest fixtures for all tests."""

from typing import Iterator

import pytest

from wifi_station.connectivity import ConnectivityManager, ManagerSettings
from wifi_station.interface import ApRecord, AuthMode, InMemoryNetworkInterface
from wifi_station.storage import InMemorySettingsStore


@pytest.fixture
def access_points() -> list:
    """Access points visible to the simulated radio."""
    return [
        ApRecord(ssid="HomeNet", bssid="aa:bb:cc:00:00:01", rssi=-45, authmode=AuthMode.WPA2_PSK, channel=6),
        ApRecord(ssid="CoffeeShop", bssid="aa:bb:cc:00:00:02", rssi=-72, authmode=AuthMode.OPEN, channel=1),
        ApRecord(ssid="Far", bssid="aa:bb:cc:00:00:03", rssi=-91, authmode=AuthMode.WPA_PSK, channel=11),
    ]


@pytest.fixture
def interface(access_points: list) -> InMemoryNetworkInterface:
    """In-memory interface knowing the HomeNet password."""
    return InMemoryNetworkInterface(
        access_points=access_points,
        known_networks={"HomeNet": "secret123", "CoffeeShop": ""},
    )


@pytest.fixture
def store() -> InMemorySettingsStore:
    """Empty in-memory settings store."""
    return InMemorySettingsStore()


@pytest.fixture
def fast_settings() -> ManagerSettings:
    """Settings with every bound scaled down for tests."""
    return ManagerSettings(
        ready_poll_interval=0.01,
        ready_timeout=0.1,
        scan_timeout=0.3,
        connect_timeout=0.3,
        reconnect_delay=0.05,
    )


@pytest.fixture
def manager(
    interface: InMemoryNetworkInterface,
    store: InMemorySettingsStore,
    fast_settings: ManagerSettings,
) -> Iterator[ConnectivityManager]:
    """Initialized manager, torn down after the test if still up."""
    mgr = ConnectivityManager(interface=interface, store=store, settings=fast_settings)
    mgr.init()
    yield mgr
    if mgr.is_initialized():
        mgr.teardown()
