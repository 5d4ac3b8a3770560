"""Persistent settings storage."""

from wifi_station.storage.settings_store import (
    InMemorySettingsStore,
    SettingsStore,
    StoreError,
    YamlSettingsStore,
)

__all__ = ["SettingsStore", "InMemorySettingsStore", "YamlSettingsStore", "StoreError"]
