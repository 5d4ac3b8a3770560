"""Persistent settings store used by the network interface.

Settings are grouped into namespaces (e.g. "wifi_config"). The YAML store
keeps them in a single file that is rewritten atomically on every change.
"""

import copy
import logging
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the settings store cannot be read or written."""


class SettingsStore(ABC):
    """Abstract base class for namespaced settings storage."""

    @abstractmethod
    def init(self) -> None:
        """Open the store."""

    @abstractmethod
    def deinit(self) -> None:
        """Close the store."""

    @abstractmethod
    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        """Get a value from a namespace."""

    @abstractmethod
    def set(self, namespace: str, key: str, value: Any) -> None:
        """Set a value in a namespace."""

    @abstractmethod
    def erase_namespace(self, namespace: str) -> None:
        """Remove every entry in a namespace."""


class InMemorySettingsStore(SettingsStore):
    """Settings store that lives only for the life of the process."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._open = False
        self._lock = threading.Lock()

    def init(self) -> None:
        with self._lock:
            self._open = True

    def deinit(self) -> None:
        with self._lock:
            if not self._open:
                raise StoreError("Settings store is not open")
            self._open = False

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(namespace, {}).get(key, default)

    def set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            if not self._open:
                raise StoreError("Settings store is not open")
            self._data.setdefault(namespace, {})[key] = value

    def erase_namespace(self, namespace: str) -> None:
        with self._lock:
            if not self._open:
                raise StoreError("Settings store is not open")
            self._data.pop(namespace, None)


class YamlSettingsStore(SettingsStore):
    """Settings store persisted to a YAML file."""

    def __init__(self, path: str) -> None:
        """Initialize the YAML settings store.

        Args:
            path: Path to the settings file (created on first write)
        """
        self._path = Path(path).expanduser()
        self._data: Dict[str, Dict[str, Any]] = {}
        self._open = False
        self._lock = threading.Lock()

    def init(self) -> None:
        """Open the store, starting fresh if the file is corrupt.

        Raises:
            StoreError: If the file exists but cannot be read
        """
        with self._lock:
            try:
                self._data = self._load()
            except yaml.YAMLError as e:
                logger.warning("Settings file %s is corrupt, erasing: %s", self._path, e)
                self._data = {}
                self._save()
            self._open = True
            logger.info("Settings store opened: %s", self._path)

    def deinit(self) -> None:
        with self._lock:
            if not self._open:
                raise StoreError("Settings store is not open")
            self._open = False
            logger.debug("Settings store closed: %s", self._path)

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(namespace, {}).get(key, default))

    def set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._require_open()
            self._data.setdefault(namespace, {})[key] = value
            self._save()

    def erase_namespace(self, namespace: str) -> None:
        with self._lock:
            self._require_open()
            if self._data.pop(namespace, None) is not None:
                self._save()
                logger.info("Erased settings namespace: %s", namespace)

    def _require_open(self) -> None:
        if not self._open:
            raise StoreError("Settings store is not open")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except OSError as e:
            raise StoreError(f"Failed to read settings file {self._path}: {e}") from e
        if content is None:
            return {}
        if not isinstance(content, dict):
            raise yaml.YAMLError(f"top level of {self._path} is not a mapping")
        return content

    def _save(self) -> None:
        """Write the settings file atomically.

        Raises:
            StoreError: If the write fails
        """
        tmp_path: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Temp file in the same directory so the rename stays atomic
            with tempfile.NamedTemporaryFile(
                mode="w",
                delete=False,
                dir=self._path.parent,
                suffix=".yaml",
                encoding="utf-8",
            ) as tmp:
                yaml.safe_dump(self._data, tmp, default_flow_style=False, allow_unicode=True)
                tmp_path = tmp.name

            shutil.move(tmp_path, self._path)
            os.chmod(self._path, 0o600)
        except Exception as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Failed to save settings: {e}") from e
