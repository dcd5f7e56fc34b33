"""
Durable key/value storage for persisted snapshots.

Provides the string-valued store that backs ``PersistedStore``. Two
implementations share the change-tracking logic in ``Storage``:

- DiskStorage: diskcache-backed, thread-safe and process-safe, survives
  restarts. Several processes may point at the same directory.
- MemoryStorage: in-process dict, used for ephemeral sessions and tests.

Cross-process change detection mirrors browser ``storage`` events: a
watched key is reported by ``poll_changes()`` only when its raw value was
changed by someone else since this instance last read or wrote it.
"""

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import diskcache

# Failures raised by a storage backend: file system errors, and the sqlite
# errors and lock timeouts of diskcache
STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


@dataclass(frozen=True)
class StorageChange:
    """
    A change to a watched key made outside this storage instance.

    Attributes:
        key: The key that changed.
        new_value: The new raw value, or None if the key was removed.
    """

    key: str
    new_value: str | None


class Storage(ABC):
    """
    Base class for string-valued key/value stores with change polling.

    Subclasses implement the raw ``_load``/``_store``/``_remove`` primitives.
    """

    def __init__(self) -> None:
        self._seen: dict[str, str | None] = {}
        self._watched: set[str] = set()

    @abstractmethod
    def _load(self, key: str) -> str | None: ...

    @abstractmethod
    def _store(self, key: str, value: str) -> None: ...

    @abstractmethod
    def _remove(self, key: str) -> None: ...

    def get(self, key: str) -> str | None:
        """
        Return the raw value stored for key.

        Args:
            key: Storage key.

        Returns:
            The stored string, or None when the key is absent.
        """
        value = self._load(key)
        self._seen[key] = value
        return value

    def set(self, key: str, value: str) -> None:
        """
        Store a raw value.

        Args:
            key: Storage key.
            value: String to store.
        """
        self._store(key, value)
        self._seen[key] = value

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        self._remove(key)
        self._seen[key] = None

    def watch(self, key: str) -> None:
        """Start reporting external changes of key through poll_changes()."""
        self._watched.add(key)
        if key not in self._seen:
            self._seen[key] = self._load(key)

    def poll_changes(self) -> list[StorageChange]:
        """
        Report watched keys changed by another writer since last seen.

        Returns:
            One StorageChange per changed key, in key order.
        """
        changes = []
        for key in sorted(self._watched):
            current = self._load(key)
            if current != self._seen.get(key):
                self._seen[key] = current
                changes.append(StorageChange(key=key, new_value=current))
        return changes

    def close(self) -> None:
        """Release resources held by the store."""


class DiskStorage(Storage):
    """
    Disk-based storage using the diskcache library.

    Attributes:
        cache_dir: Path to the cache directory.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        """
        Initialize the disk store.

        Args:
            cache_dir: Directory path for storing cache files.
                       Created if it doesn't exist.
        """
        super().__init__()
        self.cache_dir = Path(cache_dir)
        self._cache = diskcache.Cache(str(self.cache_dir))

    def _load(self, key: str) -> str | None:
        return self._cache.get(key, default=None)

    def _store(self, key: str, value: str) -> None:
        self._cache.set(key, value)

    def _remove(self, key: str) -> None:
        self._cache.delete(key)

    def close(self) -> None:
        """Close the cache and release resources."""
        self._cache.close()


class MemoryStorage(Storage):
    """In-process storage, optionally pre-populated with raw values."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(data or {})

    def _load(self, key: str) -> str | None:
        return self._data.get(key)

    def _store(self, key: str, value: str) -> None:
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)

    def write_external(self, key: str, value: str | None) -> None:
        """Change a key as another process would, so poll_changes() reports it."""
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
