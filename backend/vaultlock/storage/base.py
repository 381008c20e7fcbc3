"""Uniform interface for the device key-value store."""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """String key-value storage on the device.

    Implementations raise ``LocalStorageError`` when the backing storage
    cannot be read or written.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete ``key``; removing a missing key is not an error."""


class SessionStorage(KeyValueStore):
    """In-memory store scoped to the running app session.

    Holds the session-unlocked flag and the lock state. Nothing survives a
    restart, which matches a browser tab's session storage.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()
