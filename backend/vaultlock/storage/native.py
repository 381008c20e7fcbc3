"""Native preference store: one small file per key in the app data directory."""

import asyncio
import re
from pathlib import Path
from typing import Optional

from ..errors import LocalStorageError
from ..logging import get_logger
from .base import KeyValueStore

logger = get_logger("storage.native")

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class PreferencesStore(KeyValueStore):
    """Key-value store backed by a preferences directory.

    Each key maps to ``<directory>/<key>``, so a corrupt entry only loses
    that key.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid preference key: {key!r}")
        return self.directory / key

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise LocalStorageError(f"Cannot read preference {key}: {e}") from e

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding="utf-8")
        except OSError as e:
            raise LocalStorageError(f"Cannot write preference {key}: {e}") from e

    def _delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise LocalStorageError(f"Cannot remove preference {key}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)
        logger.debug(f"Stored preference {key}")

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
        logger.debug(f"Removed preference {key}")
