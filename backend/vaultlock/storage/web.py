"""Browser-style local storage: one JSON document holding every key."""

import asyncio
import json
from pathlib import Path
from typing import Optional

from ..errors import LocalStorageError
from ..logging import get_logger
from .base import KeyValueStore

logger = get_logger("storage.web")


class LocalStorage(KeyValueStore):
    """Key-value store persisted as a single JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise LocalStorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise LocalStorageError(f"Unexpected content in {self.path}")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise LocalStorageError(f"Cannot write {self.path}: {e}") from e

    def _set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)
        logger.debug(f"Stored {key}")

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)
        logger.debug(f"Removed {key}")
