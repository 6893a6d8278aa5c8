"""Persistent key-value state for the manager."""

import asyncio
import json
import os
from pathlib import Path
from typing import Dict, Optional, Union

import aiofiles

from vpnhost_shared.logging import get_logger

logger = get_logger(__name__)


class MemoryStore:
    """Key-value store kept in memory only."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStore:
    """
    Key-value store persisted as a single JSON object on disk.

    Every write rewrites the whole file through a temporary file, so a crash
    never leaves a half-written state behind. A missing or unreadable file is
    treated as an empty store.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the store.

        Args:
            path: Location of the JSON state file; parent directories are created on first write
        """
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def _read(self) -> Dict[str, str]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring corrupt state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: not a JSON object")
            return {}
        return data

    async def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, sort_keys=True))
        os.replace(tmp_path, self.path)

    async def get_item(self, key: str) -> Optional[str]:
        data = await self._read()
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._read()
            data[key] = value
            await self._write(data)

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            data = await self._read()
            if data.pop(key, None) is not None:
                await self._write(data)
