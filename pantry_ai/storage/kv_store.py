"""Async key/value storage backends.

The pipeline cache and the local recipe store both sit on a string-to-string
key/value store with the same surface as on-device persistent storage:
get_item, set_item, remove_item, get_all_keys and multi_remove.

- InMemoryKeyValueStore: process-local dict, used by default and in tests
- FileKeyValueStore: one file per key under a directory; blocking file I/O
  runs in a worker thread via asyncio.to_thread
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote, unquote


class KeyValueStore(Protocol):
    """Persistent string key/value storage."""

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    async def get_all_keys(self) -> list[str]: ...

    async def multi_remove(self, keys: list[str]) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        return list(self._data.keys())

    async def multi_remove(self, keys: list[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class FileKeyValueStore:
    """Directory-backed store: one UTF-8 file per key.

    Keys are percent-encoded into file names so any string is a valid key.
    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so readers never observe a partially written value.
    """

    _SUFFIX = ".json"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self._SUFFIX}"

    def _read(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_path, self._path_for(key))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _remove(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def _keys(self) -> list[str]:
        return [
            unquote(path.name[: -len(self._SUFFIX)])
            for path in self.directory.iterdir()
            if path.is_file() and path.name.endswith(self._SUFFIX) and not path.name.startswith(".tmp-")
        ]

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def get_all_keys(self) -> list[str]:
        return await asyncio.to_thread(self._keys)

    async def multi_remove(self, keys: list[str]) -> None:
        for key in keys:
            await asyncio.to_thread(self._remove, key)
