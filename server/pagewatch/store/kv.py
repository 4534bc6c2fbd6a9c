"""
Keyed JSON document store.

All PageWatch state lives in one JSON object on disk, addressed by
top-level key (``pageAlerts``, ``extensions``, ``initialized``).  Reads
and writes run in a worker thread; a write replaces the file atomically
so readers never observe a half-written document.
"""

from __future__ import annotations

import asyncio
import json
import os
import pathlib
import tempfile
import threading
from collections.abc import Iterable
from typing import Any

from pagewatch.utils import logger

log = logger.create_logger("Store")

ALERTS_KEY = "pageAlerts"
EXTENSIONS_KEY = "extensions"
INIT_KEY = "initialized"


class JsonFileStore:
    """Async key-value access to a single JSON file."""

    def __init__(self, path: pathlib.Path | str) -> None:
        self._path = pathlib.Path(path)
        # Serialises the read-merge-replace cycle across worker threads.
        self._file_lock = threading.Lock()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return the stored values for *keys*; absent keys are omitted."""
        wanted = list(keys)
        data = await asyncio.to_thread(self._read_locked)
        return {key: data[key] for key in wanted if key in data}

    async def set(self, items: dict[str, Any]) -> None:
        """Store every key of *items* in one atomic write."""
        await asyncio.to_thread(self._update, items, ())

    async def remove(self, keys: Iterable[str]) -> None:
        await asyncio.to_thread(self._update, {}, tuple(keys))

    # ==========================================================================
    # Blocking helpers (worker thread)
    # ==========================================================================

    def _read_locked(self) -> dict[str, Any]:
        with self._file_lock:
            return self._read()

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            log.warn("Store file is not valid JSON, starting empty", {"path": str(self._path), "error": str(exc)})
            return {}
        return data if isinstance(data, dict) else {}

    def _update(self, items: dict[str, Any], removals: tuple[str, ...]) -> None:
        with self._file_lock:
            data = self._read()
            data.update(items)
            for key in removals:
                data.pop(key, None)
            self._write(data)

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as stream:
                json.dump(data, stream, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            pathlib.Path(tmp_name).unlink(missing_ok=True)
            raise
