"""Persistence backends for the mapping and panel state."""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

STORAGE_FILENAME = "color_legend_storage.json"
_STORAGE_VERSION = 1


class StorageBackend(Protocol):
    async def get(self, keys: Iterable[str]) -> Dict[str, Any]: ...
    async def set(self, entries: Mapping[str, Any]) -> None: ...


class MemoryStorage:
    """Dict-backed store; ``fail_reads``/``fail_writes`` simulate a flaky backend."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self.data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self.fail_reads = False
        self.fail_writes = False
        self.reads = 0
        self.writes = 0

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        self.reads += 1
        if self.fail_reads:
            raise OSError("storage read failed")
        return {key: copy.deepcopy(self.data[key]) for key in keys if key in self.data}

    async def set(self, entries: Mapping[str, Any]) -> None:
        self.writes += 1
        if self.fail_writes:
            raise OSError("storage write failed")
        for key, value in entries.items():
            self.data[key] = copy.deepcopy(value)


def _default_state() -> Dict[str, Any]:
    return {"version": _STORAGE_VERSION, "entries": {}}


class JsonFileStorage:
    """Keeps every key in one JSON document, replaced atomically on each write.

    Disk access runs on the loop's default executor, serialized by a lock so
    read-modify-write updates never interleave.
    """

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None) -> None:
        self._path = Path(path)
        self._logger = logger or logging.getLogger("ColorLegend.Storage")
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        wanted = list(keys)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_sync, wanted)

    async def set(self, entries: Mapping[str, Any]) -> None:
        snapshot = copy.deepcopy(dict(entries))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._set_sync, snapshot)

    def _get_sync(self, keys: Iterable[str]) -> Dict[str, Any]:
        with self._lock:
            entries = self._read_state()["entries"]
        return {key: entries[key] for key in keys if key in entries}

    def _set_sync(self, entries: Dict[str, Any]) -> None:
        with self._lock:
            state = self._read_state()
            state["entries"].update(entries)
            self._write_snapshot(state)

    def _read_state(self) -> Dict[str, Any]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return _default_state()
        except (OSError, ValueError) as exc:
            self._logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return _default_state()
        if not isinstance(raw, dict):
            return _default_state()
        entries = raw.get("entries")
        if not isinstance(entries, dict):
            return _default_state()
        version = raw.get("version", _STORAGE_VERSION)
        return {"version": version if isinstance(version, int) else _STORAGE_VERSION, "entries": entries}

    def _write_snapshot(self, snapshot: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(snapshot, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)


def resolve_storage_path(root: Optional[Path] = None) -> Path:
    """Return the storage file path rooted at the given folder."""

    base = root if root is not None else Path.cwd()
    return base / STORAGE_FILENAME
