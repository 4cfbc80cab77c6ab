"""Owns the user's label mapping and the panel collapsed flag."""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Coroutine, Dict, List, Mapping, Optional, Tuple

from color_legend.config import PANEL_STATE_KEY, STORAGE_KEY
from color_legend.services.storage import StorageBackend

SpawnFn = Callable[[Coroutine[Any, Any, Any]], object]
ChangeListener = Callable[[Optional[str], Optional[str]], None]

_LOGGER = logging.getLogger("ColorLegend.MappingStore")


def _sanitize_mapping(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    mapping: Dict[str, str] = {}
    for identifier, label in raw.items():
        if not isinstance(identifier, str) or not isinstance(label, str):
            continue
        label = label.strip()
        if label:
            mapping[identifier] = label
    return mapping


class MappingStore:
    """In-memory source of truth for identifier -> custom label overrides.

    Every mutation is persisted fire-and-forget through ``spawn``; callers never
    wait on the backend and a failed write only gets logged. Other components
    read ``mapping`` (a read-only view) and never mutate it.
    """

    def __init__(
        self,
        storage: StorageBackend,
        *,
        spawn: SpawnFn,
        storage_key: str = STORAGE_KEY,
        panel_state_key: str = PANEL_STATE_KEY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._storage = storage
        self._spawn = spawn
        self._storage_key = storage_key
        self._panel_state_key = panel_state_key
        self._logger = logger or _LOGGER
        self._mapping: Dict[str, str] = {}
        self._collapsed = True
        self._listeners: List[ChangeListener] = []
        self.failed_writes = 0

    @property
    def mapping(self) -> Mapping[str, str]:
        return MappingProxyType(self._mapping)

    @property
    def collapsed(self) -> bool:
        return self._collapsed

    def label_for(self, identifier: str) -> Optional[str]:
        return self._mapping.get(identifier)

    def is_empty(self) -> bool:
        return not self._mapping

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    # Persistence ---------------------------------------------------------

    async def load(self) -> Tuple[Mapping[str, str], bool]:
        try:
            result = await self._storage.get([self._storage_key, self._panel_state_key])
        except Exception as exc:
            self._logger.warning("Failed to load stored data: %s", exc)
            self._mapping = {}
            self._collapsed = True
            return self.mapping, self._collapsed
        if not isinstance(result, Mapping):
            result = {}
        self._mapping = _sanitize_mapping(result.get(self._storage_key))
        stored_flag = result.get(self._panel_state_key)
        self._collapsed = True if stored_flag is None else bool(stored_flag)
        self._logger.debug("Loaded %d custom labels (collapsed=%s)", len(self._mapping), self._collapsed)
        return self.mapping, self._collapsed

    def persist(self, key: str, value: Any) -> None:
        self._spawn(self._write(key, value))

    async def _write(self, key: str, value: Any) -> None:
        try:
            await self._storage.set({key: value})
        except Exception as exc:
            self.failed_writes += 1
            self._logger.error("Failed to save %s: %s", key, exc)

    # Mutation ------------------------------------------------------------

    def set(self, identifier: str, label: Optional[str]) -> None:
        value = (label or "").strip()
        if value:
            self._mapping[identifier] = value
        else:
            self._mapping.pop(identifier, None)
        self.persist(self._storage_key, dict(self._mapping))
        self._notify(identifier, value or None)

    def clear(self) -> None:
        self._mapping = {}
        self.persist(self._storage_key, {})
        self._notify(None, None)

    def set_collapsed(self, collapsed: bool) -> None:
        self._collapsed = bool(collapsed)
        self.persist(self._panel_state_key, self._collapsed)

    def toggle_collapsed(self) -> bool:
        self.set_collapsed(not self._collapsed)
        return self._collapsed

    def _notify(self, identifier: Optional[str], label: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(identifier, label)
            except Exception as exc:
                self._logger.error("Mapping listener failed: %s", exc, exc_info=exc)
