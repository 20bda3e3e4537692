"""Module layer — Configuration Store system module.

A single JSON document maps module IDs to module-defined settings blobs::

    {
      "mqtt": {"broker": "mqtt://localhost", "port": 1883},
      "scanner": {"interval": 30}
    }

Write policy is write-through: ``set_config`` and ``remove_config`` persist
the whole document before returning.  The in-memory map and the file on disk
agree after every successful call; a failed write rolls the in-memory change
back and raises ``ConfigPersistenceError``.

Read policy is degrade-to-empty: a missing document is created empty, and a
corrupt one is logged and treated as empty so that configuration loss never
blocks other modules from loading.  The corrupt file itself is left on disk
until the next successful write replaces it.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any

from modhost.exceptions import ConfigPersistenceError
from modhost.logging import get_logger
from modhost.modules.base import BaseModule, ModuleContext

log = get_logger(__name__)

CONFIG_MODULE_ID = "config"

_MISSING = object()


def _read_document(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"top-level value is {type(data).__name__}, expected an object")
    return data


def _write_document(path: Path, document: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(payload, encoding="utf-8")
    os.replace(tmp, path)


class ConfigStore:
    """Persisted ``module_id → settings`` mapping backed by one JSON file.

    Usage::

        store = ConfigStore("./config/config.json")
        await store.load()
        mqtt = store.get_config("mqtt") or {"broker": "mqtt://localhost"}
        await store.set_config("mqtt", mqtt)
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser().resolve()
        self._document: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self.last_error: ConfigPersistenceError | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_config(self, module_id: str) -> Any | None:
        """Return the settings stored for *module_id*, or ``None`` if absent."""
        return self._document.get(module_id)

    def has_config(self, module_id: str) -> bool:
        return module_id in self._document

    def module_ids(self) -> list[str]:
        return sorted(self._document)

    def snapshot(self) -> dict[str, Any]:
        """Return a detached copy of the whole document."""
        return json.loads(json.dumps(self._document))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_config(self, module_id: str, value: Any) -> None:
        """Store *value* for *module_id* and persist the document.

        Raises:
            ConfigPersistenceError: *value* is not JSON-serialisable, or the
                document could not be written (the change is rolled back).
        """
        try:
            normalised = json.loads(json.dumps(value))
        except (TypeError, ValueError) as exc:
            raise ConfigPersistenceError(
                self._path, f"value for '{module_id}' is not JSON-serialisable: {exc}"
            ) from exc

        async with self._lock:
            previous = self._document.get(module_id, _MISSING)
            self._document[module_id] = normalised
            try:
                await self._persist()
            except ConfigPersistenceError:
                self._restore(module_id, previous)
                raise
        log.debug("config_set", module_id=module_id, path=str(self._path))

    async def remove_config(self, module_id: str) -> None:
        """Drop the settings for *module_id* and persist the document.

        Removing an absent key still rewrites the document, so the file is
        guaranteed to match memory afterwards.
        """
        async with self._lock:
            previous = self._document.pop(module_id, _MISSING)
            try:
                await self._persist()
            except ConfigPersistenceError:
                self._restore(module_id, previous)
                raise
        log.debug("config_removed", module_id=module_id, path=str(self._path))

    async def reload_config(self) -> None:
        """Re-read the document from disk, discarding unsaved in-memory state."""
        async with self._lock:
            await self._load_locked()

    async def load(self) -> None:
        """Initial load.  Creates an empty document when none exists."""
        async with self._lock:
            await self._load_locked()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _restore(self, module_id: str, previous: Any) -> None:
        if previous is _MISSING:
            self._document.pop(module_id, None)
        else:
            self._document[module_id] = previous

    async def _persist(self) -> None:
        try:
            await asyncio.to_thread(_write_document, self._path, self._document)
        except (OSError, TypeError, ValueError) as exc:
            raise ConfigPersistenceError(self._path, f"write failed: {exc}") from exc
        log.debug("config_saved", path=str(self._path), keys=len(self._document))

    async def _load_locked(self) -> None:
        self.last_error = None
        if not self._path.exists():
            log.info("config_document_missing", path=str(self._path))
            self._document = {}
            try:
                await self._persist()
            except ConfigPersistenceError as exc:
                self._degrade(exc)
            return

        try:
            self._document = await asyncio.to_thread(_read_document, self._path)
        except (OSError, ValueError) as exc:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors.
            self._document = {}
            self._degrade(ConfigPersistenceError(self._path, f"read failed: {exc}"))
            return
        log.info("config_loaded", path=str(self._path), keys=len(self._document))

    def _degrade(self, error: ConfigPersistenceError) -> None:
        self.last_error = error
        log.error(
            "config_degraded_to_empty",
            path=str(self._path),
            reason=error.reason,
        )


class ConfigStoreModule(BaseModule):
    """Wraps a :class:`ConfigStore` as the always-present ``config`` system module."""

    MODULE_ID = CONFIG_MODULE_ID

    def __init__(self, config_path: Path | str) -> None:
        self.store = ConfigStore(config_path)

    async def initialize(self, context: ModuleContext) -> ModuleContext:
        await self.store.load()
        return {"api": self.store}
