"""Module layer — Lifecycle runtime.

The ModuleLoader is the single point of truth for every loaded module.
It handles:
  - Bringing up the system modules (``logger`` at construction, ``config``
    in :meth:`ModuleLoader.initialize_runtime`)
  - Discovery of module directories under a root directory
  - Depth-first dependency resolution with cycle detection
  - Context injection and initialize/cleanup invocation
  - Load-order bookkeeping and safe, reverse-order teardown

Resolution keeps two distinct structures:
  - ``_records``: modules whose ``initialize`` completed (the module registry)
  - ``_resolving``: the ordered stack of modules currently being resolved
    or initialised.  Re-entering an ID on this stack is a cycle.

Everything runs on one asyncio task.  Siblings are never loaded in parallel,
so no reader can observe a half-written registry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from modhost.exceptions import (
    CyclicDependencyError,
    DependencyConflictError,
    DiscoveryError,
    ModHostError,
    ModuleCleanupError,
    ModuleLoadError,
    ProtectedModuleError,
    RuntimeAlreadyInitializedError,
    RuntimeNotInitializedError,
)
from modhost.logging import ModuleLogger, get_logger, module_log_context
from modhost.modules.base import ModuleContext, ModuleEntry, entry_from_object, load_entry
from modhost.modules.config_store import CONFIG_MODULE_ID, ConfigStore, ConfigStoreModule
from modhost.modules.manifest import ModuleManifest, has_manifest, read_manifest
from modhost.modules.registry import CapabilityRegistry

log = get_logger(__name__)

LOGGER_MODULE_ID = "logger"
SYSTEM_MODULE_IDS = frozenset({LOGGER_MODULE_ID, CONFIG_MODULE_ID})


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ModuleState(str, Enum):
    UNLOADED = "unloaded"
    RESOLVING = "resolving"
    INITIALIZING = "initializing"
    LOADED = "loaded"
    UNLOADING = "unloading"


@dataclass
class ModuleRecord:
    """A module whose ``initialize`` hook completed successfully."""

    module_id: str
    manifest: ModuleManifest
    context: ModuleContext
    entry: ModuleEntry


class ModuleLoader:
    """Discovers, initialises and tears down directory-packaged modules.

    Usage::

        loader = ModuleLoader("./modules")
        await loader.initialize_runtime("./config/config.json")
        await loader.discover_and_load_all()

        mqtt = loader.get_api("mqtt")
        ...
        await loader.unload_all_modules()
    """

    def __init__(
        self,
        modules_dir: Path | str | None = None,
        disabled: Iterable[str] = (),
    ) -> None:
        self._modules_dir = Path(modules_dir).resolve() if modules_dir is not None else None
        self._disabled = frozenset(disabled)
        self._records: dict[str, ModuleRecord] = {}
        self._load_order: list[str] = []
        self._resolving: list[str] = []
        self._states: dict[str, ModuleState] = {}
        self._failed: dict[str, str] = {}
        self._capabilities = CapabilityRegistry()
        self._system: dict[str, ModuleContext] = {}
        self._config_module: ConfigStoreModule | None = None
        self._config_entry: ModuleEntry | None = None
        self._logger = ModuleLogger()
        self._install_logger()

    # ------------------------------------------------------------------
    # System modules
    # ------------------------------------------------------------------

    def _install_logger(self) -> None:
        self._system[LOGGER_MODULE_ID] = {"api": self._logger}
        self._capabilities.register(LOGGER_MODULE_ID, self._logger)

    async def initialize_runtime(self, config_path: Path | str) -> None:
        """Bring up the Configuration Store as the ``config`` system module.

        Must complete before any other module is loaded.

        Raises:
            RuntimeAlreadyInitializedError: The runtime is already initialised.
        """
        if self._config_module is not None:
            raise RuntimeAlreadyInitializedError(self._config_module.store.path)
        if LOGGER_MODULE_ID not in self._system:
            self._install_logger()

        module = ConfigStoreModule(config_path)
        entry = entry_from_object(CONFIG_MODULE_ID, module)
        with module_log_context(CONFIG_MODULE_ID):
            context = await entry.run_initialize({})

        self._system[CONFIG_MODULE_ID] = context
        self._capabilities.register(CONFIG_MODULE_ID, context["api"])
        self._config_module = module
        self._config_entry = entry
        log.info("runtime_initialized", config_path=str(module.store.path))

    @property
    def initialized(self) -> bool:
        return self._config_module is not None

    @property
    def config_store(self) -> ConfigStore:
        if self._config_module is None:
            raise RuntimeNotInitializedError()
        return self._config_module.store

    @property
    def capabilities(self) -> CapabilityRegistry:
        return self._capabilities

    @property
    def modules_dir(self) -> Path | None:
        return self._modules_dir

    def _require_initialized(self) -> None:
        if self._config_module is None:
            raise RuntimeNotInitializedError()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def discover_and_load_all(
        self,
        root_dir: Path | str | None = None,
        init_options: dict[str, Any] | None = None,
    ) -> list[str]:
        """Load every module found in the immediate subdirectories of *root_dir*.

        Candidates are visited in lexicographic order.  Directories without
        a manifest are not modules and are skipped silently.  A failure is
        isolated to the candidate that triggered it: it is logged, recorded
        in :meth:`list_failed`, and discovery moves on.

        Returns:
            IDs of the modules loaded by this call, in load order.

        Raises:
            RuntimeNotInitializedError: :meth:`initialize_runtime` has not run.
            DiscoveryError:             *root_dir* does not exist.
        """
        self._require_initialized()
        if root_dir is not None:
            self._modules_dir = Path(root_dir).resolve()
        root = self._require_modules_dir()
        if not root.is_dir():
            raise DiscoveryError(root, "directory does not exist")

        options = dict(init_options or {})
        already_loaded = set(self._records)
        candidates = sorted(p for p in root.iterdir() if p.is_dir())
        log.info("module_discovery_started", root=str(root), candidates=len(candidates))

        for module_dir in candidates:
            module_id = module_dir.name
            if not has_manifest(module_dir):
                log.debug("module_dir_skipped", path=str(module_dir), reason="no manifest")
                continue
            if module_id in self._disabled:
                log.info("module_disabled", module_id=module_id)
                continue
            if module_id in SYSTEM_MODULE_IDS:
                reason = f"'{module_id}' is reserved for a system module"
                self._failed[module_id] = reason
                log.warning("module_id_reserved", module_id=module_id, path=str(module_dir))
                continue
            try:
                await self._resolve(module_id, options)
            except ModHostError as exc:
                self._failed[module_id] = exc.message
                log.error(
                    "module_load_failed",
                    module_id=module_id,
                    error_type=type(exc).__name__,
                    reason=exc.message,
                )

        loaded = [mid for mid in self._load_order if mid not in already_loaded]
        log.info(
            "module_discovery_finished",
            loaded=loaded,
            failed=sorted(self._failed),
        )
        return loaded

    async def load_module(
        self, module_id: str, init_options: dict[str, Any] | None = None
    ) -> ModuleContext:
        """Load *module_id* and its dependencies on demand and return its context.

        If the module is already loaded its cached context is returned and
        nothing else happens.

        Raises:
            RuntimeNotInitializedError: :meth:`initialize_runtime` has not run.
            ManifestNotFoundError:      No manifest for the module or a dependency.
            ManifestInvalidError:       A manifest has the wrong shape.
            CyclicDependencyError:      The dependency graph loops back.
            ModuleEntryInvalidError:    An entry point breaks the contract.
            ModuleLoadError:            An entry failed to import or initialise.
        """
        self._require_initialized()
        return await self._resolve(module_id, dict(init_options or {}))

    async def _resolve(self, module_id: str, init_options: dict[str, Any]) -> ModuleContext:
        if module_id in self._system:
            return self._system[module_id]

        record = self._records.get(module_id)
        if record is not None:
            log.debug("module_already_loaded", module_id=module_id)
            return record.context

        if module_id in self._resolving:
            start = self._resolving.index(module_id)
            raise CyclicDependencyError([*self._resolving[start:], module_id])

        if module_id in self._disabled:
            raise ModuleLoadError(module_id, "module is disabled")

        module_dir = self._module_dir(module_id)
        self._resolving.append(module_id)
        self._states[module_id] = ModuleState.RESOLVING
        try:
            manifest = await read_manifest(module_dir)
            dependency_contexts: dict[str, ModuleContext] = {}
            for dep_id in manifest.dependencies:
                dependency_contexts[dep_id] = await self._resolve(dep_id, init_options)

            log.debug("module_loading", module_id=module_id, dependencies=manifest.dependencies)
            entry = load_entry(module_id, module_dir)
            self._states[module_id] = ModuleState.INITIALIZING
            context = self._build_context(module_id, dependency_contexts, init_options)
            try:
                module_context = await self._run_initialize(entry, context)
            except BaseException:
                entry.discard()
                raise
        except BaseException:
            self._states.pop(module_id, None)
            raise
        finally:
            self._resolving.pop()

        self._records[module_id] = ModuleRecord(
            module_id=module_id,
            manifest=manifest,
            context=module_context,
            entry=entry,
        )
        self._load_order.append(module_id)
        self._states[module_id] = ModuleState.LOADED
        self._failed.pop(module_id, None)
        if module_context.get("api") is not None:
            self._capabilities.register(module_id, module_context["api"])

        log.info("module_loaded", module_id=module_id, version=manifest.version)
        return module_context

    def _build_context(
        self,
        module_id: str,
        dependency_contexts: dict[str, ModuleContext],
        init_options: dict[str, Any],
    ) -> dict[str, Any]:
        context: dict[str, Any] = dict(dependency_contexts)
        context[CONFIG_MODULE_ID] = self._system[CONFIG_MODULE_ID]
        context[LOGGER_MODULE_ID] = {"api": self._logger.bind(module_id)}
        context.update(init_options)
        return context

    @staticmethod
    async def _run_initialize(entry: ModuleEntry, context: dict[str, Any]) -> ModuleContext:
        with module_log_context(entry.module_id):
            try:
                return await entry.run_initialize(context)
            except ModHostError:
                raise
            except Exception as exc:
                raise ModuleLoadError(
                    entry.module_id, f"initialize() raised {type(exc).__name__}: {exc}"
                ) from exc

    def _require_modules_dir(self) -> Path:
        if self._modules_dir is None:
            raise DiscoveryError(None, "no modules directory configured")
        return self._modules_dir

    def _module_dir(self, module_id: str) -> Path:
        if not module_id or module_id in (".", "..") or Path(module_id).name != module_id:
            raise ModuleLoadError(module_id, "module IDs must be plain directory names")
        return self._require_modules_dir() / module_id

    # ------------------------------------------------------------------
    # Unloading
    # ------------------------------------------------------------------

    async def unload_module(self, module_id: str) -> None:
        """Clean up and forget *module_id*.

        Unloading a module that is not loaded is a no-op.  Unlike
        :meth:`unload_all_modules`, a failing cleanup is not absorbed: the
        module is still removed from every registry, then
        ``ModuleCleanupError`` is raised.

        Raises:
            ProtectedModuleError:    *module_id* is a system module.
            DependencyConflictError: Loaded modules still declare *module_id*.
            ModuleCleanupError:      The cleanup hook raised.
        """
        if module_id in SYSTEM_MODULE_IDS:
            raise ProtectedModuleError(module_id)

        record = self._records.get(module_id)
        if record is None or self._states.get(module_id) is not ModuleState.LOADED:
            log.debug("module_not_loaded", module_id=module_id)
            return

        blocking = [
            other.module_id
            for other in self._records.values()
            if other.manifest.depends_on(module_id)
        ]
        if blocking:
            raise DependencyConflictError(module_id, blocking)

        await self._teardown(record)

    async def unload_all_modules(self) -> dict[str, str]:
        """Tear down every module in strict reverse load order, then the system modules.

        A cleanup failure is logged and recorded but never stops the sweep.
        Afterwards the module registry, the capability registry and the load
        order are empty and the runtime must be initialised again before reuse.

        Returns:
            ``module_id → error`` for every cleanup hook that raised.
        """
        failures: dict[str, str] = {}
        for module_id in reversed(list(self._load_order)):
            record = self._records.get(module_id)
            if record is None:
                continue
            try:
                await self._teardown(record)
            except ModuleCleanupError as exc:
                failures[module_id] = _describe(exc.cause)
                log.error(
                    "module_cleanup_failed",
                    module_id=module_id,
                    error_type=type(exc.cause).__name__,
                    reason=_describe(exc.cause),
                )

        if self._config_entry is not None:
            with module_log_context(CONFIG_MODULE_ID):
                try:
                    await self._config_entry.run_cleanup()
                except (Exception, asyncio.CancelledError) as exc:
                    failures[CONFIG_MODULE_ID] = _describe(exc)
                    log.error(
                        "module_cleanup_failed",
                        module_id=CONFIG_MODULE_ID,
                        reason=_describe(exc),
                    )

        self._system.clear()
        self._capabilities.clear()
        self._config_module = None
        self._config_entry = None
        log.info("all_modules_unloaded", failed=sorted(failures))
        return failures

    async def _teardown(self, record: ModuleRecord) -> None:
        module_id = record.module_id
        self._states[module_id] = ModuleState.UNLOADING
        log.debug("module_unloading", module_id=module_id)

        # CancelledError from a helper task awaited in cleanup is a cleanup failure.
        error: BaseException | None = None
        with module_log_context(module_id):
            try:
                await record.entry.run_cleanup()
            except (Exception, asyncio.CancelledError) as exc:
                error = exc
            finally:
                self._forget(record)

        if error is not None:
            raise ModuleCleanupError(module_id, error) from error
        log.info("module_unloaded", module_id=module_id)

    def _forget(self, record: ModuleRecord) -> None:
        module_id = record.module_id
        self._records.pop(module_id, None)
        self._capabilities.unregister(module_id)
        if module_id in self._load_order:
            self._load_order.remove(module_id)
        self._states.pop(module_id, None)
        record.entry.discard()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_api(self, module_id: str) -> Any:
        """Return the capability object published by *module_id*.

        Raises:
            ApiNotFoundError: Nothing is published under this ID.
        """
        return self._capabilities.get(module_id)

    def get_module_context(self, module_id: str) -> ModuleContext | None:
        """Return the context of *module_id*, or ``None`` if it is not loaded."""
        if module_id in self._system:
            return self._system[module_id]
        record = self._records.get(module_id)
        return record.context if record is not None else None

    def get_manifest(self, module_id: str) -> ModuleManifest | None:
        record = self._records.get(module_id)
        return record.manifest if record is not None else None

    def is_loaded(self, module_id: str) -> bool:
        return module_id in self._records or module_id in self._system

    def state_of(self, module_id: str) -> ModuleState:
        if module_id in self._system:
            return ModuleState.LOADED
        return self._states.get(module_id, ModuleState.UNLOADED)

    @property
    def load_order(self) -> list[str]:
        return list(self._load_order)

    def loaded_module_ids(self) -> list[str]:
        """Return IDs of directory-loaded modules, in load order."""
        return list(self._load_order)

    def list_failed(self) -> dict[str, str]:
        """Return module_id → reason for modules that failed during discovery."""
        return dict(self._failed)

    def status_report(self) -> dict[str, Any]:
        """Return a structured snapshot of the runtime.

        Schema::

            {
                "initialized": true,
                "config_path": "/srv/modhost/config/config.json",
                "system": ["config", "logger"],
                "load_order": ["base", "feature"],
                "capabilities": ["base", "config", "logger"],
                "failed": {"broken": "Module 'broken' failed to load: ..."}
            }
        """
        return {
            "initialized": self.initialized,
            "config_path": str(self._config_module.store.path) if self._config_module else None,
            "system": sorted(self._system),
            "load_order": self.load_order,
            "capabilities": self._capabilities.list_ids(),
            "failed": self.list_failed(),
        }
