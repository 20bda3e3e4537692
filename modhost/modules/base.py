"""Module layer — Entry-point contract.

Every module directory ships a ``module.py`` entry file.  The runtime accepts
two shapes:

  1. Module-level functions::

        async def initialize(context): ...
        async def cleanup(): ...          # optional

  2. A ``MODULE`` attribute holding a :class:`BaseModule` subclass (it is
     instantiated with no arguments) or a ready-made instance.

Either shape is normalised into a :class:`ModuleEntry` and validated when the
module is loaded, so a malformed module fails with
``ModuleEntryInvalidError`` before any of its code is trusted.  Hooks may be
plain functions or coroutines.
"""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from modhost.exceptions import ModuleEntryInvalidError, ModuleLoadError

ENTRY_FILENAME = "module.py"
ENTRY_ATTRIBUTE = "MODULE"

# Opaque bag a module returns from ``initialize``; conventionally holds ``api``.
ModuleContext = dict[str, Any]


class BaseModule(ABC):
    """Optional base class for modules that prefer a class over bare functions.

    Subclasses must implement :meth:`initialize`.  :meth:`cleanup` defaults to
    a no-op.
    """

    MODULE_ID: str = ""

    @abstractmethod
    async def initialize(self, context: ModuleContext) -> ModuleContext | None:
        """Build the module from its injected *context* and return what it exposes."""
        ...

    async def cleanup(self) -> None:
        """Release resources acquired in :meth:`initialize`."""


@dataclass(frozen=True)
class ModuleEntry:
    """Validated initialize/cleanup pair for one module."""

    module_id: str
    initialize: Callable[[ModuleContext], Any]
    cleanup: Callable[[], Any] | None = None
    import_name: str | None = None

    async def run_initialize(self, context: ModuleContext) -> ModuleContext:
        result = self.initialize(context)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return {}
        if isinstance(result, dict):
            return result
        if isinstance(result, Mapping):
            return dict(result)
        raise ModuleEntryInvalidError(
            self.module_id,
            f"initialize() must return a mapping or None, got {type(result).__name__}",
        )

    async def run_cleanup(self) -> None:
        if self.cleanup is None:
            return
        result = self.cleanup()
        if inspect.isawaitable(result):
            await result

    def discard(self) -> None:
        """Forget the imported entry file and its helpers so a later load re-imports them."""
        if self.import_name is not None:
            _forget_import(self.import_name)


def _forget_import(import_name: str) -> None:
    prefix = f"{import_name}."
    for name in [n for n in sys.modules if n == import_name or n.startswith(prefix)]:
        sys.modules.pop(name, None)


def entry_from_object(module_id: str, obj: Any, import_name: str | None = None) -> ModuleEntry:
    """Validate *obj* against the initialize/cleanup contract.

    Raises:
        ModuleEntryInvalidError: ``initialize`` is missing or not callable, or
            ``cleanup`` is present but not callable.
    """
    target = getattr(obj, ENTRY_ATTRIBUTE, None) if inspect.ismodule(obj) else None
    if target is None:
        target = obj
    elif inspect.isclass(target):
        if not issubclass(target, BaseModule):
            raise ModuleEntryInvalidError(
                module_id, f"{ENTRY_ATTRIBUTE} class {target.__name__} does not subclass BaseModule"
            )
        try:
            target = target()
        except Exception as exc:
            raise ModuleLoadError(module_id, f"cannot instantiate {ENTRY_ATTRIBUTE}: {exc}") from exc

    initialize = getattr(target, "initialize", None)
    if initialize is None or not callable(initialize):
        raise ModuleEntryInvalidError(module_id, "does not export an initialize function")

    cleanup = getattr(target, "cleanup", None)
    if cleanup is not None and not callable(cleanup):
        raise ModuleEntryInvalidError(module_id, "cleanup is defined but is not callable")

    return ModuleEntry(
        module_id=module_id,
        initialize=initialize,
        cleanup=cleanup,
        import_name=import_name,
    )


def _import_name(module_id: str, path: Path) -> str:
    digest = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:10]
    safe_id = "".join(ch if ch.isalnum() else "_" for ch in module_id)
    return f"modhost_module_{safe_id}_{digest}"


def load_entry(module_id: str, module_dir: Path) -> ModuleEntry:
    """Import ``<module_dir>/module.py`` and return its validated entry.

    The entry file is imported as a package rooted at *module_dir*, so it can
    use relative imports for helper files next to it.

    Raises:
        ModuleEntryInvalidError: No entry file, or the contract is not met.
        ModuleLoadError:         The entry file raised while being imported.
    """
    path = Path(module_dir) / ENTRY_FILENAME
    if not path.is_file():
        raise ModuleEntryInvalidError(module_id, f"entry file {path} not found")

    import_name = _import_name(module_id, path)
    spec = importlib.util.spec_from_file_location(
        import_name, path, submodule_search_locations=[str(module_dir)]
    )
    if spec is None or spec.loader is None:
        raise ModuleLoadError(module_id, f"cannot create an import spec for {path}")

    py_module = importlib.util.module_from_spec(spec)
    sys.modules[import_name] = py_module
    try:
        spec.loader.exec_module(py_module)
    except Exception as exc:
        _forget_import(import_name)
        raise ModuleLoadError(module_id, f"import of {path.name} failed: {exc}") from exc

    try:
        return entry_from_object(module_id, py_module, import_name=import_name)
    except (ModuleEntryInvalidError, ModuleLoadError):
        _forget_import(import_name)
        raise
