"""modhost — Exception hierarchy.

All exceptions raised by the runtime inherit from ModHostError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    ModHostError
    ├── ManifestError
    │   ├── ManifestNotFoundError
    │   ├── DiscoveryError
    │   └── ManifestInvalidError
    ├── ResolutionError
    │   ├── CyclicDependencyError
    │   └── DependencyConflictError
    ├── ModuleError
    │   ├── ModuleNotFoundError
    │   │   └── ApiNotFoundError
    │   ├── ModuleEntryInvalidError
    │   ├── ModuleLoadError
    │   ├── ModuleCleanupError
    │   ├── ProtectedModuleError
    │   └── DuplicateModuleError
    ├── ConfigError
    │   └── ConfigPersistenceError
    └── RuntimeStateError
        ├── RuntimeNotInitializedError
        ├── HostStartupError
        └── RuntimeAlreadyInitializedError
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class ModHostError(Exception):
    """Base exception for all modhost errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Manifest layer
# ---------------------------------------------------------------------------


class ManifestError(ModHostError):
    """Base for all manifest errors."""


class ManifestNotFoundError(ManifestError):
    """The module directory has no manifest file."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(
            f"Module manifest not found: {path}",
            context={"path": str(path)},
        )
        self.path = str(path)


class DiscoveryError(ManifestError):
    """The modules root directory is missing or not configured."""

    def __init__(self, path: Path | str | None, reason: str) -> None:
        super().__init__(
            f"Cannot discover modules in {path}: {reason}",
            context={"path": str(path) if path is not None else None, "reason": reason},
        )
        self.path = str(path) if path is not None else None
        self.reason = reason


class ManifestInvalidError(ManifestError):
    """The manifest file exists but cannot be read into a ModuleManifest."""

    def __init__(
        self,
        path: Path | str,
        reason: str,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(
            f"Invalid module manifest {path}: {reason}",
            context={"path": str(path), "reason": reason, "validation_errors": errors or []},
        )
        self.path = str(path)
        self.reason = reason
        self.errors = errors or []


# ---------------------------------------------------------------------------
# Resolution layer
# ---------------------------------------------------------------------------


class ResolutionError(ModHostError):
    """Base for dependency resolution errors."""


class CyclicDependencyError(ResolutionError):
    """The declared module dependencies contain a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            context={"cycle": cycle},
        )
        self.cycle = cycle


class DependencyConflictError(ResolutionError):
    """A module cannot be unloaded while loaded modules still depend on it."""

    def __init__(self, module_id: str, blocking: list[str]) -> None:
        super().__init__(
            f"Cannot unload module '{module_id}' as it is required by: "
            f"{', '.join(blocking)}",
            context={"module_id": module_id, "blocking": blocking},
        )
        self.module_id = module_id
        self.blocking = blocking


# ---------------------------------------------------------------------------
# Module layer
# ---------------------------------------------------------------------------


class ModuleError(ModHostError):
    """Base for all module errors."""


class ModuleNotFoundError(ModuleError):
    """No module with the given ID is loaded."""

    def __init__(self, module_id: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Module '{module_id}' is not loaded",
            context={"module_id": module_id},
        )
        self.module_id = module_id


class ApiNotFoundError(ModuleNotFoundError):
    """No capability object is registered under the given module ID."""

    def __init__(self, module_id: str) -> None:
        super().__init__(module_id, message=f"Module API not found: {module_id}")


class ModuleEntryInvalidError(ModuleError):
    """The module entry point does not satisfy the initialize/cleanup contract."""

    def __init__(self, module_id: str, reason: str) -> None:
        super().__init__(
            f"Module '{module_id}' has an invalid entry point: {reason}",
            context={"module_id": module_id, "reason": reason},
        )
        self.module_id = module_id
        self.reason = reason


class ModuleLoadError(ModuleError):
    """A module failed to import or initialise."""

    def __init__(self, module_id: str, reason: str) -> None:
        super().__init__(
            f"Module '{module_id}' failed to load: {reason}",
            context={"module_id": module_id, "reason": reason},
        )
        self.module_id = module_id
        self.reason = reason


class ModuleCleanupError(ModuleError):
    """A module's cleanup hook raised while the module was being unloaded."""

    def __init__(self, module_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Cleanup of module '{module_id}' failed: {str(cause) or type(cause).__name__}",
            context={"module_id": module_id, "cause": str(cause)},
        )
        self.module_id = module_id
        self.cause = cause


class ProtectedModuleError(ModuleError):
    """System modules cannot be unloaded individually."""

    def __init__(self, module_id: str) -> None:
        super().__init__(
            f"Module '{module_id}' is a system module and is only released "
            "by a full shutdown",
            context={"module_id": module_id},
        )
        self.module_id = module_id


class DuplicateModuleError(ModuleError):
    """A capability is already registered under this module ID."""

    def __init__(self, module_id: str) -> None:
        super().__init__(
            f"Module '{module_id}' is already registered",
            context={"module_id": module_id},
        )
        self.module_id = module_id


# ---------------------------------------------------------------------------
# Configuration store
# ---------------------------------------------------------------------------


class ConfigError(ModHostError):
    """Base for configuration store errors."""


class ConfigPersistenceError(ConfigError):
    """The configuration document could not be read or written."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(
            f"Configuration document {path}: {reason}",
            context={"path": str(path), "reason": reason},
        )
        self.path = str(path)
        self.reason = reason


# ---------------------------------------------------------------------------
# Runtime state
# ---------------------------------------------------------------------------


class RuntimeStateError(ModHostError):
    """The runtime was used out of its lifecycle order."""


class RuntimeNotInitializedError(RuntimeStateError):
    """A module load was attempted before ``initialize_runtime``."""

    def __init__(self) -> None:
        super().__init__(
            "Runtime is not initialised: call initialize_runtime() before loading modules"
        )


class HostStartupError(RuntimeStateError):
    """The host refused to keep running because modules failed to load."""

    def __init__(self, failed: dict[str, str]) -> None:
        super().__init__(
            f"{len(failed)} module(s) failed to load: {', '.join(sorted(failed))}",
            context={"failed": failed},
        )
        self.failed = failed


class RuntimeAlreadyInitializedError(RuntimeStateError):
    """``initialize_runtime`` was called twice."""

    def __init__(self, config_path: Path | str) -> None:
        super().__init__(
            f"Runtime already initialised with configuration {config_path}",
            context={"config_path": str(config_path)},
        )
        self.config_path = str(config_path)
