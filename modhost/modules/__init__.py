"""Module layer — manifest reader, entry contract, capability registry, config store, lifecycle runtime."""

from modhost.modules.base import BaseModule, ModuleContext, ModuleEntry
from modhost.modules.config_store import CONFIG_MODULE_ID, ConfigStore, ConfigStoreModule
from modhost.modules.loader import (
    LOGGER_MODULE_ID,
    SYSTEM_MODULE_IDS,
    ModuleLoader,
    ModuleRecord,
    ModuleState,
)
from modhost.modules.manifest import MANIFEST_FILENAME, ModuleManifest, read_manifest
from modhost.modules.registry import CapabilityRegistry

__all__ = [
    "BaseModule",
    "ModuleContext",
    "ModuleEntry",
    "ModuleManifest",
    "MANIFEST_FILENAME",
    "read_manifest",
    "CapabilityRegistry",
    "ConfigStore",
    "ConfigStoreModule",
    "CONFIG_MODULE_ID",
    "LOGGER_MODULE_ID",
    "SYSTEM_MODULE_IDS",
    "ModuleLoader",
    "ModuleRecord",
    "ModuleState",
]
