"""Module layer — Capability registry.

Maps a module ID to the capability object ("api") the module chose to
publish from its ``initialize`` hook.

The registry is owned by one :class:`~modhost.modules.loader.ModuleLoader`,
which is its only writer.  Everyone else reads through
:meth:`CapabilityRegistry.get`.  Each loader owns its own instance; there
is no module-level registry.
"""

from __future__ import annotations

from typing import Any, Iterator

from modhost.exceptions import ApiNotFoundError, DuplicateModuleError
from modhost.logging import get_logger

log = get_logger(__name__)


class CapabilityRegistry:
    """In-memory ``module_id → api`` mapping.

    Usage::

        registry = CapabilityRegistry()
        registry.register("mqtt", mqtt_api)
        registry.get("mqtt").publish("topic", "payload")
        registry.unregister("mqtt")
    """

    def __init__(self) -> None:
        self._apis: dict[str, Any] = {}

    def register(self, module_id: str, api: Any) -> None:
        """Publish *api* under *module_id*.

        Raises:
            ValueError:           *module_id* is empty.
            DuplicateModuleError: Something is already registered under the ID.
        """
        if not module_id:
            raise ValueError("Cannot register a capability without a module ID.")
        if module_id in self._apis:
            raise DuplicateModuleError(module_id)
        self._apis[module_id] = api
        log.debug("capability_registered", module_id=module_id, api_type=type(api).__name__)

    def unregister(self, module_id: str) -> None:
        """Remove the capability for *module_id*.  Missing IDs are ignored."""
        if module_id in self._apis:
            del self._apis[module_id]
            log.debug("capability_unregistered", module_id=module_id)

    def get(self, module_id: str) -> Any:
        """Return the capability published by *module_id*.

        Raises:
            ApiNotFoundError: Nothing is registered under this ID.
        """
        try:
            return self._apis[module_id]
        except KeyError:
            raise ApiNotFoundError(module_id) from None

    def has(self, module_id: str) -> bool:
        return module_id in self._apis

    def list_ids(self) -> list[str]:
        return sorted(self._apis)

    def clear(self) -> None:
        self._apis.clear()

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._apis

    def __len__(self) -> int:
        return len(self._apis)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._apis))
