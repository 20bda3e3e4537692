"""Example module — class-based entry point through ``MODULE``."""

from __future__ import annotations

from typing import Any

from modhost.modules.base import BaseModule


class NotesApi:
    def __init__(self, config: Any, greet: Any) -> None:
        self._config = config
        self._greet = greet

    def items(self) -> list[str]:
        return list((self._config.get_config("notes") or {}).get("items", []))

    async def add(self, text: str) -> None:
        items = self.items() + [text]
        await self._config.set_config("notes", {"items": items})

    def welcome(self, name: str) -> str:
        return f"{self._greet(name)} You have {len(self.items())} note(s)."


class NotesModule(BaseModule):
    MODULE_ID = "notes"

    def __init__(self) -> None:
        self._log: Any = None

    async def initialize(self, context: dict[str, Any]) -> dict[str, Any]:
        self._log = context["logger"]["api"]
        api = NotesApi(context["config"]["api"], context["greeter"]["api"]["greet"])
        self._log.info("ready", notes=len(api.items()))
        return {"api": api}

    async def cleanup(self) -> None:
        if self._log is not None:
            self._log.info("stopping")


MODULE = NotesModule
