"""Example module — depends on ``clock`` and reads its own settings."""

from __future__ import annotations

from typing import Any

_greeted: list[str] = []


async def initialize(context: dict[str, Any]) -> dict[str, Any]:
    clock = context["clock"]["api"]
    settings = context["config"]["api"].get_config("greeter") or {"greeting": "Hello"}
    log = context["logger"]["api"]

    def greet(name: str) -> str:
        _greeted.append(name)
        return f"{settings['greeting']}, {name}! It is {clock.now()}."

    log.info("ready", greeting=settings["greeting"])
    return {"api": {"greet": greet}, "greeting": settings["greeting"]}


async def cleanup() -> None:
    _greeted.clear()
