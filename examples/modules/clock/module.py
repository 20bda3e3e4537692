"""Example module — publishes the current time.

No declared dependencies: the ``config`` and ``logger`` system modules are
always injected.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

DEFAULT_CONFIG = {"format": "%Y-%m-%dT%H:%M:%S%z"}


class ClockApi:
    def __init__(self, fmt: str) -> None:
        self._fmt = fmt

    def now(self) -> str:
        return datetime.now(timezone.utc).strftime(self._fmt)


async def initialize(context: dict[str, Any]) -> dict[str, Any]:
    config = context["config"]["api"]
    log = context["logger"]["api"]

    settings = config.get_config("clock")
    if settings is None:
        settings = dict(DEFAULT_CONFIG)
        await config.set_config("clock", settings)
        log.info("default_config_created")

    return {"api": ClockApi(settings["format"])}


async def cleanup() -> None:
    pass
