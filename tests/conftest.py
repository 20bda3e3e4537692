"""Shared pytest fixtures for the modhost test suite."""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest

from modhost.modules.loader import ModuleLoader

# Default entry file written by ``write_module``.  It records lifecycle calls
# into the ``events`` list passed as an init option, and publishes an API
# describing which keys were injected into its context.
_DEFAULT_SOURCE = """
_events = None


async def initialize(context):
    global _events
    _events = context.get("events")
    if _events is not None:
        _events.append(("init", MODULE_ID))
    if INIT_ERROR:
        raise RuntimeError(INIT_ERROR)
    return {
        "api": {"id": MODULE_ID, "injected": sorted(context)},
        "module_id": MODULE_ID,
    }


async def cleanup():
    if _events is not None:
        _events.append(("cleanup", MODULE_ID))
    if CLEANUP_ERROR:
        raise RuntimeError(CLEANUP_ERROR)
"""


WriteModule = Callable[..., Path]


# ---------------------------------------------------------------------------
# Module directories
# ---------------------------------------------------------------------------


@pytest.fixture
def modules_dir(tmp_path: Path) -> Path:
    path = tmp_path / "modules"
    path.mkdir()
    return path


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "config.json"


@pytest.fixture
def write_module(modules_dir: Path) -> WriteModule:
    """Factory that writes ``<modules_dir>/<module_id>/{manifest.json,module.py}``.

    Pass ``source`` to replace the default entry file, ``manifest`` to
    replace or extend the manifest, ``init_error`` / ``cleanup_error`` to make
    the default hooks raise.
    """

    def _write(
        module_id: str,
        dependencies: list[str] | None = None,
        *,
        source: str | None = None,
        manifest: dict[str, Any] | None = None,
        init_error: str | None = None,
        cleanup_error: str | None = None,
        root: Path | None = None,
    ) -> Path:
        module_dir = (root or modules_dir) / module_id
        module_dir.mkdir(parents=True, exist_ok=True)

        data: dict[str, Any] = {
            "id": module_id,
            "name": module_id.title(),
            "version": "1.0.0",
            "description": f"Test module {module_id}",
            "dependencies": dependencies or [],
        }
        data.update(manifest or {})
        (module_dir / "manifest.json").write_text(json.dumps(data), encoding="utf-8")

        if source is None:
            header = (
                f"MODULE_ID = {module_id!r}\n"
                f"INIT_ERROR = {init_error!r}\n"
                f"CLEANUP_ERROR = {cleanup_error!r}\n"
            )
            body = header + _DEFAULT_SOURCE
        else:
            body = textwrap.dedent(source)
        (module_dir / "module.py").write_text(body, encoding="utf-8")
        return module_dir

    return _write


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@pytest.fixture
def events() -> list[tuple[str, str]]:
    return []


@pytest.fixture
async def loader(modules_dir: Path, config_path: Path) -> AsyncGenerator[ModuleLoader, None]:
    ldr = ModuleLoader(modules_dir)
    await ldr.initialize_runtime(config_path)
    yield ldr
    await ldr.unload_all_modules()
