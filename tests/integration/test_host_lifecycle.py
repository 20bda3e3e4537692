"""Integration tests — ModuleHost driving the bundled example modules end to end."""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from modhost.config import LoggingConfig, RuntimeConfig, Settings
from modhost.exceptions import HostStartupError
from modhost.host import ModuleHost, run_host

EXAMPLE_MODULES = Path(__file__).resolve().parents[2] / "examples" / "modules"


@pytest.fixture
def example_modules(tmp_path: Path) -> Path:
    target = tmp_path / "modules"
    shutil.copytree(EXAMPLE_MODULES, target)
    return target


def _settings(modules_dir: Path, config_path: Path, **runtime) -> Settings:
    return Settings(
        runtime=RuntimeConfig(modules_dir=modules_dir, config_path=config_path, **runtime),
        logging=LoggingConfig(level="debug"),
    )


def _break(modules_dir: Path, module_id: str) -> None:
    module_dir = modules_dir / module_id
    module_dir.mkdir()
    (module_dir / "manifest.json").write_text(
        json.dumps(
            {"id": module_id, "name": "Broken", "version": "0.0.1", "description": "", "dependencies": []}
        )
    )
    (module_dir / "module.py").write_text(
        "async def initialize(context):\n    raise RuntimeError('cannot start')\n"
    )


@pytest.mark.integration
class TestExampleModules:
    async def test_loads_in_dependency_order(self, example_modules: Path, config_path: Path) -> None:
        host = ModuleHost(_settings(example_modules, config_path))
        loaded = await host.start()
        try:
            assert loaded == ["clock", "greeter", "notes"]
            assert host.loader.list_failed() == {}

            notes = host.loader.get_api("notes")
            await notes.add("buy milk")
            assert notes.items() == ["buy milk"]
            assert notes.welcome("Ada").startswith("Hello, Ada!")
            assert "1 note(s)" in notes.welcome("Ada")
        finally:
            assert await host.stop() == {}

        document = json.loads(config_path.read_text())
        assert document["notes"] == {"items": ["buy milk"]}
        assert "format" in document["clock"]
        assert host.loader.load_order == []

    async def test_configuration_survives_restart(
        self, example_modules: Path, config_path: Path
    ) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"greeter": {"greeting": "Bonjour"}}))

        host = ModuleHost(_settings(example_modules, config_path))
        await host.start()
        try:
            greet = host.loader.get_api("greeter")["greet"]
            assert greet("Ada").startswith("Bonjour, Ada!")
            assert host.loader.get_module_context("greeter")["greeting"] == "Bonjour"
        finally:
            await host.stop()

    async def test_stop_is_idempotent(self, example_modules: Path, config_path: Path) -> None:
        host = ModuleHost(_settings(example_modules, config_path))
        await host.start()
        await host.stop()
        assert await host.stop() == {}


@pytest.mark.integration
class TestLoadFailures:
    async def test_fail_on_load_error(self, example_modules: Path, config_path: Path) -> None:
        _break(example_modules, "broken")
        host = ModuleHost(_settings(example_modules, config_path))
        with pytest.raises(HostStartupError) as exc_info:
            await host.start()
        assert list(exc_info.value.failed) == ["broken"]
        assert host.loader.load_order == []
        assert not host.loader.initialized

    async def test_degraded_start(self, example_modules: Path, config_path: Path) -> None:
        _break(example_modules, "broken")
        host = ModuleHost(_settings(example_modules, config_path, fail_on_load_error=False))
        loaded = await host.start()
        try:
            assert loaded == ["clock", "greeter", "notes"]
            assert "broken" in host.loader.list_failed()
        finally:
            await host.stop()

    async def test_disabled_module_takes_dependents_down(
        self, example_modules: Path, config_path: Path
    ) -> None:
        host = ModuleHost(
            _settings(example_modules, config_path, disabled=["greeter"], fail_on_load_error=False)
        )
        loaded = await host.start()
        try:
            assert loaded == ["clock"]
            assert list(host.loader.list_failed()) == ["notes"]
        finally:
            await host.stop()


@pytest.mark.integration
class TestRunForever:
    async def test_runs_until_stop_requested(self, example_modules: Path, config_path: Path) -> None:
        host = ModuleHost(_settings(example_modules, config_path))
        task = asyncio.create_task(host.run_forever())

        for _ in range(200):
            if host.loader.is_loaded("notes"):
                break
            await asyncio.sleep(0.01)
        assert host.loader.load_order == ["clock", "greeter", "notes"]

        host.request_stop()
        await asyncio.wait_for(task, timeout=5)
        assert host.loader.load_order == []

    async def test_startup_failure_propagates(self, example_modules: Path, config_path: Path) -> None:
        _break(example_modules, "broken")
        host = ModuleHost(_settings(example_modules, config_path))
        with pytest.raises(HostStartupError):
            await asyncio.wait_for(host.run_forever(), timeout=5)


@pytest.mark.integration
class TestRunHost:
    def test_missing_modules_dir_exits_one(self, tmp_path: Path, config_path: Path) -> None:
        settings = _settings(tmp_path / "absent", config_path)
        with patch("modhost.host.configure_logging") as mock_configure:
            assert run_host(settings) == 1
        mock_configure.assert_called_once()

    def test_failed_module_exits_one(self, example_modules: Path, config_path: Path) -> None:
        _break(example_modules, "broken")
        with patch("modhost.host.configure_logging"):
            assert run_host(_settings(example_modules, config_path)) == 1
