"""Unit tests — modules/config_store.py (ConfigStore, ConfigStoreModule)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from modhost.exceptions import ConfigPersistenceError
from modhost.modules import config_store as config_store_module
from modhost.modules.config_store import ConfigStore, ConfigStoreModule


def _on_disk(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
async def store(config_path: Path) -> ConfigStore:
    s = ConfigStore(config_path)
    await s.load()
    return s


@pytest.mark.unit
class TestLoad:
    async def test_missing_document_created_empty(self, config_path: Path) -> None:
        s = ConfigStore(config_path)
        await s.load()
        assert config_path.exists()
        assert _on_disk(config_path) == {}
        assert s.module_ids() == []
        assert s.last_error is None

    async def test_existing_document_loaded(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"mqtt": {"port": 1883}}), encoding="utf-8")
        s = ConfigStore(config_path)
        await s.load()
        assert s.get_config("mqtt") == {"port": 1883}
        assert s.has_config("mqtt")

    async def test_corrupt_document_degrades_to_empty(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{broken", encoding="utf-8")
        s = ConfigStore(config_path)
        with capture_logs() as logs:
            await s.load()
        assert s.module_ids() == []
        assert isinstance(s.last_error, ConfigPersistenceError)
        assert any(entry["event"] == "config_degraded_to_empty" for entry in logs)
        # Left untouched until the next write.
        assert config_path.read_text(encoding="utf-8") == "{broken"

    async def test_non_object_document_degrades(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text("[1, 2, 3]", encoding="utf-8")
        s = ConfigStore(config_path)
        await s.load()
        assert s.snapshot() == {}
        assert s.last_error is not None

    async def test_next_write_replaces_corrupt_document(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{broken", encoding="utf-8")
        s = ConfigStore(config_path)
        await s.load()
        await s.set_config("mqtt", {"port": 1})
        assert _on_disk(config_path) == {"mqtt": {"port": 1}}


@pytest.mark.unit
class TestReads:
    async def test_get_missing_is_none(self, store: ConfigStore) -> None:
        assert store.get_config("ghost") is None
        assert not store.has_config("ghost")

    async def test_snapshot_is_detached(self, store: ConfigStore) -> None:
        await store.set_config("mqtt", {"port": 1883})
        snap = store.snapshot()
        snap["mqtt"]["port"] = 0
        assert store.get_config("mqtt") == {"port": 1883}


@pytest.mark.unit
class TestWrites:
    async def test_set_writes_through(self, store: ConfigStore, config_path: Path) -> None:
        await store.set_config("mqtt", {"broker": "mqtt://localhost"})
        assert _on_disk(config_path) == {"mqtt": {"broker": "mqtt://localhost"}}

    async def test_set_replaces_whole_value(self, store: ConfigStore) -> None:
        await store.set_config("mqtt", {"broker": "a", "port": 1})
        await store.set_config("mqtt", {"broker": "b"})
        assert store.get_config("mqtt") == {"broker": "b"}

    async def test_value_is_copied(self, store: ConfigStore) -> None:
        value = {"items": [1, 2]}
        await store.set_config("list", value)
        value["items"].append(3)
        assert store.get_config("list") == {"items": [1, 2]}

    async def test_scalar_values_allowed(self, store: ConfigStore, config_path: Path) -> None:
        await store.set_config("interval", 30)
        assert _on_disk(config_path) == {"interval": 30}

    async def test_non_serialisable_rejected_without_change(
        self, store: ConfigStore, config_path: Path
    ) -> None:
        with pytest.raises(ConfigPersistenceError, match="not JSON-serialisable"):
            await store.set_config("bad", {"obj": object()})
        assert not store.has_config("bad")
        assert _on_disk(config_path) == {}

    async def test_remove(self, store: ConfigStore, config_path: Path) -> None:
        await store.set_config("a", 1)
        await store.set_config("b", 2)
        await store.remove_config("a")
        assert store.module_ids() == ["b"]
        assert _on_disk(config_path) == {"b": 2}

    async def test_remove_absent_still_persists(
        self, store: ConfigStore, config_path: Path
    ) -> None:
        config_path.unlink()
        await store.remove_config("ghost")
        assert _on_disk(config_path) == {}

    async def test_failed_write_rolls_back_set(
        self, store: ConfigStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await store.set_config("mqtt", {"port": 1})

        def _fail(path, document):
            raise OSError("disk full")

        monkeypatch.setattr(config_store_module, "_write_document", _fail)
        with pytest.raises(ConfigPersistenceError, match="disk full"):
            await store.set_config("mqtt", {"port": 2})
        with pytest.raises(ConfigPersistenceError):
            await store.set_config("fresh", {"x": 1})

        assert store.get_config("mqtt") == {"port": 1}
        assert not store.has_config("fresh")

    async def test_failed_write_rolls_back_remove(
        self, store: ConfigStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await store.set_config("mqtt", {"port": 1})

        def _fail(path, document):
            raise OSError("read-only file system")

        monkeypatch.setattr(config_store_module, "_write_document", _fail)
        with pytest.raises(ConfigPersistenceError):
            await store.remove_config("mqtt")
        assert store.get_config("mqtt") == {"port": 1}

    async def test_no_temp_file_left_behind(self, store: ConfigStore, config_path: Path) -> None:
        await store.set_config("a", 1)
        assert sorted(p.name for p in config_path.parent.iterdir()) == [config_path.name]


@pytest.mark.unit
class TestReload:
    async def test_set_reload_round_trip(self, store: ConfigStore, config_path: Path) -> None:
        await store.set_config("x", {"a": 1})
        await store.reload_config()
        assert store.get_config("x") == {"a": 1}
        assert _on_disk(config_path) == {"x": {"a": 1}}

    async def test_reload_picks_up_external_edits(
        self, store: ConfigStore, config_path: Path
    ) -> None:
        await store.set_config("a", 1)
        config_path.write_text(json.dumps({"b": 2}), encoding="utf-8")
        await store.reload_config()
        assert store.snapshot() == {"b": 2}

    async def test_reload_recreates_deleted_document(
        self, store: ConfigStore, config_path: Path
    ) -> None:
        await store.set_config("a", 1)
        config_path.unlink()
        await store.reload_config()
        assert store.snapshot() == {}
        assert _on_disk(config_path) == {}


@pytest.mark.unit
class TestConfigStoreModule:
    async def test_initialize_publishes_store(self, config_path: Path) -> None:
        module = ConfigStoreModule(config_path)
        context = await module.initialize({})
        assert context["api"] is module.store
        assert module.store.path == config_path.resolve()
        assert config_path.exists()

    async def test_cleanup_is_noop(self, config_path: Path) -> None:
        module = ConfigStoreModule(config_path)
        await module.initialize({})
        await module.cleanup()
