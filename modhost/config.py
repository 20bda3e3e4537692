"""modhost — Host settings.

Settings are loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. User settings:    ~/.modhost/settings.yaml
    3. Explicit file passed with ``--settings``
    4. Environment variables prefixed with MODHOST_

These settings configure the host process itself.  Per-module settings live
in the JSON document owned by the Configuration Store system module, whose
path is ``runtime.config_path``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class RuntimeConfig(BaseModel):
    modules_dir: Path = Field(
        default=Path("./modules"),
        description="Directory whose immediate subdirectories are module candidates.",
    )
    config_path: Path = Field(
        default=Path("./config/config.json"),
        description="JSON document backing the Configuration Store system module.",
    )
    fail_on_load_error: bool = Field(
        default=True,
        description=(
            "Exit with a non-zero status when any discovered module fails to load. "
            "When false, failed modules are logged and the host keeps running."
        ),
    )
    disabled: list[str] = Field(
        default_factory=list,
        description="Module IDs skipped during discovery.",
    )

    @field_validator("modules_dir", "config_path", mode="after")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        return v.expanduser()


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MODHOST_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, settings_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [Path.home() / ".modhost" / "settings.yaml"]
        if settings_file:
            candidates.append(settings_file)

        for path in candidates:
            if path.exists():
                import yaml  # lazy import — only needed when a file exists

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton — replaced by ``Settings.load()`` at host startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
