"""Module layer — Manifest reader.

A ModuleManifest is the declarative contract between a module directory and
the lifecycle runtime.

It describes:
  - Module identity (``id`` must equal the directory name) and version
  - Declared dependency IDs, in the order they should be resolved
  - Capability tags the module provides, plus free-form tags

Manifests are never cached: every discovery pass re-reads them from disk.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modhost.exceptions import ManifestInvalidError, ManifestNotFoundError

MANIFEST_FILENAME = "manifest.json"


class ModuleManifest(BaseModel):
    """Immutable descriptor read from ``<module_dir>/manifest.json``."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    version: str
    description: str
    dependencies: list[str] = Field(default_factory=list)
    provides: frozenset[str] = Field(default_factory=frozenset)
    tags: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("dependencies", mode="after")
    @classmethod
    def dedupe_dependencies(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for dep in v:
            if not dep:
                raise ValueError("dependency IDs must be non-empty strings")
            if dep not in seen:
                seen.append(dep)
        return seen

    def depends_on(self, module_id: str) -> bool:
        return module_id in self.dependencies

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "dependencies": list(self.dependencies),
            "provides": sorted(self.provides),
            "tags": sorted(self.tags),
        }


def manifest_path(module_dir: Path) -> Path:
    return Path(module_dir) / MANIFEST_FILENAME


def has_manifest(module_dir: Path) -> bool:
    """Return True if *module_dir* looks like a module (has a manifest file)."""
    return manifest_path(module_dir).is_file()


def parse_manifest(raw: str | bytes, module_dir: Path) -> ModuleManifest:
    """Validate raw manifest text for the module living in *module_dir*.

    Raises:
        ManifestInvalidError: Malformed JSON, wrong shape, or an ``id`` that
            does not match the directory name.
    """
    path = manifest_path(module_dir)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestInvalidError(path, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc

    if not isinstance(data, dict):
        raise ManifestInvalidError(
            path, f"expected a JSON object at the top level, got {type(data).__name__}"
        )

    try:
        manifest = ModuleManifest.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        messages = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in errors
        )
        raise ManifestInvalidError(path, messages, errors=errors) from exc

    directory_name = Path(module_dir).name
    if manifest.id != directory_name:
        raise ManifestInvalidError(
            path,
            f"manifest id '{manifest.id}' does not match directory name '{directory_name}'",
        )
    return manifest


async def read_manifest(module_dir: Path) -> ModuleManifest:
    """Read and validate the manifest of the module in *module_dir*.

    Raises:
        ManifestNotFoundError: The directory has no manifest file.
        ManifestInvalidError:  The manifest cannot be parsed into the required shape.
    """
    path = manifest_path(module_dir)
    if not path.is_file():
        raise ManifestNotFoundError(path)
    try:
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestInvalidError(path, f"unreadable ({exc})") from exc
    return parse_manifest(raw, module_dir)
