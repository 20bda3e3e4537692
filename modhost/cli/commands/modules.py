"""CLI — Module inspection commands.

These commands read manifests straight from the modules directory; they do
not start the runtime or import any module code.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from modhost.exceptions import ManifestError
from modhost.modules.manifest import ModuleManifest, has_manifest, read_manifest

app = typer.Typer(help="Inspect the modules available in a modules directory.")
console = Console()

ModulesDirOption = Annotated[
    Path | None,
    typer.Option("--modules-dir", "-m", help="Directory containing module subdirectories."),
]


def _resolve_dir(modules_dir: Path | None) -> Path:
    if modules_dir is not None:
        return modules_dir.expanduser()
    from modhost.config import get_settings

    return get_settings().runtime.modules_dir


async def _scan(root: Path) -> list[tuple[str, ModuleManifest | None, str | None]]:
    found: list[tuple[str, ModuleManifest | None, str | None]] = []
    for module_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        if not has_manifest(module_dir):
            continue
        try:
            found.append((module_dir.name, await read_manifest(module_dir), None))
        except ManifestError as exc:
            found.append((module_dir.name, None, exc.message))
    return found


@app.command("list")
def list_modules(modules_dir: ModulesDirOption = None) -> None:
    """List every module directory and its manifest."""
    root = _resolve_dir(modules_dir)
    if not root.is_dir():
        console.print(f"[red]Error: modules directory {root} does not exist[/red]")
        raise typer.Exit(1)

    entries = asyncio.run(_scan(root))

    table = Table(title=f"Modules in {root}")
    table.add_column("ID", style="cyan")
    table.add_column("Version")
    table.add_column("Dependencies")
    table.add_column("Provides")
    table.add_column("Description")

    for module_id, manifest, error in entries:
        if manifest is None:
            table.add_row(module_id, "-", "-", "-", f"[red]{error}[/red]")
            continue
        table.add_row(
            manifest.id,
            manifest.version,
            ", ".join(manifest.dependencies) or "-",
            ", ".join(sorted(manifest.provides)) or "-",
            manifest.description,
        )
    console.print(table)


@app.command("inspect")
def inspect_module(
    module_id: str = typer.Argument(help="Module ID to inspect."),
    modules_dir: ModulesDirOption = None,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
) -> None:
    """Show the full manifest for a module."""
    root = _resolve_dir(modules_dir)
    try:
        manifest = asyncio.run(read_manifest(root / module_id))
    except ManifestError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print(Syntax(json.dumps(manifest.to_dict(), indent=2), "json"))
        return

    console.print(f"[bold]{manifest.name}[/bold] ({manifest.id}) v{manifest.version}")
    console.print(manifest.description)
    console.print()

    table = Table(show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("dependencies", ", ".join(manifest.dependencies) or "-")
    table.add_row("provides", ", ".join(sorted(manifest.provides)) or "-")
    table.add_row("tags", ", ".join(sorted(manifest.tags)) or "-")
    console.print(table)
