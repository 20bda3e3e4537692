"""CLI — Configuration Store commands.

Edit the per-module configuration document offline, through the same
:class:`~modhost.modules.config_store.ConfigStore` the runtime uses.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.syntax import Syntax

from modhost.exceptions import ConfigPersistenceError
from modhost.modules.config_store import ConfigStore

app = typer.Typer(help="Read and edit the module configuration document.")
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to the module configuration document (JSON)."),
]


async def _open_store(config: Path | None) -> ConfigStore:
    if config is None:
        from modhost.config import get_settings

        config = get_settings().runtime.config_path
    store = ConfigStore(config)
    await store.load()
    if store.last_error is not None:
        console.print(f"[yellow]Warning: {store.last_error.message}[/yellow]")
    return store


def _print_json(value: Any) -> None:
    console.print(Syntax(json.dumps(value, indent=2, ensure_ascii=False), "json"))


@app.command("show")
def show(
    module_id: str | None = typer.Argument(None, help="Only show this module's settings."),
    config: ConfigOption = None,
) -> None:
    """Print the whole document, or one module's settings."""
    store = asyncio.run(_open_store(config))
    if module_id is None:
        _print_json(store.snapshot())
        return
    if not store.has_config(module_id):
        console.print(f"[yellow]No configuration stored for '{module_id}'[/yellow]")
        raise typer.Exit(1)
    _print_json(store.get_config(module_id))


@app.command("set")
def set_value(
    module_id: str = typer.Argument(help="Module ID to configure."),
    value: str = typer.Argument(help="Settings as a JSON value."),
    config: ConfigOption = None,
) -> None:
    """Replace a module's settings with a JSON value."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error: value is not valid JSON ({exc.msg})[/red]")
        raise typer.Exit(1)

    async def _save() -> ConfigStore:
        store = await _open_store(config)
        await store.set_config(module_id, parsed)
        return store

    try:
        store = asyncio.run(_save())
    except ConfigPersistenceError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Saved configuration for '{module_id}' to {store.path}[/green]")


@app.command("remove")
def remove(
    module_id: str = typer.Argument(help="Module ID whose settings are removed."),
    config: ConfigOption = None,
) -> None:
    """Delete a module's settings from the document."""

    async def _remove() -> None:
        store = await _open_store(config)
        await store.remove_config(module_id)

    try:
        asyncio.run(_remove())
    except ConfigPersistenceError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Removed configuration for '{module_id}'[/green]")
