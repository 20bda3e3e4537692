"""CLI — Run the module host in the foreground."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

console = Console()


def run(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to the module configuration document (JSON)."),
    ] = None,
    modules_dir: Annotated[
        Path | None,
        typer.Option("--modules-dir", "-m", help="Directory containing module subdirectories."),
    ] = None,
    settings_file: Annotated[
        Path | None, typer.Option("--settings", "-s", help="Path to settings.yaml.")
    ] = None,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging."),
) -> None:
    """Load every module and keep running until SIGINT / SIGTERM."""
    from modhost.config import Settings, override_settings
    from modhost.host import run_host

    settings = Settings.load(settings_file=settings_file)
    if config is not None:
        settings.runtime.config_path = config.expanduser()
    if modules_dir is not None:
        settings.runtime.modules_dir = modules_dir.expanduser()
    if debug:
        settings.logging.level = "debug"
    override_settings(settings)

    console.print(
        f"[bold green]Starting modhost[/bold green] "
        f"modules={settings.runtime.modules_dir} config={settings.runtime.config_path}"
    )
    exit_code = run_host(settings)
    if exit_code != 0:
        console.print("[red]modhost stopped: modules failed to load[/red]")
        raise typer.Exit(exit_code)
