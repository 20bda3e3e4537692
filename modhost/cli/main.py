"""modhost CLI — Entry point.

Usage:
    modhost run --config ./config/config.json --modules-dir ./modules
    modhost modules list
    modhost modules inspect <module_id>
    modhost config show [<module_id>]
    modhost config set <module_id> '<json>'
    modhost config remove <module_id>
"""

from __future__ import annotations

import typer

from modhost import __version__
from modhost.cli.commands import config, modules, run

app = typer.Typer(
    name="modhost",
    help="modhost — Discover, wire and run directory-packaged modules.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.command("run")(run.run)
app.add_typer(modules.app, name="modules")
app.add_typer(config.app, name="config")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version."
    ),
) -> None:
    pass


if __name__ == "__main__":
    app()
