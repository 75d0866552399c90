"""Configuration commands."""

from typing import Annotated

import click
import typer

from questlink.cli.commands import load_cli_config
from questlink.cli.console import console, error


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        ctx: typer.Context,
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, paths"),
        ] = None,
    ) -> None:
        """Inspect configuration."""
        if action is None:
            click.echo(click.get_current_context().get_help())
            raise typer.Exit(0)

        from rich.table import Table

        if action == "show":
            cfg = load_cli_config(ctx)
            table = Table(title="Configuration")
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Binaries", str(cfg.sidecars.binaries_dir))
            table.add_row("Sidecars", ", ".join(cfg.sidecars.servers))
            table.add_row("Request timeout", f"{cfg.sidecars.request_timeout:g}s")
            table.add_row("Protocol", cfg.sidecars.protocol_version)
            table.add_row(
                "Battlefield", f"{cfg.battlefield.server} / {cfg.battlefield.tool}"
            )
            table.add_row("Grid extent", str(cfg.battlefield.grid_extent))
            table.add_row("Log level", cfg.logging.level)
            console.print(table)

        elif action == "paths":
            from questlink.config.paths import get_all_paths

            table = Table(title="Paths")
            table.add_column("Name", style="cyan")
            table.add_column("Path")
            for name, path in get_all_paths().items():
                table.add_row(name, str(path))
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, paths")
            raise typer.Exit(1)
