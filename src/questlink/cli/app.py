"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from questlink.cli.commands import battlefield, config, sidecar

app = typer.Typer(
    name="questlink",
    help="questlink - sidecar RPC and battlefield model",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration and set up logging for every command."""
    from questlink.logging import configure_logging

    ctx.obj = {"config_path": config_path, "verbose": verbose}
    configure_logging(level="DEBUG" if verbose else None, use_rich=True)


sidecar.register(app)
battlefield.register(app)
config.register(app)


if __name__ == "__main__":
    app()
