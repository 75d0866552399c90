"""CLI command modules."""

from pathlib import Path

import typer

from questlink.cli.console import error
from questlink.config import QuestlinkConfig


def load_cli_config(ctx: typer.Context) -> QuestlinkConfig:
    """Load the config named by --config, exiting with a message on failure.

    Logging is reconfigured from the ``[logging]`` section unless --verbose
    already forced DEBUG.
    """
    import tomllib

    from pydantic import ValidationError

    from questlink.config import load_config
    from questlink.logging import configure_logging

    obj = ctx.obj or {}
    path: Path | None = obj.get("config_path")
    try:
        config = load_config(path)
    except FileNotFoundError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except tomllib.TOMLDecodeError as e:
        error(f"Invalid TOML: {e}")
        raise typer.Exit(1) from None
    except ValidationError as e:
        error("Configuration validation failed:")
        for err in e.errors():
            loc = ".".join(str(x) for x in err["loc"])
            error(f"  {loc}: {err['msg']}")
        raise typer.Exit(1) from None

    configure_logging(
        level="DEBUG" if obj.get("verbose") else config.logging.level,
        use_rich=True,
        log_to_file=config.logging.log_to_file,
    )
    return config
