"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from questlink.config.models import QuestlinkConfig
from questlink.config.paths import BINARIES_ENV_VAR, get_config_path

LOG_LEVEL_ENV_VAR = "QUESTLINK_LOG_LEVEL"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.questlink/config.toml (or QUESTLINK_HOME)
        Path("/etc/questlink/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Let environment variables override file values."""
    if binaries_dir := os.environ.get(BINARIES_ENV_VAR):
        config.setdefault("sidecars", {})["binaries_dir"] = binaries_dir
    if level := os.environ.get(LOG_LEVEL_ENV_VAR):
        config.setdefault("logging", {})["level"] = level.upper()
    return config


def load_config(path: Path | None = None) -> QuestlinkConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations
            and falls back to built-in defaults when none exists.

    Returns:
        Validated QuestlinkConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
        pydantic.ValidationError: If values fail validation.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)

    return QuestlinkConfig.model_validate(_apply_env_overrides(raw_config))


def get_default_config() -> QuestlinkConfig:
    """Get a default configuration for development/testing."""
    return QuestlinkConfig()
