"""Centralized path management for questlink.

All state (config, logs, sidecar binaries) lives under a single base
directory. The base directory can be overridden with the QUESTLINK_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.questlink
- Windows: %USERPROFILE%\\.questlink
"""

import os
import sys
from functools import lru_cache
from pathlib import Path

ENV_VAR = "QUESTLINK_HOME"
BINARIES_ENV_VAR = "QUESTLINK_BINARIES_DIR"


@lru_cache(maxsize=1)
def get_questlink_home() -> Path:
    """Get the base directory for all questlink data.

    Resolution order:
    1. QUESTLINK_HOME environment variable (if set)
    2. Platform default (~/.questlink)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".questlink"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_questlink_home() / "config.toml"


def get_binaries_path() -> Path:
    """Get the directory sidecar executables are resolved against."""
    if env_dir := os.environ.get(BINARIES_ENV_VAR):
        return Path(env_dir).expanduser().resolve()
    return get_questlink_home() / "binaries"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_questlink_home() / "logs"


def resolve_sidecar_command(binaries_dir: Path | None, server_name: str) -> list[str]:
    """Map a logical server name to the command that launches it.

    The executable is ``<binaries_dir>/<server_name>``; on Windows an
    ``.exe`` sibling is preferred when present. Existence is not checked
    here, a missing file surfaces as a SpawnError at spawn time.
    """
    name = server_name.strip()
    if not name or "/" in name or "\\" in name:
        raise ValueError(f"invalid sidecar name: {server_name!r}")
    base = Path(binaries_dir) if binaries_dir is not None else get_binaries_path()
    executable = base / name
    if sys.platform == "win32":
        exe = executable.with_name(f"{name}.exe")
        if exe.exists():
            executable = exe
    return [str(executable)]


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for display."""
    return {
        "home": get_questlink_home(),
        "config": get_config_path(),
        "binaries": get_binaries_path(),
        "logs": get_logs_path(),
    }
