"""Configuration module."""

from questlink.config.loader import get_default_config, load_config
from questlink.config.models import (
    BattlefieldConfig,
    LoggingConfig,
    QuestlinkConfig,
    SidecarsConfig,
)
from questlink.config.paths import (
    get_binaries_path,
    get_config_path,
    get_logs_path,
    get_questlink_home,
    resolve_sidecar_command,
)

__all__ = [
    "BattlefieldConfig",
    "LoggingConfig",
    "QuestlinkConfig",
    "SidecarsConfig",
    "get_binaries_path",
    "get_config_path",
    "get_default_config",
    "get_logs_path",
    "get_questlink_home",
    "load_config",
    "resolve_sidecar_command",
]
