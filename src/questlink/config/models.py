"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from questlink.config.paths import get_binaries_path
from questlink.rpc.protocol import MCP_PROTOCOL_VERSION

GAME_STATE_SERVER = "rpg-game-state-server"
COMBAT_SERVER = "rpg-combat-engine-server"


class SidecarsConfig(BaseModel):
    """Configuration for the sidecar worker processes.

    Each entry in ``servers`` is a logical name resolved to an executable
    inside ``binaries_dir``. One subprocess is spawned per name.
    """

    binaries_dir: Path = Field(default_factory=get_binaries_path)
    servers: list[str] = Field(
        default_factory=lambda: [GAME_STATE_SERVER, COMBAT_SERVER]
    )
    request_timeout: float = Field(default=10.0, gt=0)
    shutdown_timeout: float = Field(default=2.0, gt=0)
    protocol_version: str = MCP_PROTOCOL_VERSION
    client_name: str = "quest-keeper-client"
    client_version: str = "0.1.0"

    @field_validator("servers")
    @classmethod
    def _unique_servers(cls, value: list[str]) -> list[str]:
        names = [v.strip() for v in value]
        if any(not n for n in names):
            raise ValueError("server names must not be empty")
        if len(set(names)) != len(names):
            raise ValueError("server names must be unique")
        return names


class BattlefieldConfig(BaseModel):
    """Where the battlefield report comes from and how it maps to the grid."""

    server: str = COMBAT_SERVER
    tool: str = "describe_battlefield"
    grid_extent: int = Field(default=20, ge=1)
    feet_per_unit: float = Field(default=5.0, gt=0)
    search_radius: int = Field(default=5, ge=0)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_to_file: bool = False


class QuestlinkConfig(BaseModel):
    """Root configuration model."""

    sidecars: SidecarsConfig = Field(default_factory=SidecarsConfig)
    battlefield: BattlefieldConfig = Field(default_factory=BattlefieldConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _validate_battlefield_server(self) -> "QuestlinkConfig":
        if self.battlefield.server not in self.sidecars.servers:
            raise ValueError(
                f"battlefield.server '{self.battlefield.server}' is not one of "
                f"sidecars.servers {self.sidecars.servers}"
            )
        return self
