"""Sync cycle: fetch the battlefield report, parse it, swap the snapshot."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from questlink.config.models import BattlefieldConfig
from questlink.rpc.errors import ToolError
from questlink.rpc.manager import SidecarManager
from questlink.rpc.results import tool_error_message, tool_result_text
from questlink.spatial.index import SpatialIndex
from questlink.spatial.parser import ParsedBattlefield, parse_battlefield

logger = logging.getLogger(__name__)


class BattlefieldSync:
    """Collaborator-facing facade over the sidecars and the spatial index."""

    def __init__(
        self,
        manager: SidecarManager,
        index: SpatialIndex | None = None,
        config: BattlefieldConfig | None = None,
    ) -> None:
        self._manager = manager
        self._index = index or SpatialIndex()
        self._config = config or BattlefieldConfig()
        self._last_report: str | None = None
        self._sync_lock = asyncio.Lock()

    @property
    def index(self) -> SpatialIndex:
        return self._index

    @property
    def manager(self) -> SidecarManager:
        return self._manager

    @property
    def last_report(self) -> str | None:
        return self._last_report

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        server: str | None = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Any:
        """Call a tool, on the battlefield server unless another is named."""
        return await self._manager.call(
            server or self._config.server,
            name,
            arguments,
            timeout=timeout,
            cancel=cancel,
        )

    async def sync(self) -> ParsedBattlefield:
        """Fetch and parse one report, then replace the index snapshot.

        A report with no recognisable records leaves the current snapshot in
        place. RPC failures and tool errors propagate and also leave it
        untouched.

        Raises:
            ToolError: If the tool answered with an error result.
        """
        async with self._sync_lock:
            result = await self.call(self._config.tool, {})
            if message := tool_error_message(result):
                raise ToolError(self._config.tool, message, server=self._config.server)
            text = tool_result_text(result)
            self._last_report = text
            return self.apply_report(text)

    def apply_report(self, text: str) -> ParsedBattlefield:
        """Parse report text and install it as the current snapshot."""
        parsed = parse_battlefield(
            text,
            default_grid_extent=self._config.grid_extent,
            feet_per_unit=self._config.feet_per_unit,
        )
        if parsed.is_empty:
            logger.warning(
                "No entities or terrain parsed, keeping current snapshot",
                extra={"diagnostics": len(parsed.diagnostics)},
            )
            return parsed
        self._index.replace_snapshot(parsed.entities, parsed.terrain, parsed.grid_extent)
        logger.info(
            "Battlefield synced: %d entities, %d terrain features",
            len(parsed.entities),
            len(parsed.terrain),
        )
        return parsed
