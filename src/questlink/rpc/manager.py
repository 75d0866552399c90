"""Startup coordination for a set of named sidecar clients."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from questlink.rpc.client import (
    ClientInfo,
    ClientState,
    SidecarClient,
    TransportFactory,
)
from questlink.rpc.transport import StdioTransport

if TYPE_CHECKING:
    from questlink.config.models import SidecarsConfig

logger = logging.getLogger(__name__)


class SidecarManager:
    """Owns named clients and starts them exactly once.

    ``ensure_started`` is single-flight: the first caller launches one startup
    task that connects and initializes every client concurrently, and any
    caller arriving while it runs awaits that same task. A failed startup is
    forgotten so the next call retries.
    """

    def __init__(self, clients: Mapping[str, SidecarClient] | Iterable[SidecarClient]):
        if isinstance(clients, Mapping):
            self._clients = dict(clients)
        else:
            self._clients = {client.name: client for client in clients}
        if not self._clients:
            raise ValueError("at least one sidecar client is required")
        self._startup: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: SidecarsConfig,
        *,
        transport_factory: TransportFactory = StdioTransport,
    ) -> SidecarManager:
        info = ClientInfo(name=config.client_name, version=config.client_version)
        return cls(
            SidecarClient(
                name,
                binaries_dir=config.binaries_dir,
                request_timeout=config.request_timeout,
                protocol_version=config.protocol_version,
                client_info=info,
                shutdown_timeout=config.shutdown_timeout,
                transport_factory=transport_factory,
            )
            for name in config.servers
        )

    @property
    def names(self) -> list[str]:
        return list(self._clients)

    @property
    def started(self) -> bool:
        """True while every client has completed its handshake."""
        return all(
            c.state is ClientState.INITIALIZED for c in self._clients.values()
        )

    def client(self, name: str) -> SidecarClient:
        try:
            return self._clients[name]
        except KeyError:
            raise KeyError(
                f"unknown sidecar '{name}' (known: {', '.join(self._clients)})"
            ) from None

    async def ensure_started(self) -> None:
        """Connect and initialize every client, once.

        Raises:
            SidecarError: The first client error; every concurrent waiter
                receives the same one.
        """
        if self.started:
            return
        if self._startup is None:
            self._startup = asyncio.create_task(self._start_all())
            self._startup.add_done_callback(_retrieve_startup_error)
        # shield so one waiter's cancellation does not abort the shared startup
        await asyncio.shield(self._startup)

    async def _start_all(self) -> None:
        logger.info("Starting sidecars: %s", ", ".join(self._clients))
        try:
            results = await asyncio.gather(
                *(self._start_client(c) for c in self._clients.values()),
                return_exceptions=True,
            )
            for client, result in zip(self._clients.values(), results, strict=True):
                if isinstance(result, BaseException):
                    logger.error("Sidecar %s failed to start: %s", client.name, result)
                    raise result
            logger.info("All sidecars ready")
        finally:
            self._startup = None

    @staticmethod
    async def _start_client(client: SidecarClient) -> None:
        await client.connect()
        await client.initialize()

    async def call(
        self,
        server: str,
        tool: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Any:
        """Call a tool on the named sidecar, starting sidecars if needed."""
        client = self.client(server)
        await self.ensure_started()
        return await client.call_tool(tool, arguments, timeout=timeout, cancel=cancel)

    async def list_tools(self, server: str) -> Any:
        client = self.client(server)
        await self.ensure_started()
        return await client.list_tools()

    async def close(self) -> None:
        """Close every client and forget the startup state."""
        startup = self._startup
        if startup is not None and not startup.done():
            startup.cancel()
        self._startup = None
        await asyncio.gather(
            *(client.close() for client in self._clients.values()),
            return_exceptions=True,
        )


def _retrieve_startup_error(task: asyncio.Task[None]) -> None:
    # every waiter may have been cancelled; mark the failure as seen
    if not task.cancelled():
        task.exception()
