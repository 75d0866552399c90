"""JSON-RPC client for one sidecar process.

Correlates responses to requests by id. Each call registers a future in the
pending table; the table is only touched from the event loop that owns the
client (the calling coroutine adds entries, the transport reader resolves
them), so no additional locking is needed.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from questlink.config.paths import resolve_sidecar_command
from questlink.rpc.errors import (
    CallCancelledError,
    CallTimeoutError,
    ClientClosedError,
    ConnectionLostError,
    RemoteError,
    SidecarError,
    WriteError,
)
from questlink.rpc.protocol import (
    MCP_PROTOCOL_VERSION,
    RPCRequest,
    RPCResponse,
    is_response,
)
from questlink.rpc.transport import StdioTransport

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0

TransportFactory = Callable[..., StdioTransport]


class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    INITIALIZED = "initialized"


@dataclass(frozen=True)
class ClientInfo:
    """Identity sent to the sidecar during the initialize handshake."""

    name: str = "questlink"
    version: str = "0.1.0"

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "version": self.version}


class SidecarClient:
    """Request/response correlation and lifecycle over one transport."""

    def __init__(
        self,
        name: str,
        command: Sequence[str] | None = None,
        *,
        binaries_dir: Path | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        protocol_version: str = MCP_PROTOCOL_VERSION,
        client_info: ClientInfo | None = None,
        shutdown_timeout: float = 2.0,
        transport_factory: TransportFactory = StdioTransport,
    ) -> None:
        self._name = name
        self._command = list(command) if command else None
        self._binaries_dir = binaries_dir
        self._request_timeout = request_timeout
        self._protocol_version = protocol_version
        self._client_info = client_info or ClientInfo()
        self._shutdown_timeout = shutdown_timeout
        self._transport_factory = transport_factory

        self._state = ClientState.DISCONNECTED
        self._transport: StdioTransport | None = None
        self._pending: dict[str, asyncio.Future[RPCResponse]] = {}
        self._server_info: dict[str, Any] | None = None
        self._connect_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._closing = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def server_info(self) -> dict[str, Any] | None:
        return self._server_info

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def has_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    async def connect(self) -> None:
        """Spawn the sidecar unless it is already running.

        Raises:
            SpawnError: If the executable is missing or cannot be launched.
        """
        if self._state in (ClientState.CONNECTED, ClientState.INITIALIZED):
            return
        async with self._connect_lock:
            if self._state in (ClientState.CONNECTED, ClientState.INITIALIZED):
                return
            command = self._command or resolve_sidecar_command(
                self._binaries_dir, self._name
            )
            self._state = ClientState.CONNECTING
            transport = self._transport_factory(
                command, name=self._name, shutdown_timeout=self._shutdown_timeout
            )
            transport.on_line(self._handle_message)
            transport.on_exit(functools.partial(self._handle_exit, transport))
            logger.info("Spawning sidecar %s", self._name, extra={"command": command})
            self._transport = transport
            try:
                await transport.spawn()
            except SidecarError:
                if self._transport is transport:
                    self._reset()
                raise
            if self._transport is not transport:
                # close() ran while the process was starting
                await transport.close()
                raise ClientClosedError("client closed during connect", server=self._name)
            if not transport.is_running:
                # exited before the exit callback could see it as current
                self._reset()
                raise ConnectionLostError(
                    "sidecar exited during startup",
                    exit_code=transport.exit_code,
                    server=self._name,
                )
            self._state = ClientState.CONNECTED

    async def initialize(self, client_info: ClientInfo | None = None) -> dict[str, Any]:
        """Run the initialize handshake once and return the server info.

        Safe to call repeatedly; concurrent callers share one exchange.
        """
        if self._state is ClientState.INITIALIZED and self._server_info is not None:
            return self._server_info
        async with self._init_lock:
            if self._state is ClientState.INITIALIZED and self._server_info is not None:
                return self._server_info
            await self.connect()
            info = client_info or self._client_info
            logger.info("Initializing %s", self._name)
            result = await self.call(
                "initialize",
                {
                    "protocolVersion": self._protocol_version,
                    "capabilities": {},
                    "clientInfo": info.to_dict(),
                },
            )
            self._server_info = result if isinstance(result, dict) else {"result": result}
            await self.notify("notifications/initialized")
            self._state = ClientState.INITIALIZED
            logger.info(
                "%s initialized",
                self._name,
                extra={"server_info": self._server_info.get("serverInfo")},
            )
            return self._server_info

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification (no id, no response expected)."""
        transport = self._require_transport()
        await transport.write(RPCRequest(method=method, params=params).to_line())

    async def call(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Any:
        """Send a request and wait for its response.

        Args:
            method: JSON-RPC method name.
            params: Request params.
            timeout: Seconds to wait; defaults to the client's request timeout.
            cancel: Optional event; setting it abandons the call.

        Returns:
            The ``result`` member of the response.

        Raises:
            RemoteError: The sidecar answered with an error object.
            CallTimeoutError: No response within the timeout.
            CallCancelledError: The cancel event was set first.
            ConnectionLostError: The sidecar exited while the call was pending.
            ClientClosedError: The client was closed while the call was pending.
            WriteError: The request could not be written.
        """
        transport = self._require_transport()
        if cancel is not None and cancel.is_set():
            raise CallCancelledError(f"Request {method} cancelled", server=self._name)
        wait_for = self._request_timeout if timeout is None else timeout

        request_id = uuid.uuid4().hex
        future: asyncio.Future[RPCResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        cancel_waiter: asyncio.Task[bool] | None = None
        try:
            await transport.write(
                RPCRequest(method=method, params=params, id=request_id).to_line()
            )
            waiters: set[asyncio.Future[Any]] = {future}
            if cancel is not None:
                cancel_waiter = asyncio.create_task(cancel.wait())
                waiters.add(cancel_waiter)
            await asyncio.wait(
                waiters, timeout=wait_for, return_when=asyncio.FIRST_COMPLETED
            )
            if future.done():
                return self._unwrap(future.result())
            if cancel is not None and cancel.is_set():
                raise CallCancelledError(
                    f"Request {method} cancelled", server=self._name
                )
            raise CallTimeoutError(method, wait_for, server=self._name)
        finally:
            self._pending.pop(request_id, None)
            if cancel_waiter is not None:
                cancel_waiter.cancel()

    async def list_tools(self, *, timeout: float | None = None) -> Any:
        return await self.call("tools/list", timeout=timeout)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Any:
        return await self.call(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=timeout,
            cancel=cancel,
        )

    async def close(self) -> None:
        """Terminate the sidecar and fail every pending call."""
        self._closing = True
        try:
            self._fail_pending(
                lambda: ClientClosedError("client closed", server=self._name)
            )
            transport = self._transport
            if transport is not None:
                await transport.close()
            self._reset()
        finally:
            self._closing = False

    def _require_transport(self) -> StdioTransport:
        transport = self._transport
        if transport is None or self._state is ClientState.DISCONNECTED:
            raise WriteError("client not connected", server=self._name)
        return transport

    def _unwrap(self, response: RPCResponse) -> Any:
        if response.error is not None:
            raise RemoteError(
                response.error.code,
                response.error.message,
                response.error.data,
                server=self._name,
            )
        return response.result

    def _handle_message(self, message: dict[str, Any]) -> None:
        if not is_response(message):
            logger.debug(
                "%s notification: %s", self._name, message.get("method"),
                extra={"params": message.get("params")},
            )
            return
        request_id = message.get("id")
        future = (
            self._pending.pop(request_id, None)
            if isinstance(request_id, (str, int))
            else None
        )
        if future is None:
            logger.warning(
                "%s sent a response for an unknown request id %r",
                self._name,
                request_id,
            )
            return
        if not future.done():
            future.set_result(RPCResponse.from_dict(message))

    def _handle_exit(self, transport: StdioTransport, exit_code: int | None) -> None:
        if transport is not self._transport:
            return
        if self._closing:
            self._fail_pending(
                lambda: ClientClosedError("client closed", server=self._name)
            )
        else:
            self._fail_pending(
                lambda: ConnectionLostError(
                    f"sidecar exited with code {exit_code}",
                    exit_code=exit_code,
                    server=self._name,
                )
            )
        self._reset()

    def _fail_pending(self, make_error: Callable[[], SidecarError]) -> None:
        pending, self._pending = self._pending, {}
        if pending:
            logger.warning(
                "Failing %d pending request(s) on %s: %s",
                len(pending),
                self._name,
                make_error(),
            )
        for future in pending.values():
            if not future.done():
                future.set_exception(make_error())

    def _reset(self) -> None:
        self._transport = None
        self._server_info = None
        self._state = ClientState.DISCONNECTED
