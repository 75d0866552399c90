"""Error types for sidecar communication.

Callers branch on the concrete type; every error derives from SidecarError.
"""

from typing import Any


class SidecarError(Exception):
    """Base exception for sidecar transport and RPC failures."""

    def __init__(self, message: str, *, server: str | None = None):
        self.server = server
        if server:
            message = f"[{server}] {message}"
        super().__init__(message)


class SpawnError(SidecarError):
    """The sidecar executable is missing or could not be launched."""


class WriteError(SidecarError):
    """A write was attempted after the process exited or the transport closed."""


class ClientClosedError(WriteError):
    """The client was closed while the call was pending."""


class CallTimeoutError(SidecarError, TimeoutError):
    """No response arrived within the call timeout."""

    def __init__(self, method: str, timeout: float, *, server: str | None = None):
        self.method = method
        self.timeout = timeout
        super().__init__(
            f"Request {method} timed out after {timeout:g}s", server=server
        )


class CallCancelledError(SidecarError):
    """The caller abandoned the request before a response arrived."""


class ConnectionLostError(SidecarError):
    """The sidecar process exited while the call was pending."""

    def __init__(
        self, message: str, *, exit_code: int | None = None, server: str | None = None
    ):
        self.exit_code = exit_code
        super().__init__(message, server=server)


class ProtocolError(SidecarError):
    """An inbound line could not be decoded as a JSON-RPC message."""


class RemoteError(SidecarError):
    """The sidecar answered with a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Any = None,
        *,
        server: str | None = None,
    ):
        self.code = code
        self.data = data
        super().__init__(f"{message} (code {code})", server=server)


class ToolError(SidecarError):
    """A tool call completed but the tool reported a failure in its result."""

    def __init__(self, tool: str, message: str, *, server: str | None = None):
        self.tool = tool
        super().__init__(f"{tool} failed: {message}", server=server)
