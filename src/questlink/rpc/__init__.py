"""JSON-RPC over stdio for sidecar worker processes.

Public API:
- StdioTransport: one subprocess, newline-delimited JSON framing
- SidecarClient: request correlation, timeouts, lifecycle for one sidecar
- SidecarManager: single-flight startup of named clients

Protocol:
- RPCRequest, RPCResponse: JSON-RPC 2.0 message types
- decode_line: inbound line decoding
"""

from questlink.rpc.client import ClientInfo, ClientState, SidecarClient
from questlink.rpc.errors import (
    CallCancelledError,
    CallTimeoutError,
    ClientClosedError,
    ConnectionLostError,
    ProtocolError,
    RemoteError,
    SidecarError,
    SpawnError,
    ToolError,
    WriteError,
)
from questlink.rpc.manager import SidecarManager
from questlink.rpc.protocol import (
    MCP_PROTOCOL_VERSION,
    ErrorCode,
    RPCError,
    RPCRequest,
    RPCResponse,
    decode_line,
)
from questlink.rpc.transport import StdioTransport

__all__ = [
    # Transport and clients
    "StdioTransport",
    "SidecarClient",
    "SidecarManager",
    "ClientInfo",
    "ClientState",
    # Errors
    "SidecarError",
    "SpawnError",
    "WriteError",
    "ClientClosedError",
    "CallTimeoutError",
    "CallCancelledError",
    "ConnectionLostError",
    "ProtocolError",
    "RemoteError",
    "ToolError",
    # Protocol
    "MCP_PROTOCOL_VERSION",
    "ErrorCode",
    "RPCError",
    "RPCRequest",
    "RPCResponse",
    "decode_line",
]
