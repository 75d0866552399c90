"""JSON-RPC 2.0 protocol implementation over newline-delimited JSON."""

import json
from dataclasses import dataclass
from typing import Any

from questlink.rpc.errors import ProtocolError

MCP_PROTOCOL_VERSION = "2024-11-05"


# JSON-RPC 2.0 error codes
class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


@dataclass
class RPCRequest:
    """JSON-RPC 2.0 request.

    A request with ``id`` of None is a notification and expects no reply.
    """

    method: str
    params: Any = None
    id: int | str | None = None
    jsonrpc: str = "2.0"

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.id is not None:
            d["id"] = self.id
        if self.params is not None:
            d["params"] = self.params
        return d

    def to_line(self) -> str:
        """Serialize to a single JSON line (without the trailing newline)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RPCRequest":
        return cls(
            method=data.get("method", ""),
            params=data.get("params"),
            id=data.get("id"),
            jsonrpc=data.get("jsonrpc", "2.0"),
        )


@dataclass
class RPCError:
    """JSON-RPC 2.0 error."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        d = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


@dataclass
class RPCResponse:
    """JSON-RPC 2.0 response."""

    id: int | str | None
    result: Any = None
    error: RPCError | None = None
    jsonrpc: str = "2.0"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            d["error"] = self.error.to_dict()
        else:
            d["result"] = self.result
        return d

    def to_line(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def success(cls, id: int | str | None, result: Any) -> "RPCResponse":
        return cls(id=id, result=result)

    @classmethod
    def error_response(
        cls, id: int | str | None, code: int, message: str, data: Any = None
    ) -> "RPCResponse":
        return cls(id=id, error=RPCError(code=code, message=message, data=data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RPCResponse":
        error = None
        if data.get("error") is not None:
            err = data["error"]
            if isinstance(err, dict):
                error = RPCError(
                    code=err.get("code", ErrorCode.INTERNAL_ERROR),
                    message=err.get("message", "Unknown error"),
                    data=err.get("data"),
                )
            else:
                error = RPCError(code=ErrorCode.INTERNAL_ERROR, message=str(err))
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=error,
            jsonrpc=data.get("jsonrpc", "2.0"),
        )


def is_response(message: dict[str, Any]) -> bool:
    """True for response objects (carry result or error), False for requests."""
    return "method" not in message and ("result" in message or "error" in message)


def decode_line(line: bytes | str) -> dict[str, Any]:
    """Decode one framed line into a JSON object.

    Raises:
        ProtocolError: If the line is not valid UTF-8 JSON or not an object.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"invalid utf-8: {e}") from None
    text = line.strip()
    if not text:
        raise ProtocolError("empty line")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"invalid JSON: {e}") from None
    if not isinstance(payload, dict):
        raise ProtocolError("expected a JSON object")
    return payload
