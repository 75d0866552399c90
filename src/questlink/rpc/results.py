"""Helpers for interpreting ``tools/call`` results.

Sidecars answer in one of two shapes:

1. MCP content wrapper: ``{"content": [{"type": "text", "text": "..."}]}``
2. Direct JSON: ``{"characters": [...], "count": 1}``
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_STATE_JSON_RE = re.compile(r"<!-- STATE_JSON\s*\n(.*?)\nSTATE_JSON -->", re.DOTALL)


class ToolCaller(Protocol):
    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> Any: ...


def _text_blocks(result: Any) -> list[str]:
    if not isinstance(result, dict):
        return []
    content = result.get("content")
    if not isinstance(content, list):
        return []
    return [
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    ]


def tool_result_text(result: Any) -> str:
    """Concatenate the text blocks of a tool result."""
    if isinstance(result, str):
        return result
    return "\n".join(_text_blocks(result))


def unwrap_tool_result(result: Any, fallback: Any = None) -> Any:
    """Extract the payload of a tool result.

    Direct JSON objects are returned unchanged. For content wrappers the
    first text block is parsed as JSON, or returned as plain text when it is
    not JSON. Scalars pass through; anything else yields ``fallback``.
    """
    if result is None:
        return fallback
    if isinstance(result, dict) and "content" not in result:
        return result
    texts = _text_blocks(result)
    if texts:
        try:
            return json.loads(texts[0])
        except json.JSONDecodeError:
            return texts[0]
    if isinstance(result, (str, int, float, bool)):
        return result
    return fallback


def tool_error_message(result: Any) -> str | None:
    """Return the error carried by a tool result, or None if it succeeded."""
    if not isinstance(result, dict):
        return None
    error = result.get("error")
    if error:
        return _error_text(error)
    texts = _text_blocks(result)
    if result.get("isError"):
        return texts[0] if texts else "Unknown error"
    if texts:
        try:
            parsed = json.loads(texts[0])
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict) and parsed.get("error"):
            return _error_text(parsed["error"])
    return None


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return str(error.get("message") or "Unknown error")
    return str(error)


def extract_embedded_state(text: str) -> dict[str, Any] | None:
    """Return the JSON object between ``<!-- STATE_JSON`` markers, if any."""
    if not text:
        return None
    match = _STATE_JSON_RE.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.warning("Embedded state JSON is malformed")
        return None
    return parsed if isinstance(parsed, dict) else None


@dataclass
class BatchCall:
    name: str
    arguments: dict[str, Any]


@dataclass
class BatchResult:
    name: str
    arguments: dict[str, Any]
    result: Any = None
    error: str | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_batch(caller: ToolCaller, calls: list[BatchCall]) -> list[BatchResult]:
    """Run tool calls concurrently; results keep the input order.

    A failing call is reported through ``BatchResult.error`` and never raises.
    """

    async def _run(call: BatchCall) -> BatchResult:
        started = time.monotonic()
        try:
            result = await caller.call_tool(call.name, call.arguments)
        except Exception as e:
            return BatchResult(
                name=call.name,
                arguments=call.arguments,
                error=str(e) or type(e).__name__,
                duration=time.monotonic() - started,
            )
        return BatchResult(
            name=call.name,
            arguments=call.arguments,
            result=result,
            duration=time.monotonic() - started,
        )

    started = time.monotonic()
    results = await asyncio.gather(*(_run(call) for call in calls))
    logger.info(
        "Executed %d tool calls in %.0fms",
        len(calls),
        (time.monotonic() - started) * 1000,
    )
    return list(results)
