"""Tests for tool result helpers and batch execution."""

import asyncio

import pytest

from questlink.rpc.results import (
    BatchCall,
    extract_embedded_state,
    run_batch,
    tool_error_message,
    tool_result_text,
    unwrap_tool_result,
)


def _text(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


class TestUnwrap:
    def test_direct_json_passes_through(self):
        payload = {"characters": [{"name": "Valeros"}], "count": 1}
        assert unwrap_tool_result(payload) is payload

    def test_content_wrapper_with_json(self):
        assert unwrap_tool_result(_text('{"count": 2}')) == {"count": 2}

    def test_content_wrapper_with_plain_text(self):
        assert unwrap_tool_result(_text("Goblin attacks!")) == "Goblin attacks!"

    def test_none_returns_fallback(self):
        assert unwrap_tool_result(None, fallback=[]) == []

    def test_empty_content_returns_fallback(self):
        assert unwrap_tool_result({"content": []}, fallback="x") == "x"

    def test_scalar_passes_through(self):
        assert unwrap_tool_result(3) == 3


class TestResultText:
    def test_joins_text_blocks(self):
        result = {
            "content": [
                {"type": "text", "text": "one"},
                {"type": "image", "data": "..."},
                {"type": "text", "text": "two"},
            ]
        }
        assert tool_result_text(result) == "one\ntwo"

    def test_string_result(self):
        assert tool_result_text("plain") == "plain"

    def test_non_content_result(self):
        assert tool_result_text({"count": 1}) == ""


class TestErrorMessage:
    def test_success_has_no_error(self):
        assert tool_error_message(_text("ok")) is None

    def test_is_error_flag(self):
        result = {"isError": True, "content": [{"type": "text", "text": "bad input"}]}
        assert tool_error_message(result) == "bad input"

    def test_top_level_error(self):
        assert tool_error_message({"error": {"message": "nope"}}) == "nope"

    def test_error_inside_json_text(self):
        assert tool_error_message(_text('{"error": "no encounter"}')) == "no encounter"

    def test_non_dict(self):
        assert tool_error_message("text") is None


class TestEmbeddedState:
    def test_extracts_state_block(self):
        text = (
            "Combat started.\n"
            "<!-- STATE_JSON\n"
            '{"round": 1, "turn": "Valeros"}\n'
            "STATE_JSON -->\n"
        )
        assert extract_embedded_state(text) == {"round": 1, "turn": "Valeros"}

    def test_missing_block(self):
        assert extract_embedded_state("no state here") is None

    def test_malformed_block(self):
        assert extract_embedded_state("<!-- STATE_JSON\n{oops\nSTATE_JSON -->") is None


class FakeCaller:
    def __init__(self):
        self.calls: list[str] = []

    async def call_tool(self, name, arguments=None):
        self.calls.append(name)
        if name == "boom":
            raise RuntimeError("exploded")
        await asyncio.sleep(arguments.get("delay", 0))
        return _text(name)


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        caller = FakeCaller()
        results = await run_batch(
            caller,
            [
                BatchCall("slow", {"delay": 0.05}),
                BatchCall("fast", {"delay": 0}),
            ],
        )

        assert [r.name for r in results] == ["slow", "fast"]
        assert all(r.ok for r in results)
        assert results[0].result == _text("slow")
        assert results[0].duration >= 0

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self):
        caller = FakeCaller()
        results = await run_batch(
            caller, [BatchCall("boom", {}), BatchCall("fine", {})]
        )

        assert not results[0].ok
        assert results[0].error == "exploded"
        assert results[1].ok
        assert caller.calls == ["boom", "fine"]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        assert await run_batch(FakeCaller(), []) == []
