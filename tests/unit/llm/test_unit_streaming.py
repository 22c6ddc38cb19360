# tests/unit/llm/test_unit_streaming.py — v2
"""Tests for llm/streaming.py — per-index stream reassembly."""

from __future__ import annotations

import json

from vendorbridge.llm.streaming import BlockKind, StreamReconstructor


class TestTextAndThinking:
    def test_text_delta_emitted_immediately(self):
        state = StreamReconstructor()
        state.open_text(0)
        assert state.text_delta(0, "Hel").text == "Hel"
        assert state.text_delta(0, "lo").text == "lo"

    def test_empty_delta_ignored(self):
        state = StreamReconstructor()
        state.open_text(0)
        assert state.text_delta(0, "") is None

    def test_thinking_carries_signature(self):
        state = StreamReconstructor(signature="openrouter")
        state.open_thinking(1)
        block = state.thinking_delta(1, "step")
        assert block.signature == "openrouter"

    def test_signature_released_on_close(self):
        state = StreamReconstructor(signature="anthropic")
        state.open_thinking(0)
        deltas = [state.thinking_delta(0, "step one"), state.thinking_delta(0, " step two")]
        assert state.signature_delta(0, "sig-abc") is None
        closing = state.close(0)

        assert [d.thinking for d in deltas] == ["step one", " step two"]
        assert closing.thinking == ""
        assert closing.signature == "sig-abc"

    def test_unsigned_thinking_closes_silently(self):
        state = StreamReconstructor(signature="openrouter")
        state.open_thinking(0)
        state.thinking_delta(0, "step")
        assert state.close(0) is None

    def test_close_all_releases_signature(self):
        state = StreamReconstructor()
        state.open_thinking(0)
        state.signature_delta(0, "sig")
        assert [b.signature for b in state.close_all()] == ["sig"]

    def test_kind_mismatch_ignored(self):
        state = StreamReconstructor()
        state.open_text(0)
        assert state.thinking_delta(0, "x") is None
        assert state.text_delta(5, "x") is None


class TestToolUse:
    def test_fragments_joined_on_close(self):
        state = StreamReconstructor()
        state.open_tool_use(2, "call_1", "lookup")
        state.tool_input_delta(2, '{"q": ')
        state.tool_input_delta(2, '"paris"}')
        tool = state.close(2)
        assert tool.id == "call_1"
        assert json.loads(tool.input) == {"q": "paris"}
        assert not state.is_open(2)

    def test_empty_input_defaults(self):
        state = StreamReconstructor()
        state.open_tool_use(0, "c", "noop")
        assert state.close(0).input == "{}"

    def test_update_fills_missing_only(self):
        state = StreamReconstructor()
        state.open_tool_use(0, None, "")
        state.update_tool(0, "call_9", "fn")
        state.update_tool(0, "other", "other")
        tool = state.close(0)
        assert (tool.id, tool.name) == ("call_9", "fn")

    def test_close_text_yields_nothing(self):
        state = StreamReconstructor()
        state.open_text(0)
        assert state.close(0) is None

    def test_close_all_in_index_order(self):
        state = StreamReconstructor()
        state.open_text(-1)
        state.open_tool_use(3, "b", "second")
        state.open_tool_use(1, "a", "first")
        names = [t.name for t in state.close_all()]
        assert names == ["first", "second"]
        assert not state.is_open(-1)

    def test_is_open_by_kind(self):
        state = StreamReconstructor()
        state.open_tool_use(0, "c", "t")
        assert state.is_open(0, BlockKind.TOOL_USE)
        assert not state.is_open(0, BlockKind.TEXT)
