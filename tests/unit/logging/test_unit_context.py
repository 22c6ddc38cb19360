# tests/unit/logging/test_unit_context.py — v2
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

import asyncio

import pytest

from vendorbridge.logging.context import (
    clear_context,
    get_context,
    set_request_context,
    set_response_id,
)


class TestLogContext:
    def test_initial_state(self):
        ctx = get_context()
        assert ctx.vendor is None
        assert ctx.model is None
        assert ctx.response_id is None

    def test_request_context_resets_response_id(self):
        set_response_id("old")
        set_request_context("openai", "gpt-test")
        ctx = get_context()
        assert (ctx.vendor, ctx.model, ctx.response_id) == ("openai", "gpt-test", None)

    def test_as_dict_filters_none(self):
        set_request_context("openai", "gpt-test")
        assert get_context().as_dict() == {"vendor": "openai", "model": "gpt-test"}

    def test_clear(self):
        set_request_context("openai", "gpt-test")
        clear_context()
        assert get_context().as_dict() == {}

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def call(vendor: str) -> str | None:
            set_request_context(vendor, "m")
            await asyncio.sleep(0)
            return get_context().vendor

        results = await asyncio.gather(call("anthropic"), call("google"))
        assert results == ["anthropic", "google"]
