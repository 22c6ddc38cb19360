# tests/integration/llm/test_int_adapter_conformance.py — v1
"""Integration tests: every text vendor behind the same factory call.

Covers: client_factory, settings, base_client chat flow, capability gating
and cost computation across anthropic, openai, openrouter, grok and google.

Vendor SDK clients are mocks returning recorded-shape payloads; no network.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from vendorbridge.config.settings import Settings
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.client_factory import create_adapter
from vendorbridge.llm.diagnostics import DiagnosticCode
from vendorbridge.llm.models import (
    Chat,
    MCPAvailableTool,
    Message,
    ModelConfig,
    TextBlock,
    ToolResultBlock,
)


# ── Recorded-shape payloads (10 input / 5 output tokens, text "Hi there") ──

_ANTHROPIC = {
    "id": "msg_1",
    "content": [{"type": "text", "text": "Hi there"}],
    "stop_reason": "end_turn",
    "usage": {"input_tokens": 10, "output_tokens": 5},
}
_OPENAI = {
    "id": "resp_1",
    "status": "completed",
    "output": [{"type": "message", "content": [{"type": "output_text", "text": "Hi there"}]}],
    "usage": {"input_tokens": 10, "output_tokens": 5},
}
_CHAT_COMPLETIONS = {
    "id": "gen_1",
    "choices": [{"finish_reason": "stop", "message": {"role": "assistant", "content": "Hi there"}}],
    "usage": {"prompt_tokens": 10, "completion_tokens": 5},
}
_GEMINI = {
    "candidates": [{"content": {"parts": [{"text": "Hi there"}]}, "finish_reason": "STOP"}],
    "usage_metadata": {"prompt_token_count": 10, "candidates_token_count": 5},
}


def _mock_client(vendor: str, payload: dict) -> MagicMock:
    client = MagicMock()
    if vendor == "anthropic":
        client.messages.create = AsyncMock(return_value=payload)
    elif vendor == "openai":
        client.responses.create = AsyncMock(return_value=payload)
    elif vendor == "google":
        client.GenerativeModel.return_value.generate_content_async = AsyncMock(return_value=payload)
    else:
        client.chat.completions.create = AsyncMock(return_value=payload)
    return client


def _sent_request(vendor: str, client: MagicMock) -> dict:
    if vendor == "anthropic":
        return client.messages.create.call_args.kwargs
    if vendor == "openai":
        return client.responses.create.call_args.kwargs
    if vendor == "google":
        call = client.GenerativeModel.return_value.generate_content_async.call_args
        return {"contents": call.args[0]}
    return client.chat.completions.create.call_args.kwargs


_VENDORS = [
    ("anthropic", _ANTHROPIC),
    ("openai", _OPENAI),
    ("openrouter", _CHAT_COMPLETIONS),
    ("grok", _CHAT_COMPLETIONS),
    ("google", _GEMINI),
]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        anthropic_api_key="a",
        openai_api_key="o",
        openrouter_api_key="r",
        xai_api_key="x",
        google_api_key="g",
    )


class TestTextConformance:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("vendor,payload", _VENDORS)
    async def test_same_chat_same_result(self, vendor, payload, settings, model_config):
        client = _mock_client(vendor, payload)
        adapter = create_adapter(vendor, model_config, settings=settings, client=client)

        response = await adapter.send_chat(Chat(model="m", prompt="Hi"))

        assert response.role == "assistant"
        assert response.content == [TextBlock(text="Hi there")]
        assert response.usage.input_cost == pytest.approx(0.0001)
        assert response.usage.output_cost == pytest.approx(0.00015)
        assert response.usage.total_cost == pytest.approx(0.00025)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("vendor,payload", _VENDORS)
    async def test_no_rates_no_usage(self, vendor, payload, settings):
        client = _mock_client(vendor, payload)
        adapter = create_adapter(vendor, ModelConfig(api_name="m"), settings=settings, client=client)
        response = await adapter.send_chat(Chat(model="m", prompt="Hi"))
        assert response.usage is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("vendor,payload", _VENDORS)
    async def test_non_vision_drops_image_keeps_text(
        self, vendor, payload, settings, plain_model_config, diagnostics
    ):
        client = _mock_client(vendor, payload)
        adapter = create_adapter(
            vendor, plain_model_config, settings=settings, client=client, diagnostics=diagnostics
        )
        history = [
            Message(
                role="user",
                content=[
                    TextBlock(text="first"),
                    {"type": "image", "url": "https://x/a.png"},
                    TextBlock(text="second"),
                ],
            )
        ]
        await adapter.send_chat(Chat(model="m", response_history=history))

        sent = str(_sent_request(vendor, client))
        assert "https://x/a.png" not in sent
        assert sent.index("first") < sent.index("second")
        assert DiagnosticCode.CAPABILITY_DROPPED in diagnostics.codes()


class TestToolRound:
    @pytest.mark.asyncio
    async def test_mcp_tool_round_trip(self, settings, model_config):
        first = {
            "id": "msg_1",
            "content": [
                {"type": "tool_use", "id": "tu_1", "name": "get_time", "input": {"tz": "UTC"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 10, "output_tokens": 5},
        }
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=[first, _ANTHROPIC])
        adapter = create_adapter("anthropic", model_config, settings=settings, client=client)
        tools = [MCPAvailableTool(name="get_time", description="Current time")]
        assert adapter.supports(AdapterOperation.MCP_CHAT)

        chat = Chat(model="m", prompt="What time is it?")
        reply = await adapter.send_mcp_chat(chat, tools)
        tool_use = reply.content[0]
        assert tool_use.type == "tool_use"

        follow_up = Chat(
            model="m",
            response_history=[
                Message(role="user", content="What time is it?"),
                Message(role="assistant", content=reply.content),
                Message(
                    role="user",
                    content=[ToolResultBlock(tool_use_id=tool_use.id, content=[TextBlock(text="12:00")])],
                ),
            ],
        )
        final = await adapter.send_mcp_chat(follow_up, tools)
        assert final.content == [TextBlock(text="Hi there")]

        second_call = client.messages.create.call_args_list[1].kwargs
        assert second_call["tools"][0]["name"] == "get_time"
        assert second_call["messages"][1]["content"][0]["input"] == {"tz": "UTC"}
        assert second_call["messages"][2]["content"][0]["tool_use_id"] == "tu_1"
