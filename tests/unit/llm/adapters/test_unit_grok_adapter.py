# tests/unit/llm/adapters/test_unit_grok_adapter.py — v1
"""Tests for llm/adapters/grok_adapter.py — reasoning effort and image routing."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from vendorbridge.llm.adapters.grok_adapter import XAI_BASE_URL, GrokAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.diagnostics import DiagnosticCode
from vendorbridge.llm.errors import MalformedResponseError, NotSupportedError
from vendorbridge.llm.models import AIRequestOptions, ImageGenerationOptions, Message


@pytest.fixture
def make_adapter(vendor_config, model_config, diagnostics):
    def _make(chat_result=None, image_result=None, **overrides):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=chat_result)
        client.images.generate = AsyncMock(return_value=image_result)
        config = model_config.model_copy(update=overrides)
        return GrokAdapter(vendor_config, config, client=client, diagnostics=diagnostics)

    return _make


def _options(model="grok-3", **kwargs):
    kwargs.setdefault("messages", [Message(role="user", content="Hello")])
    return AIRequestOptions(model=model, **kwargs)


class TestTextRequests:
    def test_default_base_url(self):
        assert XAI_BASE_URL == "https://api.x.ai/v1"
        assert GrokAdapter.default_base_url == XAI_BASE_URL

    @pytest.mark.asyncio
    async def test_reasoning_effort_from_budget(self, make_adapter):
        params = await make_adapter()._prepare_request(_options(budget_tokens=1024))
        assert params["reasoning_effort"] == "medium"
        assert "extra_body" not in params

    @pytest.mark.asyncio
    async def test_web_search_dropped(self, make_adapter, diagnostics):
        params = await make_adapter()._prepare_request(_options(web_search=True))
        assert "tools" not in params
        assert diagnostics.codes() == [DiagnosticCode.CAPABILITY_DROPPED]

    @pytest.mark.asyncio
    async def test_reasoning_content_signature(self, make_adapter):
        response = {
            "id": "x1",
            "choices": [{"message": {"reasoning_content": "Because", "content": "Yes"}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        }
        result = await make_adapter(chat_result=response).generate_response(_options())
        assert result.content[0].signature == "grok"
        assert result.content[1].text == "Yes"

    @pytest.mark.asyncio
    async def test_empty_response(self, make_adapter):
        with pytest.raises(MalformedResponseError, match="Grok"):
            await make_adapter(chat_result={"choices": [{"message": {}}]}).generate_response(_options())


class TestImageRouting:
    _IMAGES = {"data": [{"b64_json": "SlBH"}, {"b64_json": "SlBH"}]}

    def test_operations_depend_on_model(self, make_adapter):
        assert not make_adapter().supports(AdapterOperation.GENERATE_IMAGE)
        assert make_adapter(is_image_generation=True).supports(AdapterOperation.GENERATE_IMAGE)
        assert not make_adapter().supports(AdapterOperation.MCP_CHAT)

    @pytest.mark.asyncio
    async def test_image_model_name_routes(self, make_adapter):
        adapter = make_adapter(image_result=self._IMAGES, is_image_generation=True)
        result = await adapter.generate_response(
            _options(model="grok-2-image", image_generation_options=ImageGenerationOptions(n=2, size="1024x768"))
        )
        kwargs = adapter._client.images.generate.call_args.kwargs
        assert kwargs == {
            "model": "grok-2-image",
            "prompt": "Hello",
            "n": 2,
            "response_format": "b64_json",
            "size": "1024x768",
        }
        assert [b.mime_type for b in result.content] == ["image/jpeg", "image/jpeg"]
        assert result.usage is None
        adapter._client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_text_model_stays_on_chat(self, make_adapter):
        adapter = make_adapter(
            chat_result={"choices": [{"message": {"content": "ok"}}]}, is_image_generation=False
        )
        await adapter.generate_response(_options(use_image_generation=True))
        adapter._client.images.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_image_requires_capability(self, make_adapter):
        with pytest.raises(NotSupportedError):
            await make_adapter().generate_image(_options(prompt="cat"))

    @pytest.mark.asyncio
    async def test_no_images(self, make_adapter):
        adapter = make_adapter(image_result={"data": []}, is_image_generation=True)
        with pytest.raises(MalformedResponseError):
            await adapter.generate_image(_options(prompt="cat"))

    @pytest.mark.asyncio
    async def test_stream_image_route(self, make_adapter, collect):
        adapter = make_adapter(image_result=self._IMAGES, is_image_generation=True)
        blocks = await collect(adapter.stream_response(_options(use_image_generation=True)))
        assert [b.type for b in blocks] == ["image_data", "image_data", "meta"]
        assert blocks[-1].response_id.startswith("grok-image-")
        assert adapter._client.images.generate.call_args.kwargs["n"] == 1
