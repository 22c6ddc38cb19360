# src/llm/adapters/anthropic_adapter.py — v4
"""Anthropic Messages API adapter.

Uses the official anthropic SDK. Thinking blocks produced by Claude are
accepted back on assistant turns so multi-turn extended thinking keeps its
signatures.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.errors import MalformedResponseError, VendorStreamError, soft_failure_block
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    ContentBlock,
    ErrorBlock,
    ImageBlock,
    ImageDataBlock,
    MetaBlock,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    order_blocks,
)
from vendorbridge.llm.payload import get, get_path
from vendorbridge.llm.reasoning import passthrough_budget
from vendorbridge.llm.streaming import StreamReconstructor
from vendorbridge.logging.context import set_response_id

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}
THINKING_SIGNATURE = "anthropic"

# stop_reason values that end a response without a usable answer.
_SOFT_FAILURE_STOPS = {
    "refusal": "The model declined to respond to this request.",
    "model_context_window_exceeded": "The conversation is too long for this model's context window.",
}


class AnthropicAdapter(BaseVendorAdapter):
    """Adapter for Anthropic Claude models."""

    vendor = "anthropic"
    operations = frozenset({AdapterOperation.STREAM, AdapterOperation.MCP_CHAT})
    accepts_client_thinking = True
    reraise_stream_errors = True

    def _create_client(self) -> Any:
        try:
            import anthropic
        except ImportError as e:
            raise ImportError("anthropic package required: pip install anthropic") from e
        return anthropic.AsyncAnthropic(
            api_key=self._vendor_config.api_key,
            base_url=self._vendor_config.base_url,
        )

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Completion via the Messages API."""
        params = await self._prepare_request(options)
        response = await self._client.messages.create(**params)
        set_response_id(get(response, "id"))

        content, did_web_search = self._parse_content(get(response, "content", []))
        stop_block = self._stop_reason_block(get(response, "stop_reason"))
        if stop_block is not None:
            content.append(stop_block)
        if not content:
            raise MalformedResponseError(self.vendor, "No content received from Anthropic")
        self._check_text_output(content)

        usage = get(response, "usage")
        if get_path(usage, "server_tool_use", "web_search_requests", default=0) > 0:
            did_web_search = True
        return AIResponse(
            content=order_blocks(content),
            usage=self._usage(
                get(usage, "input_tokens"),
                get(usage, "output_tokens"),
                did_web_search=did_web_search,
            ),
        )

    # --- Request mapping ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> dict[str, Any]:
        model = self._begin(options)
        params: dict[str, Any] = {
            "model": model,
            "max_tokens": self._max_tokens(options),
            "messages": [
                {"role": role, "content": parts}
                for role, parts in self._map_messages(self._request_messages(options), self._map_block)
            ],
        }
        if options.system_prompt:
            params["system"] = options.system_prompt

        budget = passthrough_budget(options.budget_tokens)
        if self.is_thinking and budget is not None:
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}
        elif options.temperature is not None:
            # Extended thinking rejects a custom temperature
            params["temperature"] = options.temperature

        tools: list[dict[str, Any]] = [
            {
                "name": tool.name,
                "description": tool.description or "",
                "input_schema": tool.input_schema,
            }
            for tool in options.tools or []
        ]
        if options.web_search:
            tools.append(dict(WEB_SEARCH_TOOL))
        if tools:
            params["tools"] = tools
        if stream:
            params["stream"] = True
        return params

    def _map_block(self, block: Any, role: str) -> dict[str, Any] | None:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text}
        if isinstance(block, ThinkingBlock):
            return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
        if isinstance(block, RedactedThinkingBlock):
            return {"type": "redacted_thinking", "data": block.data}
        if isinstance(block, ImageBlock):
            return {"type": "image", "source": {"type": "url", "url": block.url}}
        if isinstance(block, ImageDataBlock):
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": block.mime_type,
                    "data": block.base64_data,
                },
            }
        if isinstance(block, ToolUseBlock):
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": self._tool_arguments(block),
            }
        if isinstance(block, ToolResultBlock):
            inner = [
                part
                for part in (self._map_block(b, role) for b in block.content)
                if part is not None and part["type"] in ("text", "image")
            ]
            return {"type": "tool_result", "tool_use_id": block.tool_use_id, "content": inner}
        return None

    # --- Response parsing ---

    @staticmethod
    def _parse_content(items: list[Any]) -> tuple[list[ContentBlock], bool]:
        blocks: list[ContentBlock] = []
        did_web_search = False
        for item in items:
            kind = get(item, "type")
            if kind == "thinking":
                blocks.append(
                    ThinkingBlock(
                        thinking=get(item, "thinking", ""),
                        signature=get(item, "signature", THINKING_SIGNATURE),
                    )
                )
            elif kind == "redacted_thinking":
                blocks.append(RedactedThinkingBlock(data=get(item, "data", "")))
            elif kind == "text":
                blocks.append(TextBlock(text=get(item, "text", "")))
            elif kind == "tool_use":
                blocks.append(
                    ToolUseBlock(id=get(item, "id"), name=get(item, "name", ""), input=get(item, "input"))
                )
            elif kind in ("server_tool_use", "web_search_tool_result"):
                if kind == "web_search_tool_result" or get(item, "name") == "web_search":
                    did_web_search = True
            else:
                logger.debug("Skipping Anthropic content block of type %s", kind)
        return blocks, did_web_search

    @staticmethod
    def _stop_reason_block(stop_reason: str | None) -> ErrorBlock | None:
        if stop_reason not in _SOFT_FAILURE_STOPS:
            return None
        return soft_failure_block(
            stop_reason,  # type: ignore[arg-type]
            _SOFT_FAILURE_STOPS[stop_reason],  # type: ignore[index]
            f"Anthropic stop_reason: {stop_reason}",
        )

    # --- Streaming ---

    async def _stream_blocks(self, request: dict[str, Any]) -> AsyncIterator[ContentBlock]:
        stream = await self._client.messages.create(**request)
        state = StreamReconstructor(signature=THINKING_SIGNATURE)
        response_id = ""
        input_tokens: int | None = None
        output_tokens: int | None = None
        stop_reason: str | None = None
        did_web_search = False

        async for event in stream:
            kind = get(event, "type")
            index = get(event, "index", 0)

            if kind == "message_start":
                message = get(event, "message")
                response_id = get(message, "id", "")
                input_tokens = get_path(message, "usage", "input_tokens")
                set_response_id(response_id)
                yield MetaBlock(response_id=response_id)

            elif kind == "content_block_start":
                block = get(event, "content_block")
                block_type = get(block, "type")
                if block_type == "text":
                    state.open_text(index)
                    initial = state.text_delta(index, get(block, "text", ""))
                    if initial is not None:
                        yield initial
                elif block_type == "thinking":
                    state.open_thinking(index)
                elif block_type == "redacted_thinking":
                    yield RedactedThinkingBlock(data=get(block, "data", ""))
                elif block_type == "tool_use":
                    state.open_tool_use(index, get(block, "id"), get(block, "name", ""))
                elif block_type in ("server_tool_use", "web_search_tool_result"):
                    did_web_search = True

            elif kind == "content_block_delta":
                delta = get(event, "delta")
                delta_type = get(delta, "type")
                out: ContentBlock | None = None
                if delta_type == "text_delta":
                    out = state.text_delta(index, get(delta, "text", ""))
                elif delta_type == "thinking_delta":
                    out = state.thinking_delta(index, get(delta, "thinking", ""))
                elif delta_type == "signature_delta":
                    state.signature_delta(index, get(delta, "signature", ""))
                elif delta_type == "input_json_delta":
                    state.tool_input_delta(index, get(delta, "partial_json", ""))
                if out is not None:
                    yield out

            elif kind == "content_block_stop":
                finished = state.close(index)
                if finished is not None:
                    yield finished

            elif kind == "message_delta":
                stop_reason = get_path(event, "delta", "stop_reason") or stop_reason
                usage = get(event, "usage")
                output_tokens = get(usage, "output_tokens", output_tokens)
                input_tokens = get(usage, "input_tokens", input_tokens)
                if get_path(usage, "server_tool_use", "web_search_requests", default=0) > 0:
                    did_web_search = True

            elif kind == "error":
                error = get(event, "error")
                raise VendorStreamError(
                    self.vendor, get(error, "type", "error"), get(error, "message", "")
                )

        for finished in state.close_all():
            yield finished
        stop_block = self._stop_reason_block(stop_reason)
        if stop_block is not None:
            yield stop_block
        yield MetaBlock(
            response_id=response_id,
            usage=self._usage(input_tokens, output_tokens, did_web_search=did_web_search),
        )
