# src/llm/adapters/openai_adapter.py — v4
"""OpenAI Responses API adapter.

Uses the official openai SDK (``client.responses.create``). Function calls,
tool results and image-generation references travel as top-level input
items; everything else is grouped into role messages.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.diagnostics import DiagnosticCode
from vendorbridge.llm.errors import MalformedResponseError, VendorStreamError, soft_failure_block
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    ContentBlock,
    ErrorBlock,
    ImageBlock,
    ImageDataBlock,
    ImageGenerationCallBlock,
    MetaBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    order_blocks,
)
from vendorbridge.llm.payload import get, get_path
from vendorbridge.llm.reasoning import effort_for_budget
from vendorbridge.llm.streaming import BlockKind, StreamReconstructor
from vendorbridge.logging.context import set_response_id

logger = logging.getLogger(__name__)

THINKING_SIGNATURE = "openai"
WEB_SEARCH_TOOL = {"type": "web_search_preview"}

# Image options the image_generation tool accepts (n/user belong to the Images API).
_IMAGE_TOOL_PARAMS = ("quality", "size", "background", "output_format")

# Input items that stand on their own instead of living inside a role message.
_TOP_LEVEL_ITEMS = ("function_call", "function_call_output", "image_generation_call")

_REFUSAL_MESSAGE = "The model refused to respond to this request."
_INCOMPLETE_MESSAGES = {
    "max_output_tokens": "The response was cut off at the output token limit.",
    "content_filter": "The response was stopped by the content filter.",
}


class OpenAIAdapter(BaseVendorAdapter):
    """Adapter for OpenAI models through the Responses API."""

    vendor = "openai"
    operations = frozenset({AdapterOperation.STREAM, AdapterOperation.MCP_CHAT})
    accepts_generated_images = True

    def _create_client(self) -> Any:
        try:
            import openai
        except ImportError as e:
            raise ImportError("openai package required: pip install openai") from e
        return openai.AsyncOpenAI(
            api_key=self._vendor_config.api_key,
            organization=self._vendor_config.organization_id,
            base_url=self._vendor_config.base_url,
        )

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Completion via ``responses.create``."""
        params = await self._prepare_request(options)
        response = await self._client.responses.create(**params)
        set_response_id(get(response, "id"))

        content, did_generate_image, did_web_search = self._parse_response(response)
        usage = get(response, "usage")
        return AIResponse(
            content=order_blocks(content),
            usage=self._usage(
                get(usage, "input_tokens"),
                get(usage, "output_tokens"),
                did_generate_image=did_generate_image,
                did_web_search=did_web_search,
            ),
        )

    # --- Request mapping ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> dict[str, Any]:
        model = self._begin(options)
        params: dict[str, Any] = {
            "model": model,
            "input": self._build_input(options),
        }
        if options.system_prompt:
            params["instructions"] = options.system_prompt
        if options.max_tokens:
            params["max_output_tokens"] = options.max_tokens

        effort = effort_for_budget(options.budget_tokens, options.reasoning_effort)
        if self.is_thinking and effort is not None:
            params["reasoning"] = {"effort": effort, "summary": "auto"}
        elif options.temperature is not None:
            params["temperature"] = options.temperature

        if options.previous_response_id:
            params["previous_response_id"] = options.previous_response_id
        if options.store is not None:
            params["store"] = options.store

        tools = self._build_tools(options)
        if tools:
            params["tools"] = tools
        if stream:
            params["stream"] = True
        return params

    def _build_input(self, options: AIRequestOptions) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for role, parts in self._map_messages(self._request_messages(options), self._map_block):
            pending: list[dict[str, Any]] = []
            for part in parts:
                if part["type"] in _TOP_LEVEL_ITEMS:
                    if pending:
                        items.append({"role": role, "content": pending})
                        pending = []
                    items.append(part)
                else:
                    pending.append(part)
            if pending:
                items.append({"role": role, "content": pending})
        return items

    def _map_block(self, block: Any, role: str) -> dict[str, Any] | None:
        if isinstance(block, TextBlock):
            text_type = "output_text" if role == "assistant" else "input_text"
            return {"type": text_type, "text": block.text}
        if isinstance(block, ImageBlock):
            if role == "assistant":
                return {"type": "image_generation_call", "id": block.generation_id}
            return {"type": "input_image", "image_url": block.url}
        if isinstance(block, ImageDataBlock):
            if role == "assistant":
                return {"type": "image_generation_call", "id": block.id}
            return {"type": "input_image", "image_url": block.data_url}
        if isinstance(block, ImageGenerationCallBlock):
            return {"type": "image_generation_call", "id": block.id}
        if isinstance(block, ToolUseBlock):
            return {
                "type": "function_call",
                "call_id": block.id,
                "name": block.name,
                "arguments": json.dumps(self._tool_arguments(block)),
            }
        if isinstance(block, ToolResultBlock):
            output = "".join(b.text for b in block.content if isinstance(b, TextBlock))
            return {"type": "function_call_output", "call_id": block.tool_use_id, "output": output}
        return None

    def _build_tools(self, options: AIRequestOptions) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.input_schema,
            }
            for tool in options.tools or []
        ]
        if options.web_search:
            tools.append(dict(WEB_SEARCH_TOOL))

        wants_image = options.image_generation_options is not None or options.use_image_generation
        if wants_image and self.is_image_generation:
            image_tool: dict[str, Any] = {"type": "image_generation"}
            if options.image_generation_options is not None:
                params = options.image_generation_options.api_params()
                image_tool.update({k: params[k] for k in _IMAGE_TOOL_PARAMS if k in params})
            tools.append(image_tool)
        elif wants_image:
            self._report(
                DiagnosticCode.CAPABILITY_DROPPED,
                "image generation tool omitted: model is not image-generation capable",
            )
        return tools

    # --- Response parsing ---

    def _parse_response(self, response: Any) -> tuple[list[ContentBlock], bool, bool]:
        output = get(response, "output", [])
        output_text = get(response, "output_text", "")
        if not output and not output_text:
            raise MalformedResponseError(self.vendor, "No content or output received from OpenAI")

        blocks: list[ContentBlock] = []
        did_generate_image = False
        did_web_search = False
        for item in output:
            kind = get(item, "type")
            if kind == "reasoning":
                for summary in get(item, "summary", []):
                    text = get(summary, "text", "")
                    if text:
                        blocks.append(ThinkingBlock(thinking=text, signature=THINKING_SIGNATURE))
            elif kind == "message":
                blocks.extend(self._parse_message(item))
            elif kind == "function_call":
                blocks.append(
                    ToolUseBlock(
                        id=get(item, "call_id") or get(item, "id"),
                        name=get(item, "name", ""),
                        input=get(item, "arguments"),
                    )
                )
            elif kind == "image_generation_call":
                image = self._image_from_call(item)
                did_generate_image = did_generate_image or isinstance(image, ImageDataBlock)
                blocks.append(image)
            elif kind == "web_search_call":
                did_web_search = True
            else:
                logger.debug("Skipping OpenAI output item of type %s", kind)

        if not output:
            blocks.append(TextBlock(text=output_text))

        incomplete = self._incomplete_block(response)
        if incomplete is not None:
            blocks.append(incomplete)

        self._check_text_output(blocks)
        return blocks, did_generate_image, did_web_search

    @staticmethod
    def _parse_message(item: Any) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        for part in get(item, "content", []):
            kind = get(part, "type")
            if kind == "output_text":
                blocks.append(TextBlock(text=get(part, "text", "")))
            elif kind == "refusal":
                blocks.append(
                    soft_failure_block("refusal", _REFUSAL_MESSAGE, get(part, "refusal", ""))
                )
        return blocks

    @staticmethod
    def _image_from_call(item: Any) -> ImageDataBlock | ImageGenerationCallBlock:
        result = get(item, "result")
        if not result:
            return ImageGenerationCallBlock(id=get(item, "id", ""))
        output_format = get(item, "output_format", "png")
        return ImageDataBlock(
            id=get(item, "id"), mime_type=f"image/{output_format}", base64_data=result
        )

    @staticmethod
    def _incomplete_block(response: Any) -> ErrorBlock | None:
        if get(response, "status") != "incomplete":
            return None
        reason = get_path(response, "incomplete_details", "reason", default="incomplete")
        return soft_failure_block(
            reason,
            _INCOMPLETE_MESSAGES.get(reason, "The response is incomplete."),
            f"OpenAI response status incomplete: {reason}",
        )

    # --- Streaming ---

    async def _stream_blocks(self, request: dict[str, Any]) -> AsyncIterator[ContentBlock]:
        stream = await self._client.responses.create(**request)
        state = StreamReconstructor(signature=THINKING_SIGNATURE)
        response_id = ""
        did_generate_image = False
        did_web_search = False

        async for event in stream:
            kind = get(event, "type")
            index = get(event, "output_index", 0)

            if kind == "response.created":
                response_id = get_path(event, "response", "id", default="")
                set_response_id(response_id)
                yield MetaBlock(response_id=response_id)

            elif kind == "response.output_item.added":
                item = get(event, "item")
                item_type = get(item, "type")
                if item_type == "message":
                    state.open_text(index)
                elif item_type == "reasoning":
                    state.open_thinking(index)
                elif item_type == "function_call":
                    state.open_tool_use(
                        index, get(item, "call_id"), get(item, "name", ""), get(item, "arguments", "")
                    )

            elif kind == "response.output_text.delta":
                out = state.text_delta(index, get(event, "delta", ""))
                if out is not None:
                    yield out

            elif kind == "response.reasoning_summary_text.delta":
                thinking = state.thinking_delta(index, get(event, "delta", ""))
                if thinking is not None:
                    yield thinking

            elif kind == "response.refusal.done":
                yield soft_failure_block("refusal", _REFUSAL_MESSAGE, get(event, "refusal", ""))

            elif kind == "response.function_call_arguments.delta":
                state.tool_input_delta(index, get(event, "delta", ""))

            elif kind == "response.output_item.done":
                item = get(event, "item")
                item_type = get(item, "type")
                if item_type == "image_generation_call":
                    image = self._image_from_call(item)
                    did_generate_image = did_generate_image or isinstance(image, ImageDataBlock)
                    yield image
                elif item_type == "web_search_call":
                    did_web_search = True
                elif state.is_open(index, BlockKind.TOOL_USE):
                    tool = state.close(index)
                    # The done item carries the full arguments when no deltas were sent
                    if tool is not None and tool.input == "{}" and get(item, "arguments"):
                        tool = tool.model_copy(update={"input": get(item, "arguments")})
                    if tool is not None:
                        yield tool
                else:
                    state.close(index)

            elif kind in ("response.completed", "response.incomplete"):
                response = get(event, "response")
                for tool in state.close_all():
                    yield tool
                incomplete = self._incomplete_block(response)
                if incomplete is not None:
                    yield incomplete
                usage = get(response, "usage")
                yield MetaBlock(
                    response_id=get(response, "id", response_id),
                    usage=self._usage(
                        get(usage, "input_tokens"),
                        get(usage, "output_tokens"),
                        did_generate_image=did_generate_image,
                        did_web_search=did_web_search,
                    ),
                )
                return

            elif kind in ("response.failed", "error"):
                error = get_path(event, "response", "error") or event
                raise VendorStreamError(
                    self.vendor, get(error, "code", "error"), get(error, "message", "")
                )

        # Stream ended without a completion event
        for tool in state.close_all():
            yield tool
        yield MetaBlock(response_id=response_id)
