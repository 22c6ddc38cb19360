# src/llm/adapters/chat_completions.py — v2
"""Shared adapter for OpenAI-compatible Chat Completions endpoints.

OpenRouter and xAI Grok speak the same wire format through the openai SDK
pointed at their base URL. Subclasses add their reasoning controls and
vendor extensions through ``_vendor_params``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.errors import MalformedResponseError, soft_failure_block
from vendorbridge.llm.image_fetch import parse_data_url
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    ContentBlock,
    ImageBlock,
    ImageDataBlock,
    MetaBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    order_blocks,
)
from vendorbridge.llm.payload import get, get_path
from vendorbridge.llm.streaming import StreamReconstructor
from vendorbridge.logging.context import set_response_id

logger = logging.getLogger(__name__)

# Stream-local keys for the single text and reasoning channels; tool calls use their own index >= 0.
_TEXT_INDEX = -1
_THINKING_INDEX = -2

_REFUSAL_MESSAGE = "The model refused to respond to this request."
_CONTENT_FILTER_MESSAGE = "The response was stopped by the content filter."


class ChatCompletionsAdapter(BaseVendorAdapter):
    """Base for vendors served through ``client.chat.completions.create``."""

    operations = frozenset({AdapterOperation.STREAM, AdapterOperation.MCP_CHAT})
    display_name: str = ""
    default_base_url: str | None = None
    thinking_signature: str = ""

    def _create_client(self) -> Any:
        try:
            import openai
        except ImportError as e:
            raise ImportError("openai package required: pip install openai") from e
        return openai.AsyncOpenAI(
            api_key=self._vendor_config.api_key,
            base_url=self._vendor_config.base_url or self.default_base_url,
        )

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Completion via ``chat.completions.create``."""
        params = await self._prepare_request(options)
        response = await self._client.chat.completions.create(**params)
        set_response_id(get(response, "id"))

        choices = get(response, "choices", [])
        choice = choices[0] if choices else None
        content, did_generate_image, did_web_search = self._parse_choice(choice)
        if not content:
            raise MalformedResponseError(
                self.vendor, f"No content received from {self.display_name or self.vendor}"
            )
        self._check_text_output(content)

        usage = get(response, "usage")
        return AIResponse(
            role=get_path(choice, "message", "role", default="assistant"),
            content=order_blocks(content),
            usage=self._usage(
                get(usage, "prompt_tokens"),
                get(usage, "completion_tokens"),
                did_generate_image=did_generate_image,
                did_web_search=did_web_search,
            ),
        )

    # --- Request mapping ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> dict[str, Any]:
        model = self._begin(options)
        messages: list[dict[str, Any]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.extend(self._build_messages(options))

        params: dict[str, Any] = {"model": model, "messages": messages}
        if options.max_tokens:
            params["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            params["temperature"] = options.temperature

        tools = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.input_schema,
                },
            }
            for tool in options.tools or []
        ]
        if tools:
            params["tools"] = tools

        params.update(self._vendor_params(options))
        if stream:
            params["stream"] = True
            params["stream_options"] = {"include_usage": True}
        return params

    def _vendor_params(self, options: AIRequestOptions) -> dict[str, Any]:
        """Reasoning controls and vendor extensions; non-standard keys go in ``extra_body``."""
        return {}

    def _build_messages(self, options: AIRequestOptions) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for role, parts in self._map_messages(self._request_messages(options), self._map_block):
            content = [p for p in parts if p["type"] in ("text", "image_url")]
            tool_calls = [p for p in parts if p["type"] == "function"]

            # Tool results answer the previous assistant turn, so they precede new user content.
            for part in parts:
                if part["type"] == "tool_result":
                    messages.append(
                        {"role": "tool", "tool_call_id": part["tool_call_id"], "content": part["content"]}
                    )

            if not content and not tool_calls:
                continue
            message: dict[str, Any] = {"role": role}
            if len(content) == 1 and content[0]["type"] == "text":
                message["content"] = content[0]["text"]
            elif content:
                message["content"] = content
            else:
                message["content"] = None
            if tool_calls:
                message["tool_calls"] = tool_calls
            messages.append(message)
        return messages

    def _map_block(self, block: Any, role: str) -> dict[str, Any] | None:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text}
        if isinstance(block, ImageBlock):
            return {"type": "image_url", "image_url": {"url": block.url}}
        if isinstance(block, ImageDataBlock):
            return {"type": "image_url", "image_url": {"url": block.data_url}}
        if isinstance(block, ToolUseBlock):
            return {
                "type": "function",
                "id": block.id,
                "function": {
                    "name": block.name,
                    "arguments": json.dumps(self._tool_arguments(block)),
                },
            }
        if isinstance(block, ToolResultBlock):
            return {
                "type": "tool_result",
                "tool_call_id": block.tool_use_id,
                "content": "".join(b.text for b in block.content if isinstance(b, TextBlock)),
            }
        return None

    # --- Response parsing ---

    def _parse_choice(self, choice: Any) -> tuple[list[ContentBlock], bool, bool]:
        message = get(choice, "message")
        blocks: list[ContentBlock] = []
        did_web_search = False

        reasoning = get(message, "reasoning") or get(message, "reasoning_content")
        if reasoning:
            blocks.append(ThinkingBlock(thinking=reasoning, signature=self.thinking_signature))

        text = get(message, "content")
        if text:
            blocks.append(TextBlock(text=text))

        refusal = get(message, "refusal")
        if refusal:
            blocks.append(soft_failure_block("refusal", _REFUSAL_MESSAGE, refusal))

        for call in get(message, "tool_calls", []):
            blocks.append(
                ToolUseBlock(
                    id=get(call, "id"),
                    name=get_path(call, "function", "name", default=""),
                    input=get_path(call, "function", "arguments"),
                )
            )

        images = self._images(get(message, "images", []))
        blocks.extend(images)

        for annotation in get(message, "annotations", []):
            if get(annotation, "type") == "url_citation":
                did_web_search = True

        if get(choice, "finish_reason") == "content_filter":
            blocks.append(
                soft_failure_block(
                    "content_filter", _CONTENT_FILTER_MESSAGE, "finish_reason: content_filter"
                )
            )
        return blocks, bool(images), did_web_search

    @staticmethod
    def _images(entries: list[Any]) -> list[ImageDataBlock]:
        images: list[ImageDataBlock] = []
        for entry in entries:
            url = get_path(entry, "image_url", "url", default="")
            image = parse_data_url(url)
            if image is None:
                logger.debug("Skipping non data-URL image in response: %.60s", url)
                continue
            images.append(image)
        return images

    # --- Streaming ---

    async def _stream_blocks(self, request: dict[str, Any]) -> AsyncIterator[ContentBlock]:
        stream = await self._client.chat.completions.create(**request)
        state = StreamReconstructor(signature=self.thinking_signature)
        state.open_text(_TEXT_INDEX)
        state.open_thinking(_THINKING_INDEX)
        response_id = ""
        usage: Any = None
        did_generate_image = False
        did_web_search = False

        async for chunk in stream:
            if not response_id and get(chunk, "id"):
                response_id = get(chunk, "id")
                set_response_id(response_id)
                yield MetaBlock(response_id=response_id)
            usage = get(chunk, "usage", usage)

            choices = get(chunk, "choices", [])
            if not choices:
                continue
            choice = choices[0]
            delta = get(choice, "delta")

            reasoning = get(delta, "reasoning") or get(delta, "reasoning_content")
            if reasoning:
                thinking = state.thinking_delta(_THINKING_INDEX, reasoning)
                if thinking is not None:
                    yield thinking

            text = state.text_delta(_TEXT_INDEX, get(delta, "content", ""))
            if text is not None:
                yield text

            for call in get(delta, "tool_calls", []):
                index = get(call, "index", 0)
                arguments = get_path(call, "function", "arguments", default="")
                if not state.is_open(index):
                    state.open_tool_use(
                        index,
                        get(call, "id"),
                        get_path(call, "function", "name", default=""),
                        arguments,
                    )
                else:
                    state.update_tool(
                        index, get(call, "id"), get_path(call, "function", "name")
                    )
                    state.tool_input_delta(index, arguments)

            for image in self._images(get(delta, "images", [])):
                did_generate_image = True
                yield image

            for annotation in get(delta, "annotations", []):
                if get(annotation, "type") == "url_citation":
                    did_web_search = True

            finish_reason = get(choice, "finish_reason")
            if finish_reason:
                for tool in state.close_all():
                    yield tool
                if finish_reason == "content_filter":
                    yield soft_failure_block(
                        "content_filter", _CONTENT_FILTER_MESSAGE, "finish_reason: content_filter"
                    )

        for tool in state.close_all():
            yield tool
        yield MetaBlock(
            response_id=response_id,
            usage=self._usage(
                get(usage, "prompt_tokens"),
                get(usage, "completion_tokens"),
                did_generate_image=did_generate_image,
                did_web_search=did_web_search,
            ),
        )
