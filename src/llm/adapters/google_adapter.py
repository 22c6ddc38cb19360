# src/llm/adapters/google_adapter.py — v3
"""Google Gemini adapter.

Uses the google-generativeai SDK. Gemini only takes inline image bytes, so
URL images are downloaded through the image fetcher while mapping. Images
the model generates come back inline in the same response.

The SDK's GenerationConfig has no thinking_config field, so a thinking
budget cannot be sent; it is dropped with a diagnostic. Thought parts the
model returns on its own are still parsed as thinking.
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, AsyncIterator

from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.diagnostics import DiagnosticCode
from vendorbridge.llm.errors import (
    AdapterConfigurationError,
    MalformedResponseError,
    NotSupportedError,
    soft_failure_block,
)
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    ContentBlock,
    ErrorBlock,
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
from vendorbridge.llm.reasoning import passthrough_budget
from vendorbridge.llm.streaming import StreamReconstructor
from vendorbridge.logging.context import set_response_id

logger = logging.getLogger(__name__)

THINKING_SIGNATURE = "google"
WEB_SEARCH_TOOL = {"google_search_retrieval": {}}

_BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}
_BLOCKED_MESSAGE = "The response was blocked by the vendor's safety filters."

_TEXT_INDEX = -1
_THINKING_INDEX = -2


class GoogleAdapter(BaseVendorAdapter):
    """Adapter for Google Gemini models."""

    vendor = "google"
    operations = frozenset({AdapterOperation.STREAM, AdapterOperation.MCP_CHAT})

    def _create_client(self) -> Any:
        try:
            import google.generativeai as genai
        except ImportError as e:
            raise ImportError(
                "google-generativeai package required: pip install google-generativeai"
            ) from e
        genai.configure(api_key=self._vendor_config.api_key)
        return genai

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Completion via ``GenerativeModel.generate_content_async``."""
        request = await self._prepare_request(options)
        model = self._model_for(request)
        response = await model.generate_content_async(
            request["contents"], generation_config=request["generation_config"]
        )

        candidates = get(response, "candidates", [])
        candidate = candidates[0] if candidates else None
        content, did_generate_image, did_web_search = self._parse_candidate(candidate)
        blocked = self._blocked_block(response, candidate)
        if blocked is not None:
            content.append(blocked)
        if not content:
            raise MalformedResponseError(self.vendor, "No processable content found in Gemini response")
        self._check_text_output(content)

        usage = get(response, "usage_metadata")
        return AIResponse(
            content=order_blocks(content),
            usage=self._usage(
                get(usage, "prompt_token_count"),
                get(usage, "candidates_token_count"),
                did_generate_image=did_generate_image,
                did_web_search=did_web_search,
            ),
        )

    async def generate_image(self, options: AIRequestOptions) -> AIResponse:
        raise NotSupportedError(
            self.vendor,
            AdapterOperation.GENERATE_IMAGE.value,
            "Gemini generates images inline; use generate_response or send_chat",
        )

    # --- Request mapping ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> dict[str, Any]:
        model = self._begin(options)
        contents = await self._build_contents(options)

        generation_config: dict[str, Any] = {}
        if options.max_tokens:
            generation_config["max_output_tokens"] = options.max_tokens
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        budget = passthrough_budget(options.budget_tokens)
        if self.is_thinking and budget is not None:
            self._report(
                DiagnosticCode.CAPABILITY_DROPPED,
                "thinking budget dropped: google-generativeai cannot send thinking_config",
                budget_tokens=budget,
            )
        if self.is_image_generation:
            generation_config["response_modalities"] = ["TEXT", "IMAGE"]

        tools: list[dict[str, Any]] = []
        declarations = [
            {
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.input_schema,
            }
            for tool in options.tools or []
        ]
        if declarations:
            tools.append({"function_declarations": declarations})
        if options.web_search:
            tools.append(dict(WEB_SEARCH_TOOL))

        return {
            "model": model,
            "system_instruction": options.system_prompt or None,
            "tools": tools or None,
            "contents": contents,
            "generation_config": generation_config,
        }

    def _model_for(self, request: dict[str, Any]) -> Any:
        return self._client.GenerativeModel(
            request["model"],
            system_instruction=request["system_instruction"],
            tools=request["tools"],
        )

    async def _build_contents(self, options: AIRequestOptions) -> list[dict[str, Any]]:
        gate = self._gate()
        tool_names: dict[str, str] = {}
        contents: list[dict[str, Any]] = []
        for message in self._request_messages(options):
            parts: list[dict[str, Any]] = []
            for block in self._admitted(message, gate):
                if isinstance(block, ImageBlock):
                    fetched = await self._fetch_image(block.url)
                    if fetched is None:
                        self._report(
                            DiagnosticCode.IMAGE_FETCH_FAILED,
                            "image dropped: URL could not be fetched",
                            url=block.url,
                        )
                        continue
                    block = fetched
                if isinstance(block, ToolUseBlock) and block.id:
                    tool_names[block.id] = block.name
                part = self._map_block(block, tool_names)
                if part is None:
                    self._report(
                        DiagnosticCode.UNMAPPABLE_CONTENT,
                        f"{block.type} block cannot be sent to {self.vendor}",
                        block_type=block.type,
                        role=message.role,
                    )
                    continue
                parts.append(part)
            if parts:
                role = "model" if message.role == "assistant" else "user"
                contents.append({"role": role, "parts": parts})
        if not contents:
            raise AdapterConfigurationError(
                f"No messages left to send to {self.vendor} after filtering"
            )
        return contents

    def _map_block(self, block: Any, tool_names: dict[str, str]) -> dict[str, Any] | None:
        if isinstance(block, TextBlock):
            return {"text": block.text}
        if isinstance(block, ImageDataBlock):
            return {
                "inline_data": {
                    "mime_type": block.mime_type,
                    "data": base64.b64decode(block.base64_data),
                }
            }
        if isinstance(block, ToolUseBlock):
            return {"function_call": {"name": block.name, "args": self._tool_arguments(block)}}
        if isinstance(block, ToolResultBlock):
            name = tool_names.get(block.tool_use_id)
            if name is None:
                return None
            text = "".join(b.text for b in block.content if isinstance(b, TextBlock))
            return {"function_response": {"name": name, "response": {"content": text}}}
        return None

    # --- Response parsing ---

    def _parse_parts(self, parts: list[Any], first_tool: int = 0) -> tuple[list[ContentBlock], bool]:
        """Map response parts to blocks.

        Function calls are numbered across the whole response, starting at
        ``first_tool``, so a reply gets the same tool ids streamed or not.
        """
        blocks: list[ContentBlock] = []
        did_generate_image = False
        tool_number = first_tool
        for part in parts:
            text = get(part, "text", "")
            inline = get(part, "inline_data")
            function_call = get(part, "function_call")
            if text and get(part, "thought", False):
                blocks.append(ThinkingBlock(thinking=text, signature=THINKING_SIGNATURE))
            elif text:
                blocks.append(TextBlock(text=text))
            elif inline and get(inline, "data"):
                blocks.append(self._image_block(inline))
                did_generate_image = True
            elif function_call and get(function_call, "name"):
                name = get(function_call, "name")
                blocks.append(
                    ToolUseBlock(
                        id=f"gemini_{name}_{tool_number}",
                        name=name,
                        input=json.dumps(_to_plain(get(function_call, "args", {}))),
                    )
                )
                tool_number += 1
        return blocks, did_generate_image

    def _parse_candidate(self, candidate: Any) -> tuple[list[ContentBlock], bool, bool]:
        blocks, did_generate_image = self._parse_parts(get_path(candidate, "content", "parts", default=[]))
        return blocks, did_generate_image, _used_web_search(candidate)

    @staticmethod
    def _image_block(inline: Any) -> ImageDataBlock:
        data = get(inline, "data")
        if isinstance(data, (bytes, bytearray)):
            data = base64.b64encode(data).decode("ascii")
        return ImageDataBlock(mime_type=get(inline, "mime_type", "image/png"), base64_data=data)

    @staticmethod
    def _blocked_block(response: Any, candidate: Any) -> ErrorBlock | None:
        block_reason = _enum_name(get_path(response, "prompt_feedback", "block_reason"))
        if block_reason and block_reason != "BLOCK_REASON_UNSPECIFIED":
            return soft_failure_block(block_reason, _BLOCKED_MESSAGE, f"prompt blocked: {block_reason}")
        finish_reason = _enum_name(get(candidate, "finish_reason"))
        if finish_reason in _BLOCKED_FINISH_REASONS:
            return soft_failure_block(
                finish_reason, _BLOCKED_MESSAGE, f"Gemini finish_reason: {finish_reason}"
            )
        return None

    # --- Streaming ---

    async def _stream_blocks(self, request: dict[str, Any]) -> AsyncIterator[ContentBlock]:
        model = self._model_for(request)
        stream = await model.generate_content_async(
            request["contents"], generation_config=request["generation_config"], stream=True
        )
        state = StreamReconstructor(signature=THINKING_SIGNATURE)
        state.open_text(_TEXT_INDEX)
        state.open_thinking(_THINKING_INDEX)
        usage: Any = None
        last_chunk: Any = None
        last_candidate: Any = None
        did_generate_image = False
        did_web_search = False
        tool_count = 0

        async for chunk in stream:
            last_chunk = chunk
            usage = get(chunk, "usage_metadata", usage)
            candidates = get(chunk, "candidates", [])
            if not candidates:
                continue
            last_candidate = candidates[0]
            did_web_search = did_web_search or _used_web_search(last_candidate)

            parts = get_path(last_candidate, "content", "parts", default=[])
            blocks, produced_image = self._parse_parts(parts, first_tool=tool_count)
            did_generate_image = did_generate_image or produced_image
            for block in blocks:
                out: ContentBlock | None = block
                if isinstance(block, ThinkingBlock):
                    out = state.thinking_delta(_THINKING_INDEX, block.thinking)
                elif isinstance(block, TextBlock):
                    out = state.text_delta(_TEXT_INDEX, block.text)
                elif isinstance(block, ToolUseBlock):
                    # Gemini sends function calls whole, never as fragments
                    tool_count += 1
                if out is not None:
                    yield out

        state.close_all()
        blocked = self._blocked_block(last_chunk, last_candidate)
        if blocked is not None:
            yield blocked

        response_id = str(uuid.uuid4())
        set_response_id(response_id)
        yield MetaBlock(
            response_id=response_id,
            usage=self._usage(
                get(usage, "prompt_token_count"),
                get(usage, "candidates_token_count"),
                did_generate_image=did_generate_image,
                did_web_search=did_web_search,
            ),
        )


def _used_web_search(candidate: Any) -> bool:
    return bool(get_path(candidate, "grounding_metadata", "web_search_queries", default=[]))


def _enum_name(value: Any) -> str | None:
    """Name of a proto enum value (SDK objects) or the value itself (dicts)."""
    if value is None:
        return None
    name = getattr(value, "name", value)
    return str(name) if name else None


def _to_plain(value: Any) -> Any:
    """Convert proto map/repeated composites from function_call args into JSON types."""
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_to_plain(v) for v in value]
    return value
