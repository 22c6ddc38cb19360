# src/llm/base_client.py — v3
"""Abstract vendor adapter interface.

Every adapter exposes the same three calls (``generate_response``,
``send_chat``, ``stream_response``) plus optional image and MCP operations
that callers probe with ``supports()`` before invoking.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Sequence

from vendorbridge.llm.capabilities import AdapterOperation, Capabilities, CapabilityGate
from vendorbridge.llm.diagnostics import Diagnostic, DiagnosticCode, DiagnosticSink, log_diagnostic
from vendorbridge.llm.errors import (
    AdapterConfigurationError,
    NotSupportedError,
    error_block_from_exception,
)
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    Chat,
    ChatResponse,
    ContentBlock,
    ImageBlock,
    ImageDataBlock,
    MCPAvailableTool,
    Message,
    ModelConfig,
    TextBlock,
    ToolUseBlock,
    UsageResponse,
    VendorConfig,
)
from vendorbridge.llm.image_fetch import ImageFetcher, fetch_image_data, parse_data_url
from vendorbridge.logging.context import set_request_context
from vendorbridge.tracking.cost_calculator import compute_usage

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024


class BaseVendorAdapter(ABC):
    """Unified interface for all vendors.

    Args:
        vendor_config: Credentials and endpoint.
        model_config: Bound model capabilities and rates.
        client: Pre-built SDK client; built lazily on first call when omitted.
        diagnostics: Sink for dropped-content diagnostics (logs by default).
        default_max_tokens: Used when a request leaves ``max_tokens`` unset.
        image_fetcher: Downloads URL images for vendors that need inline bytes.

    Raises:
        AdapterConfigurationError: If the API key is empty.
    """

    vendor: str = ""
    operations: frozenset[AdapterOperation] = frozenset({AdapterOperation.STREAM})
    accepts_client_thinking: bool = False
    accepts_generated_images: bool = False
    reraise_stream_errors: bool = False

    def __init__(
        self,
        vendor_config: VendorConfig,
        model_config: ModelConfig,
        *,
        client: Any = None,
        diagnostics: DiagnosticSink | None = None,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        image_fetcher: ImageFetcher | None = None,
    ) -> None:
        if not vendor_config.api_key:
            raise AdapterConfigurationError(f"{self.vendor} API key is required")
        self._vendor_config = vendor_config
        self._model_config = model_config
        self._diagnostics: DiagnosticSink = diagnostics or log_diagnostic
        self._default_max_tokens = default_max_tokens
        self._fetch_image: ImageFetcher = image_fetcher or fetch_image_data
        self.__client = client  # Lazy initialization

        self.model = model_config.api_name
        self.is_vision = model_config.is_vision
        self.is_image_generation = model_config.is_image_generation
        self.is_thinking = model_config.is_thinking

    @property
    def _client(self) -> Any:
        """Lazy-init SDK client (only on first API call)."""
        if self.__client is None:
            self.__client = self._create_client()
        return self.__client

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the vendor SDK client from ``self._vendor_config``."""

    # --- Required operations ---

    @abstractmethod
    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Single request, complete response."""

    async def stream_response(self, options: AIRequestOptions) -> AsyncIterator[ContentBlock]:
        """Incremental response: content blocks, with meta blocks first and last.

        Configuration errors raise. Transport failures end the stream with one
        ErrorBlock; vendors with ``reraise_stream_errors`` re-raise afterwards.
        """
        request = await self._prepare_request(options, stream=True)
        try:
            async for block in self._stream_blocks(request):
                yield block
        except Exception as e:
            logger.warning("%s stream failed: %s", self.vendor, e)
            yield error_block_from_exception(e)
            if self.reraise_stream_errors:
                raise

    @abstractmethod
    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> Any:
        """Map ``options`` to vendor call arguments. Raises on configuration errors."""

    @abstractmethod
    def _stream_blocks(self, request: Any) -> AsyncIterator[ContentBlock]:
        """Issue the streaming call and translate its events."""

    async def send_chat(self, chat: Chat) -> ChatResponse:
        """Send conversation history plus the pending prompt."""
        response = await self.generate_response(self.chat_request(chat))
        return ChatResponse(role=response.role, content=response.content, usage=response.usage)

    # --- Optional operations ---

    async def generate_image(self, options: AIRequestOptions) -> AIResponse:
        raise NotSupportedError(self.vendor, AdapterOperation.GENERATE_IMAGE.value)

    async def edit_image(self, options: AIRequestOptions) -> AIResponse:
        raise NotSupportedError(self.vendor, AdapterOperation.EDIT_IMAGE.value)

    async def send_mcp_chat(
        self,
        chat: Chat,
        tools: Sequence[MCPAvailableTool],
        options: dict[str, Any] | None = None,
    ) -> ChatResponse:
        """One tool-enabled round: offer MCP tools, return the model's reply.

        Tool execution stays with the caller; a reply containing ``tool_use``
        blocks is answered by appending ``tool_result`` blocks to the history
        and calling again.
        """
        if not self.supports(AdapterOperation.MCP_CHAT):
            raise NotSupportedError(self.vendor, AdapterOperation.MCP_CHAT.value)
        request = self.chat_request(chat)
        definitions = list(request.tools or [])
        definitions.extend(tool.to_tool_definition() for tool in tools)
        update: dict[str, Any] = {"tools": definitions or None}
        if options:
            update.update(options)
        response = await self.generate_response(request.model_copy(update=update))
        return ChatResponse(role=response.role, content=response.content, usage=response.usage)

    def supports(self, operation: AdapterOperation) -> bool:
        return operation in self.supported_operations

    @property
    def supported_operations(self) -> frozenset[AdapterOperation]:
        return self.operations

    # --- Model costs ---

    @property
    def input_token_cost(self) -> float | None:
        return self._model_config.input_token_cost

    @property
    def output_token_cost(self) -> float | None:
        return self._model_config.output_token_cost

    @property
    def image_output_token_cost(self) -> float | None:
        return self._model_config.image_output_token_cost

    @property
    def web_search_cost(self) -> float | None:
        return self._model_config.web_search_cost

    # --- Shared helpers ---

    def chat_request(self, chat: Chat) -> AIRequestOptions:
        """Translate a Chat into the request ``send_chat`` issues."""
        return AIRequestOptions(
            model=chat.model,
            messages=self.build_chat_messages(chat),
            system_prompt=chat.system_prompt,
            max_tokens=chat.max_tokens,
            budget_tokens=chat.budget_tokens,
            reasoning_effort=chat.reasoning_effort,
            web_search=chat.web_search,
            image_generation_options=chat.image_generation_options,
            image_edit_options=chat.image_edit_options,
            previous_response_id=chat.previous_response_id,
            use_image_generation=chat.use_image_generation,
            prompt=chat.prompt,
        )

    def build_chat_messages(self, chat: Chat) -> list[Message]:
        """History plus a user message: prompt text first, then the attached image."""
        messages = list(chat.response_history)
        content: list[ContentBlock] = []
        if chat.prompt:
            content.append(TextBlock(text=chat.prompt))

        image = self._chat_image(chat)
        if image is not None:
            if self.is_vision:
                content.append(image)
            else:
                self._report(
                    DiagnosticCode.CAPABILITY_DROPPED,
                    "attached image dropped: model is not vision capable",
                    block_type=image.type,
                )
        if content:
            messages.append(Message(role="user", content=content))
        return messages

    def _chat_image(self, chat: Chat) -> ImageBlock | ImageDataBlock | None:
        if chat.vision_url:
            return ImageBlock(url=chat.vision_url)
        if chat.image_data:
            parsed = parse_data_url(chat.image_data)
            if parsed is None:
                self._report(
                    DiagnosticCode.UNMAPPABLE_CONTENT,
                    "attached image_data is not a base64 data URL",
                )
            return parsed
        return None

    def _capabilities(self) -> Capabilities:
        return Capabilities(
            is_vision=self.is_vision,
            is_image_generation=self.is_image_generation,
            is_thinking=self.is_thinking,
        )

    def _gate(self) -> CapabilityGate:
        return CapabilityGate(
            self.vendor,
            self._capabilities(),
            self._diagnostics,
            accepts_client_thinking=self.accepts_client_thinking,
            accepts_generated_images=self.accepts_generated_images,
        )

    def _report(self, code: DiagnosticCode, message: str, **data: Any) -> None:
        self._diagnostics(Diagnostic(code=code, vendor=self.vendor, message=message, data=data))

    def _begin(self, options: AIRequestOptions | None = None) -> str:
        """Tag log records of this call with vendor and model; return the model id."""
        model = options.model if options is not None and options.model else self.model
        set_request_context(self.vendor, model)
        return model

    def _max_tokens(self, options: AIRequestOptions) -> int:
        return options.max_tokens or self._default_max_tokens

    def _usage(
        self,
        input_tokens: int | None,
        output_tokens: int | None,
        did_generate_image: bool = False,
        did_web_search: bool = False,
    ) -> UsageResponse | None:
        return compute_usage(
            self._model_config,
            input_tokens,
            output_tokens,
            did_generate_image=did_generate_image,
            did_web_search=did_web_search,
        )

    def _check_text_output(self, content: Sequence[ContentBlock]) -> None:
        """Report a parsed response that carries no text (tool calls, images or errors only)."""
        if not any(isinstance(block, TextBlock) for block in content):
            self._report(
                DiagnosticCode.NO_TEXT_OUTPUT,
                "response contained no text output",
                block_types=[block.type for block in content],
            )

    # --- Request mapping helpers ---

    def _admitted(self, message: Message, gate: CapabilityGate) -> list[ContentBlock]:
        """Blocks of ``message`` that pass the gate; system-role messages yield none."""
        if message.role == "system":
            self._report(
                DiagnosticCode.SYSTEM_MESSAGE_DROPPED,
                "system-role message dropped; pass it as system_prompt instead",
            )
            return []
        admitted = (gate.admit(block, message.role) for block in message.content)
        return [block for block in admitted if block is not None]

    def _request_messages(self, options: AIRequestOptions) -> list[Message]:
        """``options.messages`` with ``vision_url`` attached to the last user message."""
        messages = list(options.messages)
        if not options.vision_url:
            return messages
        image = ImageBlock(url=options.vision_url)
        if messages and messages[-1].role == "user":
            last = messages[-1]
            messages[-1] = last.model_copy(update={"content": [*last.content, image]})
        else:
            messages.append(Message(role="user", content=[image]))
        return messages

    def _map_messages(
        self, messages: Sequence[Message], map_block: Callable[[Any, str], Any]
    ) -> list[tuple[str, list[Any]]]:
        """Gate and map every message; ``(role, parts)`` pairs with empty messages removed.

        Raises:
            AdapterConfigurationError: If nothing is left to send.
        """
        gate = self._gate()
        mapped: list[tuple[str, list[Any]]] = []
        for message in messages:
            parts: list[Any] = []
            for block in self._admitted(message, gate):
                part = map_block(block, message.role)
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
                mapped.append((message.role, parts))
        if not mapped:
            raise AdapterConfigurationError(
                f"No messages left to send to {self.vendor} after filtering"
            )
        return mapped

    def _tool_arguments(self, block: ToolUseBlock) -> dict[str, Any]:
        """Decode a tool_use input string; invalid JSON degrades to ``{}``."""
        try:
            arguments = json.loads(block.input or "{}")
        except json.JSONDecodeError:
            arguments = None
        if not isinstance(arguments, dict):
            self._report(
                DiagnosticCode.INVALID_TOOL_INPUT,
                f"tool_use {block.name!r} input is not a JSON object; sending {{}}",
                tool_use_id=block.id,
            )
            return {}
        return arguments

    @staticmethod
    def _image_prompt(options: AIRequestOptions) -> str:
        """Explicit prompt, else the text of the last user message.

        Raises:
            AdapterConfigurationError: If neither yields any text.
        """
        if options.prompt:
            return options.prompt
        for message in reversed(options.messages):
            if message.role != "user":
                continue
            texts = [block.text for block in message.content if isinstance(block, TextBlock)]
            if texts:
                return "\n".join(texts)
            break
        raise AdapterConfigurationError("A text prompt is required for image generation.")
