# src/llm/models.py — v2
"""Common request/response vocabulary shared by every vendor adapter.

Content is a list of discriminated blocks (``type`` tag). Block order inside
a message is significant and is preserved by every mapper and parser.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant", "system"]
EffortTier = Literal["low", "medium", "high"]


# === CONTENT BLOCKS ===


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ThinkingBlock(BaseModel):
    """Model reasoning. ``signature`` identifies the producing vendor or carries its token."""

    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: str = ""


class RedactedThinkingBlock(BaseModel):
    type: Literal["redacted_thinking"] = "redacted_thinking"
    data: str


class ImageBlock(BaseModel):
    """URL image. ``generation_id`` links it back to a vendor image-generation call."""

    type: Literal["image"] = "image"
    url: str
    generation_id: str | None = None


class ImageDataBlock(BaseModel):
    """Inline base64 image."""

    type: Literal["image_data"] = "image_data"
    id: str | None = None
    mime_type: str
    base64_data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


class ToolUseBlock(BaseModel):
    """Tool call. ``input`` is always a JSON string, never a live object."""

    type: Literal["tool_use"] = "tool_use"
    id: str | None = None
    name: str
    input: str = "{}"

    @field_validator("input", mode="before")
    @classmethod
    def serialize_input(cls, v: Any) -> Any:
        if v is None:
            return "{}"
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return v


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: list[ContentBlock] = Field(default_factory=list)


class ImageGenerationCallBlock(BaseModel):
    """Reference to a vendor-side image generation call (no image payload)."""

    type: Literal["image_generation_call"] = "image_generation_call"
    id: str


class MetaBlock(BaseModel):
    """Out-of-band data: response id and, at the end of a stream, usage."""

    type: Literal["meta"] = "meta"
    response_id: str
    usage: UsageResponse | None = None


class ErrorBlock(BaseModel):
    type: Literal["error"] = "error"
    code: str | None = None
    public_message: str
    private_message: str


ContentBlock = Annotated[
    Union[
        TextBlock,
        ThinkingBlock,
        RedactedThinkingBlock,
        ImageBlock,
        ImageDataBlock,
        ToolUseBlock,
        ToolResultBlock,
        ImageGenerationCallBlock,
        MetaBlock,
        ErrorBlock,
    ],
    Field(discriminator="type"),
]


# === USAGE & CONFIG ===


class UsageResponse(BaseModel):
    """Cost of one response in the currency of the configured rates."""

    input_cost: float
    output_cost: float
    web_search_cost: float | None = None
    total_cost: float
    did_generate_image: bool | None = None
    did_web_search: bool | None = None


ToolResultBlock.model_rebuild()
MetaBlock.model_rebuild()


class ModelConfig(BaseModel):
    """Per-model capabilities and rates (per million tokens, or flat fee)."""

    model_config = ConfigDict(frozen=True)

    api_name: str
    is_vision: bool = False
    is_image_generation: bool = False
    is_thinking: bool = False
    input_token_cost: float | None = None
    output_token_cost: float | None = None
    image_output_token_cost: float | None = None
    web_search_cost: float | None = None


class VendorConfig(BaseModel):
    """Credentials and endpoint for one vendor."""

    api_key: str
    organization_id: str | None = None
    base_url: str | None = None


# === MESSAGES & REQUESTS ===


class Message(BaseModel):
    """Single message in a conversation."""

    role: Role
    content: list[ContentBlock] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [{"type": "text", "text": v}]
        return v


class ToolDefinition(BaseModel):
    """Function tool offered to the model."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class MCPAvailableTool(BaseModel):
    """Tool discovered from an MCP server by the caller."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_tool_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name, description=self.description, input_schema=self.input_schema
        )


class ImageGenerationOptions(BaseModel):
    n: int | None = None
    size: str | None = None
    quality: str | None = None
    background: str | None = None
    output_format: str | None = None
    user: str | None = None

    def api_params(self) -> dict[str, Any]:
        """Set fields only, with ``"auto"`` values left to the vendor default."""
        return {
            k: v for k, v in self.model_dump().items() if v is not None and v != "auto"
        }


class ImageEditOptions(ImageGenerationOptions):
    image: list[Union[ImageBlock, ImageDataBlock]] = Field(default_factory=list)
    mask: Union[ImageBlock, ImageDataBlock, None] = None

    def api_params(self) -> dict[str, Any]:
        params = super().api_params()
        params.pop("image", None)
        params.pop("mask", None)
        return params


class AIRequestOptions(BaseModel):
    """Vendor-neutral request."""

    model: str
    messages: list[Message] = Field(default_factory=list)
    system_prompt: str | None = None
    max_tokens: int | None = None
    budget_tokens: int | None = None
    reasoning_effort: EffortTier | None = None
    temperature: float | None = None
    tools: list[ToolDefinition] | None = None
    web_search: bool = False
    image_generation_options: ImageGenerationOptions | None = None
    image_edit_options: ImageEditOptions | None = None
    previous_response_id: str | None = None
    store: bool | None = None
    use_image_generation: bool = False
    prompt: str | None = None
    vision_url: str | None = None


class AIResponse(BaseModel):
    role: str = "assistant"
    content: list[ContentBlock] = Field(default_factory=list)
    usage: UsageResponse | None = None


class ChatResponse(BaseModel):
    role: str = "assistant"
    content: list[ContentBlock] = Field(default_factory=list)
    usage: UsageResponse | None = None


class Chat(BaseModel):
    """Conversation state handed to ``send_chat``."""

    model: str
    response_history: list[Message] = Field(default_factory=list)
    prompt: str | None = None
    system_prompt: str | None = None
    max_tokens: int | None = None
    budget_tokens: int | None = None
    reasoning_effort: EffortTier | None = None
    vision_url: str | None = None
    image_data: str | None = None
    image_generation_options: ImageGenerationOptions | None = None
    image_edit_options: ImageEditOptions | None = None
    previous_response_id: str | None = None
    use_image_generation: bool = False
    web_search: bool = False


# === ORDERING ===

_THINKING_TYPES = ("thinking", "redacted_thinking")
_TEXT_TYPES = ("text",)
_ERROR_TYPES = ("error",)


def _rank(block: BaseModel) -> int:
    kind = getattr(block, "type", "")
    if kind in _THINKING_TYPES:
        return 0
    if kind in _TEXT_TYPES:
        return 1
    if kind in _ERROR_TYPES:
        return 3
    return 2


def order_blocks(blocks: list[Any]) -> list[Any]:
    """Reasoning first, then text, then tool/image results, then errors.

    Stable within each group.
    """
    return sorted(blocks, key=_rank)
