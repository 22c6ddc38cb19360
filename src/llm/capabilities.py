# src/llm/capabilities.py — v1
"""Capability gate and adapter operation support.

The gate decides, per content block and message role, whether a block may be
sent to the bound model. It runs inside every request mapper, so streaming
and non-streaming calls are gated identically.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from vendorbridge.llm.diagnostics import Diagnostic, DiagnosticCode, DiagnosticSink
from vendorbridge.llm.models import (
    ErrorBlock,
    ImageBlock,
    ImageDataBlock,
    MetaBlock,
    RedactedThinkingBlock,
    ThinkingBlock,
)


class AdapterOperation(str, Enum):
    """Optional adapter operations a caller can probe with ``supports()``."""

    STREAM = "stream_response"
    GENERATE_IMAGE = "generate_image"
    EDIT_IMAGE = "edit_image"
    MCP_CHAT = "send_mcp_chat"


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of an adapter's capability flags for one call."""

    is_vision: bool
    is_image_generation: bool
    is_thinking: bool


class CapabilityGate:
    """Filter outgoing content blocks.

    Args:
        vendor: Vendor name used in diagnostics.
        capabilities: Flags of the bound model.
        sink: Diagnostic sink.
        accepts_client_thinking: Vendor protocol takes thinking blocks back
            (only on assistant messages).
        accepts_generated_images: Vendor takes assistant-side references to
            its own image generation calls.
    """

    def __init__(
        self,
        vendor: str,
        capabilities: Capabilities,
        sink: DiagnosticSink,
        accepts_client_thinking: bool = False,
        accepts_generated_images: bool = False,
    ) -> None:
        self.vendor = vendor
        self.capabilities = capabilities
        self._sink = sink
        self._accepts_client_thinking = accepts_client_thinking
        self._accepts_generated_images = accepts_generated_images

    def admit(self, block: Any, role: str) -> Any | None:
        """Return the block if it may be sent in a ``role`` message, else None."""
        if isinstance(block, (MetaBlock, ErrorBlock)):
            return None

        if isinstance(block, (ThinkingBlock, RedactedThinkingBlock)):
            if self._accepts_client_thinking and role == "assistant":
                return block
            return None

        if isinstance(block, (ImageBlock, ImageDataBlock)):
            if role == "assistant" and self._is_generation_reference(block):
                return block
            if not self.capabilities.is_vision:
                self.report(
                    DiagnosticCode.CAPABILITY_DROPPED,
                    "image dropped: model is not vision capable",
                    block_type=block.type,
                )
                return None
            if role != "user":
                self.report(
                    DiagnosticCode.CAPABILITY_DROPPED,
                    f"image dropped: images are only accepted in user messages, got {role}",
                    block_type=block.type,
                )
                return None
            return block

        return block

    def report(self, code: DiagnosticCode, message: str, **data: Any) -> None:
        self._sink(Diagnostic(code=code, vendor=self.vendor, message=message, data=data))

    def _is_generation_reference(self, block: ImageBlock | ImageDataBlock) -> bool:
        if not self._accepts_generated_images:
            return False
        if isinstance(block, ImageBlock):
            return block.generation_id is not None
        return block.id is not None
