# src/llm/streaming.py — v2
"""Reassembly of vendor stream events into content blocks.

Each stream call creates its own ``StreamReconstructor``. Blocks are keyed by
the stream-local index the vendor assigns:

    absent -> open:text | open:thinking | open:tool_use -> closed

Text and thinking deltas come back immediately, one block per delta. Tool
input fragments are buffered and only released, as one complete tool_use
block, when the index is closed. Events for an index that is not open, or
whose delta kind does not match the open block, are ignored.

A thinking block whose vendor sent a signature ends, on close, with one
signature-only thinking block (empty text). It is not a delta and adds
nothing to the concatenated thinking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from vendorbridge.llm.models import TextBlock, ThinkingBlock, ToolUseBlock

logger = logging.getLogger(__name__)


class BlockKind(str, Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"


@dataclass
class _OpenBlock:
    kind: BlockKind
    tool_id: str | None = None
    name: str = ""
    signature: str = ""
    signed: bool = False
    fragments: list[str] = field(default_factory=list)


class StreamReconstructor:
    """Per-index partial block state for one stream."""

    def __init__(self, signature: str = "") -> None:
        self._open: dict[int, _OpenBlock] = {}
        self._signature = signature

    # --- opening ---

    def open_text(self, index: int) -> None:
        self._open[index] = _OpenBlock(kind=BlockKind.TEXT)

    def open_thinking(self, index: int) -> None:
        self._open[index] = _OpenBlock(kind=BlockKind.THINKING, signature=self._signature)

    def open_tool_use(
        self, index: int, tool_id: str | None, name: str, initial: str = ""
    ) -> None:
        block = _OpenBlock(kind=BlockKind.TOOL_USE, tool_id=tool_id, name=name)
        if initial:
            block.fragments.append(initial)
        self._open[index] = block

    def is_open(self, index: int, kind: BlockKind | None = None) -> bool:
        block = self._open.get(index)
        if block is None:
            return False
        return kind is None or block.kind == kind

    # --- deltas ---

    def text_delta(self, index: int, text: str) -> TextBlock | None:
        if not text or not self._expect(index, BlockKind.TEXT):
            return None
        return TextBlock(text=text)

    def thinking_delta(self, index: int, thinking: str) -> ThinkingBlock | None:
        block = self._expect(index, BlockKind.THINKING)
        if not thinking or block is None:
            return None
        return ThinkingBlock(thinking=thinking, signature=block.signature)

    def signature_delta(self, index: int, signature: str) -> None:
        """Record the signature that follows the thinking text; ``close`` releases it."""
        block = self._expect(index, BlockKind.THINKING)
        if block is not None and signature:
            block.signature = signature
            block.signed = True

    def tool_input_delta(self, index: int, fragment: str) -> None:
        block = self._expect(index, BlockKind.TOOL_USE)
        if block is not None and fragment:
            block.fragments.append(fragment)

    def update_tool(self, index: int, tool_id: str | None = None, name: str | None = None) -> None:
        block = self._expect(index, BlockKind.TOOL_USE)
        if block is None:
            return
        if tool_id and not block.tool_id:
            block.tool_id = tool_id
        if name and not block.name:
            block.name = name

    # --- closing ---

    def close(self, index: int) -> ToolUseBlock | ThinkingBlock | None:
        """Close an index; tool_use and signed thinking blocks produce output here."""
        block = self._open.pop(index, None)
        if block is None:
            return None
        if block.kind == BlockKind.TOOL_USE:
            return self._finish_tool(block)
        if block.kind == BlockKind.THINKING and block.signed:
            return ThinkingBlock(thinking="", signature=block.signature)
        return None

    def close_all(self) -> list[ToolUseBlock | ThinkingBlock]:
        """Close every open index (stream ended without explicit stops)."""
        finished: list[ToolUseBlock | ThinkingBlock] = []
        for index in sorted(self._open):
            block = self.close(index)
            if block is not None:
                finished.append(block)
        self._open.clear()
        return finished

    # --- internals ---

    def _expect(self, index: int, kind: BlockKind) -> _OpenBlock | None:
        block = self._open.get(index)
        if block is None or block.kind != kind:
            logger.debug("Ignoring %s event for index %s", kind.value, index)
            return None
        return block

    @staticmethod
    def _finish_tool(block: _OpenBlock) -> ToolUseBlock:
        arguments = "".join(block.fragments) or "{}"
        return ToolUseBlock(id=block.tool_id, name=block.name, input=arguments)
