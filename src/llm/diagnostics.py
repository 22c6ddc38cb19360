# src/llm/diagnostics.py — v1
"""Structured diagnostics emitted when content is dropped or looks wrong.

Adapters never raise for these conditions. They hand a ``Diagnostic`` to a
sink; the default sink logs it with the record attached as ``data`` so the
JSON formatter includes it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class DiagnosticCode(str, Enum):
    CAPABILITY_DROPPED = "capability_dropped"
    SYSTEM_MESSAGE_DROPPED = "system_message_dropped"
    UNMAPPABLE_CONTENT = "unmappable_content"
    IMAGE_FETCH_FAILED = "image_fetch_failed"
    INVALID_TOOL_INPUT = "invalid_tool_input"
    NO_TEXT_OUTPUT = "no_text_output"


@dataclass(frozen=True)
class Diagnostic:
    code: DiagnosticCode
    vendor: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["code"] = self.code.value
        return d


DiagnosticSink = Callable[[Diagnostic], None]


def log_diagnostic(diagnostic: Diagnostic) -> None:
    """Default sink: one WARNING record per diagnostic."""
    logger.warning(
        "[%s] %s: %s",
        diagnostic.vendor,
        diagnostic.code.value,
        diagnostic.message,
        extra={"data": diagnostic.as_dict()},
    )


class DiagnosticCollector:
    """Sink that keeps diagnostics in memory (tests, request-scoped inspection)."""

    def __init__(self) -> None:
        self.items: list[Diagnostic] = []

    def __call__(self, diagnostic: Diagnostic) -> None:
        self.items.append(diagnostic)

    def codes(self) -> list[DiagnosticCode]:
        return [d.code for d in self.items]
