# src/logging/context.py — v2
"""Contextual logging support: attach vendor, model and response_id to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set per adapter call; copied into each asyncio task automatically.
_vendor: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "vendor", default=None
)
_model: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "model", default=None
)
_response_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "response_id", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    vendor: str | None = None
    model: str | None = None
    response_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        vendor=_vendor.get(),
        model=_model.get(),
        response_id=_response_id.get(),
    )


def set_request_context(vendor: str, model: str) -> None:
    """Set request-level context (called at the start of every adapter call)."""
    _vendor.set(vendor)
    _model.set(model)
    _response_id.set(None)


def set_response_id(response_id: str | None) -> None:
    _response_id.set(response_id)


def clear_context() -> None:
    """Reset all context variables."""
    _vendor.set(None)
    _model.set(None)
    _response_id.set(None)
