# src/llm/payload.py — v1
"""Uniform field access over vendor payloads.

SDKs return typed objects; recorded fixtures and some streaming paths
deliver plain dicts. Parsers read both through ``get``.
"""

from __future__ import annotations

from typing import Any


def get(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def get_path(obj: Any, *names: str, default: Any = None) -> Any:
    """Nested ``get``: ``get_path(resp, "usage", "input_tokens")``."""
    current = obj
    for name in names:
        current = get(current, name)
        if current is None:
            return default
    return current

