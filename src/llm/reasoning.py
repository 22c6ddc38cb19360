# src/llm/reasoning.py — v1
"""Translation of a thinking budget into vendor reasoning controls."""

from __future__ import annotations

from vendorbridge.llm.models import EffortTier

HIGH_EFFORT_THRESHOLD = 8192


def effort_for_budget(
    budget_tokens: int | None, override: EffortTier | None = None
) -> EffortTier | None:
    """Quantize a token budget into an effort tier.

    An explicit override always wins. ``0`` is low, anything below
    HIGH_EFFORT_THRESHOLD is medium, the rest is high. No budget and no
    override means no reasoning control at all.
    """
    if override is not None:
        return override
    if budget_tokens is None:
        return None
    if budget_tokens <= 0:
        return "low"
    if budget_tokens < HIGH_EFFORT_THRESHOLD:
        return "medium"
    return "high"


def passthrough_budget(budget_tokens: int | None) -> int | None:
    """Token budget for vendors that take one directly (``None`` when unset or zero)."""
    if budget_tokens is None or budget_tokens <= 0:
        return None
    return budget_tokens
