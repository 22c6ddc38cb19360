# src/tracking/cost_calculator.py — v2
"""Usage cost of a single vendor response.

Rates are per million tokens; the web-search fee is flat. Special pricing is
decided from what the response did (image generated, web search invoked),
never from what the request asked for.
"""

from __future__ import annotations

import logging

from vendorbridge.llm.models import ModelConfig, UsageResponse

logger = logging.getLogger(__name__)

TOKENS_PER_RATE_UNIT = 1_000_000


def compute_response_cost(tokens: int | float, rate_per_million: float) -> float:
    """Cost of ``tokens`` at ``rate_per_million``."""
    return tokens * rate_per_million / TOKENS_PER_RATE_UNIT


def compute_usage(
    pricing: ModelConfig,
    input_tokens: int | None,
    output_tokens: int | None,
    did_generate_image: bool = False,
    did_web_search: bool = False,
) -> UsageResponse | None:
    """Compute the usage block for one response.

    Returns None (not a zeroed struct) when the vendor reported no token
    counts or when either base rate is not configured.

    Args:
        pricing: Model rates.
        input_tokens: Prompt tokens reported by the vendor.
        output_tokens: Completion tokens reported by the vendor.
        did_generate_image: Response produced an image; the image output
            rate, when set, applies to every output token.
        did_web_search: Response used web search; the flat fee, when set,
            is added once.
    """
    if input_tokens is None or output_tokens is None:
        return None
    if pricing.input_token_cost is None or pricing.output_token_cost is None:
        return None

    input_cost = compute_response_cost(input_tokens, pricing.input_token_cost)

    image_rate_applied = did_generate_image and pricing.image_output_token_cost is not None
    output_rate = (
        pricing.image_output_token_cost if image_rate_applied else pricing.output_token_cost
    )
    output_cost = compute_response_cost(output_tokens, output_rate)  # type: ignore[arg-type]

    web_fee_applied = did_web_search and pricing.web_search_cost is not None
    web_search_cost = pricing.web_search_cost if web_fee_applied else None

    total = input_cost + output_cost + (web_search_cost or 0.0)
    logger.debug(
        "Usage for %s: in=%d out=%d cost=%.8f", pricing.api_name, input_tokens, output_tokens, total
    )
    return UsageResponse(
        input_cost=input_cost,
        output_cost=output_cost,
        web_search_cost=web_search_cost,
        total_cost=total,
        did_generate_image=True if image_rate_applied else None,
        did_web_search=True if web_fee_applied else None,
    )
