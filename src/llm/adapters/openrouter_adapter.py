# src/llm/adapters/openrouter_adapter.py — v1
"""OpenRouter adapter (OpenAI-compatible Chat Completions)."""

from __future__ import annotations

from typing import Any

from vendorbridge.llm.adapters.chat_completions import ChatCompletionsAdapter
from vendorbridge.llm.models import AIRequestOptions
from vendorbridge.llm.reasoning import passthrough_budget

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
WEB_PLUGIN = {"id": "web"}


class OpenRouterAdapter(ChatCompletionsAdapter):
    """Adapter for models routed through OpenRouter.

    Capabilities depend on the routed model, so they come entirely from
    ModelConfig. Reasoning takes the raw token budget; an effort override is
    only sent when no budget is given.
    """

    vendor = "openrouter"
    display_name = "OpenRouter"
    default_base_url = OPENROUTER_BASE_URL
    thinking_signature = "openrouter"

    def _vendor_params(self, options: AIRequestOptions) -> dict[str, Any]:
        extra_body: dict[str, Any] = {}
        if self.is_thinking:
            budget = passthrough_budget(options.budget_tokens)
            if budget is not None:
                extra_body["reasoning"] = {"max_tokens": budget}
            elif options.reasoning_effort is not None:
                extra_body["reasoning"] = {"effort": options.reasoning_effort}
        if options.web_search:
            extra_body["plugins"] = [dict(WEB_PLUGIN)]
        if options.use_image_generation and self.is_image_generation:
            extra_body["modalities"] = ["image", "text"]
        return {"extra_body": extra_body} if extra_body else {}
