# src/llm/adapters/grok_adapter.py — v1
"""xAI Grok adapter: Chat Completions for text, Images API for image models."""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator

from vendorbridge.llm.adapters.chat_completions import ChatCompletionsAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.diagnostics import DiagnosticCode
from vendorbridge.llm.errors import MalformedResponseError, NotSupportedError
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    ContentBlock,
    ImageDataBlock,
    ImageGenerationOptions,
    MetaBlock,
)
from vendorbridge.llm.payload import get
from vendorbridge.llm.reasoning import effort_for_budget

logger = logging.getLogger(__name__)

XAI_BASE_URL = "https://api.x.ai/v1"
GROK_IMAGE_MIME_TYPE = "image/jpeg"

_IMAGE_ROUTE = "image_request"


class GrokAdapter(ChatCompletionsAdapter):
    """Adapter for xAI Grok models.

    Requests for an image-capable model are routed to ``images.generate``
    when image options are given, ``use_image_generation`` is set, or the
    model id names an image model (``grok-2-image``).
    """

    vendor = "grok"
    display_name = "Grok"
    default_base_url = XAI_BASE_URL
    thinking_signature = "grok"
    operations = frozenset({AdapterOperation.STREAM})

    @property
    def supported_operations(self) -> frozenset[AdapterOperation]:
        if self.is_image_generation:
            return self.operations | {AdapterOperation.GENERATE_IMAGE}
        return self.operations

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        if self._routes_to_images(options):
            return await self.generate_image(options)
        return await super().generate_response(options)

    async def generate_image(self, options: AIRequestOptions) -> AIResponse:
        """Generate images with ``images.generate`` (base64 JPEG output)."""
        if not self.is_image_generation:
            raise NotSupportedError(
                self.vendor,
                AdapterOperation.GENERATE_IMAGE.value,
                f"{self.model} is not image-generation capable",
            )
        model = self._begin(options)
        prompt = self._image_prompt(options)
        image_options = options.image_generation_options or ImageGenerationOptions()

        params: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "n": image_options.n or 1,
            "response_format": "b64_json",
        }
        size = image_options.api_params().get("size")
        if size:
            params["size"] = size

        logger.debug("Grok image generation: model=%s n=%s", model, params["n"])
        result = await self._client.images.generate(**params)
        images = [
            ImageDataBlock(mime_type=GROK_IMAGE_MIME_TYPE, base64_data=get(item, "b64_json"))
            for item in get(result, "data", [])
            if get(item, "b64_json")
        ]
        if not images:
            raise MalformedResponseError(self.vendor, "No image data received from Grok")
        # The xAI Images API reports no token usage
        return AIResponse(content=images)

    def _routes_to_images(self, options: AIRequestOptions) -> bool:
        model = (options.model or self.model).lower()
        wants_image = (
            options.image_generation_options is not None
            or options.use_image_generation
            or "-image" in model
        )
        return wants_image and self.is_image_generation

    def _vendor_params(self, options: AIRequestOptions) -> dict[str, Any]:
        params: dict[str, Any] = {}
        effort = effort_for_budget(options.budget_tokens, options.reasoning_effort)
        if self.is_thinking and effort is not None:
            params["reasoning_effort"] = effort
        if options.web_search:
            self._report(
                DiagnosticCode.CAPABILITY_DROPPED,
                "web search is not available through the grok adapter",
            )
        return params

    # --- Streaming ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> dict[str, Any]:
        if stream and self._routes_to_images(options):
            self._image_prompt(options)
            return {_IMAGE_ROUTE: options}
        return await super()._prepare_request(options, stream)

    async def _stream_blocks(self, request: dict[str, Any]) -> AsyncIterator[ContentBlock]:
        if _IMAGE_ROUTE not in request:
            async for block in super()._stream_blocks(request):
                yield block
            return

        # Image generation is not incremental: one call, then its blocks in order.
        response = await self.generate_image(request[_IMAGE_ROUTE])
        for block in response.content:
            yield block
        yield MetaBlock(response_id=f"grok-image-{uuid.uuid4().hex}", usage=response.usage)
