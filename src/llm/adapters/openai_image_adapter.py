# src/llm/adapters/openai_image_adapter.py — v1
"""OpenAI Images API adapter (``images.generate`` / ``images.edit``).

Text generation is not offered: ``generate_response`` only dispatches to the
image operations when image options are present.
"""

from __future__ import annotations

import base64
import logging
import uuid
from typing import Any, AsyncIterator

from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.capabilities import AdapterOperation
from vendorbridge.llm.errors import (
    AdapterConfigurationError,
    MalformedResponseError,
    NotSupportedError,
)
from vendorbridge.llm.models import (
    AIRequestOptions,
    AIResponse,
    Chat,
    ChatResponse,
    ContentBlock,
    ImageBlock,
    ImageDataBlock,
    MetaBlock,
)
from vendorbridge.llm.payload import get
from vendorbridge.logging.context import set_response_id

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME_TYPE = "image/png"


class OpenAIImageAdapter(BaseVendorAdapter):
    """Adapter for OpenAI image models (gpt-image-1, dall-e)."""

    vendor = "openai-image"
    operations = frozenset(
        {AdapterOperation.STREAM, AdapterOperation.GENERATE_IMAGE, AdapterOperation.EDIT_IMAGE}
    )

    def _create_client(self) -> Any:
        try:
            import openai
        except ImportError as e:
            raise ImportError("openai package required: pip install openai") from e
        return openai.AsyncOpenAI(
            api_key=self._vendor_config.api_key,
            organization=self._vendor_config.organization_id,
            base_url=self._vendor_config.base_url,
        )

    async def generate_response(self, options: AIRequestOptions) -> AIResponse:
        """Dispatch to edit or generate; plain text requests are not supported."""
        if options.image_edit_options is not None:
            return await self.edit_image(options)
        if options.image_generation_options is not None:
            return await self.generate_image(options)
        raise NotSupportedError(
            self.vendor, "generate_response", "use generate_image or edit_image"
        )

    async def send_chat(self, chat: Chat) -> ChatResponse:
        """Edit when an image is attached, otherwise generate.

        Raises:
            AdapterConfigurationError: If the chat carries no matching image options.
        """
        # The attached image is an edit input here, not conversation content
        options = self.chat_request(chat.model_copy(update={"vision_url": None}))
        if chat.vision_url:
            if chat.image_edit_options is None:
                raise AdapterConfigurationError(
                    "image_edit_options are required when vision_url is given for image editing"
                )
            edit_options = chat.image_edit_options.model_copy(
                update={"image": [ImageBlock(url=chat.vision_url)]}
            )
            response = await self.edit_image(options.model_copy(update={"image_edit_options": edit_options}))
        elif chat.image_generation_options is not None:
            response = await self.generate_image(options)
        elif chat.image_edit_options is not None:
            response = await self.edit_image(options)
        else:
            raise AdapterConfigurationError(
                "image_generation_options or image_edit_options are required for openai-image chats"
            )
        return ChatResponse(role=response.role, content=response.content, usage=response.usage)

    async def generate_image(self, options: AIRequestOptions) -> AIResponse:
        """Create images from a text prompt."""
        model = self._begin(options)
        prompt = self._image_prompt(options)
        image_options = options.image_generation_options
        if image_options is None:
            raise AdapterConfigurationError(
                "image_generation_options are required for OpenAI image generation"
            )

        params: dict[str, Any] = {"model": model, "prompt": prompt, **image_options.api_params()}
        logger.debug("Image generation params: %s", {k: v for k, v in params.items() if k != "prompt"})
        result = await self._client.images.generate(**params)
        return self._image_response(result, image_options.output_format)

    async def edit_image(self, options: AIRequestOptions) -> AIResponse:
        """Edit one or more input images (optionally masked) from a text prompt."""
        model = self._begin(options)
        edit_options = options.image_edit_options
        if edit_options is None:
            raise AdapterConfigurationError("image_edit_options are required for OpenAI image editing")
        prompt = self._image_prompt(options)
        if not edit_options.image:
            raise AdapterConfigurationError("An input image is required for editing")

        files = [await self._image_file(image, f"image-{i}") for i, image in enumerate(edit_options.image)]
        params: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "image": files[0] if len(files) == 1 else files,
            **edit_options.api_params(),
        }
        if edit_options.mask is not None:
            params["mask"] = await self._image_file(edit_options.mask, "mask")

        logger.debug("Image edit: model=%s images=%d mask=%s", model, len(files), "mask" in params)
        result = await self._client.images.edit(**params)
        return self._image_response(result, edit_options.output_format)

    # --- Helpers ---

    def _image_response(self, result: Any, output_format: str | None) -> AIResponse:
        mime_type = f"image/{output_format}" if output_format else DEFAULT_IMAGE_MIME_TYPE
        images = [
            ImageDataBlock(mime_type=mime_type, base64_data=get(item, "b64_json"))
            for item in get(result, "data", [])
            if get(item, "b64_json")
        ]
        if not images:
            raise MalformedResponseError(self.vendor, "OpenAI API returned success but no image data")

        usage = get(result, "usage")
        return AIResponse(
            content=images,
            usage=self._usage(
                get(usage, "input_tokens"),
                get(usage, "output_tokens"),
                did_generate_image=True,
            ),
        )

    async def _image_file(
        self, image: ImageBlock | ImageDataBlock, stem: str
    ) -> tuple[str, bytes, str]:
        """Upload tuple ``(filename, content, mime_type)`` for the SDK multipart body."""
        if isinstance(image, ImageBlock):
            fetched = await self._fetch_image(image.url)
            if fetched is None:
                raise AdapterConfigurationError(f"Failed to fetch image URL: {image.url}")
            image = fetched
        extension = image.mime_type.split("/")[-1] or "png"
        return f"{stem}.{extension}", base64.b64decode(image.base64_data), image.mime_type

    # --- Streaming (single shot) ---

    async def _prepare_request(self, options: AIRequestOptions, stream: bool = False) -> AIRequestOptions:
        if options.image_edit_options is None and options.image_generation_options is None:
            raise NotSupportedError(
                self.vendor, "stream_response", "image options are required; text is not supported"
            )
        return options

    async def _stream_blocks(self, request: AIRequestOptions) -> AsyncIterator[ContentBlock]:
        response_id = f"openai-image-{uuid.uuid4().hex}"
        set_response_id(response_id)
        yield MetaBlock(response_id=response_id)
        response = await self.generate_response(request)
        for block in response.content:
            yield block
        yield MetaBlock(response_id=response_id, usage=response.usage)
