# src/llm/image_fetch.py — v1
"""Fetch a URL image and encode it as an ImageDataBlock.

Used by vendors that only accept inline image bytes (Gemini, image edits).
"""

from __future__ import annotations

import base64
import logging
from typing import Awaitable, Callable

import httpx

from vendorbridge.llm.models import ImageDataBlock

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str], Awaitable["ImageDataBlock | None"]]

_DEFAULT_TIMEOUT_S = 30.0


async def fetch_image_data(url: str, timeout: float = _DEFAULT_TIMEOUT_S) -> ImageDataBlock | None:
    """Download ``url``; return None when it fails or is not an image."""
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
    except (httpx.HTTPStatusError, httpx.RequestError) as e:
        logger.warning("Image fetch failed for %s: %s", url, e)
        return None

    mime_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if not mime_type.startswith("image/"):
        logger.warning("URL %s returned non-image content-type %r", url, mime_type)
        return None

    return ImageDataBlock(
        mime_type=mime_type,
        base64_data=base64.b64encode(response.content).decode("ascii"),
    )


def parse_data_url(url: str) -> ImageDataBlock | None:
    """Split a ``data:<mime>;base64,<payload>`` URL; None for anything else."""
    if not url.startswith("data:") or ";base64," not in url:
        return None
    header, payload = url[len("data:"):].split(";base64,", 1)
    return ImageDataBlock(mime_type=header or "image/png", base64_data=payload)
