# src/llm/client_factory.py — v3
"""Factory: instantiate a vendor adapter from its name.

Adapter classes are imported lazily so a vendor's SDK is only needed when
that vendor is actually used.
"""

from __future__ import annotations

import functools
import importlib
import logging
from typing import Any

from vendorbridge.config.settings import Settings
from vendorbridge.llm.base_client import BaseVendorAdapter
from vendorbridge.llm.errors import AdapterConfigurationError, UnsupportedVendorError
from vendorbridge.llm.image_fetch import fetch_image_data
from vendorbridge.llm.models import ModelConfig, VendorConfig

logger = logging.getLogger(__name__)

# Registry of vendor name → adapter class path (lazy import).
_VENDOR_REGISTRY: dict[str, str] = {
    "anthropic": "vendorbridge.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "openai": "vendorbridge.llm.adapters.openai_adapter.OpenAIAdapter",
    "openai-image": "vendorbridge.llm.adapters.openai_image_adapter.OpenAIImageAdapter",
    "openrouter": "vendorbridge.llm.adapters.openrouter_adapter.OpenRouterAdapter",
    "grok": "vendorbridge.llm.adapters.grok_adapter.GrokAdapter",
    "xai": "vendorbridge.llm.adapters.grok_adapter.GrokAdapter",
    "google": "vendorbridge.llm.adapters.google_adapter.GoogleAdapter",
}


def create_adapter(
    vendor: str,
    model_config: ModelConfig,
    vendor_config: VendorConfig | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> BaseVendorAdapter:
    """Instantiate the adapter registered for ``vendor``.

    Args:
        vendor: Vendor identifier (anthropic, openai, openai-image,
            openrouter, grok, google).
        model_config: Model capabilities and rates.
        vendor_config: Explicit credentials; resolved from ``settings`` when
            omitted.
        settings: Application settings (API keys, defaults).
        **kwargs: Passed to the adapter constructor (client, diagnostics, ...).

    Returns:
        Configured adapter instance.

    Raises:
        UnsupportedVendorError: If the vendor is not registered.
        AdapterConfigurationError: If no credentials can be resolved.
    """
    name = vendor.lower()
    if name not in _VENDOR_REGISTRY:
        raise UnsupportedVendorError(
            f"Unsupported vendor: {vendor!r}. "
            f"Available: {', '.join(sorted(_VENDOR_REGISTRY))}"
        )

    if vendor_config is None and settings is not None:
        vendor_config = settings.vendor_config(name)
    if vendor_config is None:
        raise AdapterConfigurationError(f"No API key configured for vendor {vendor!r}")

    init_kwargs = dict(kwargs)
    if settings is not None:
        init_kwargs.setdefault("default_max_tokens", settings.default_max_tokens)
        init_kwargs.setdefault(
            "image_fetcher",
            functools.partial(fetch_image_data, timeout=settings.image_fetch_timeout_s),
        )

    adapter_cls = _import_class(_VENDOR_REGISTRY[name])
    logger.debug("Creating adapter: vendor=%s, model=%s", name, model_config.api_name)
    return adapter_cls(vendor_config, model_config, **init_kwargs)


def register_vendor(name: str, class_path: str) -> None:
    """Register a custom vendor adapter.

    Args:
        name: Vendor identifier.
        class_path: Fully qualified class path of a BaseVendorAdapter subclass.
    """
    _VENDOR_REGISTRY[name.lower()] = class_path
    logger.info("Registered vendor adapter: %s → %s", name, class_path)


def available_vendors() -> list[str]:
    return sorted(_VENDOR_REGISTRY)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
