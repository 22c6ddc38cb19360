# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Holds vendor credentials and endpoint overrides plus request defaults. The
adapters themselves never read the environment; ``client_factory`` turns
these settings into a ``VendorConfig``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vendorbridge.llm.models import VendorConfig


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Vendor credentials ===
    anthropic_api_key: str = ""
    anthropic_base_url: str = ""

    openai_api_key: str = ""
    openai_organization_id: str = ""
    openai_base_url: str = ""

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    xai_api_key: str = ""
    xai_base_url: str = "https://api.x.ai/v1"

    google_api_key: str = ""

    # === Request defaults ===
    default_max_tokens: int = 1024
    image_fetch_timeout_s: float = 30.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"

    # --- Validators ---

    @field_validator("openrouter_base_url", "xai_base_url", "openai_base_url", "anthropic_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_limits(self) -> Settings:
        errors: list[str] = []
        if self.default_max_tokens <= 0:
            errors.append("DEFAULT_MAX_TOKENS must be > 0")
        if self.image_fetch_timeout_s <= 0:
            errors.append("IMAGE_FETCH_TIMEOUT_S must be > 0")
        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    # --- Helpers ---

    def vendor_config(self, vendor: str) -> VendorConfig | None:
        """Credentials for ``vendor``, or None when its API key is not set."""
        vendor = vendor.lower()
        if vendor in ("openai", "openai-image"):
            key, base_url, org = self.openai_api_key, self.openai_base_url, self.openai_organization_id
        elif vendor == "anthropic":
            key, base_url, org = self.anthropic_api_key, self.anthropic_base_url, ""
        elif vendor == "openrouter":
            key, base_url, org = self.openrouter_api_key, self.openrouter_base_url, ""
        elif vendor in ("grok", "xai"):
            key, base_url, org = self.xai_api_key, self.xai_base_url, ""
        elif vendor == "google":
            key, base_url, org = self.google_api_key, "", ""
        else:
            return None
        if not key:
            return None
        return VendorConfig(api_key=key, base_url=base_url or None, organization_id=org or None)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
