# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides model/vendor configs, a diagnostics collector and helpers to fake
SDK streams. No network: every SDK client is a mock.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable

import pytest

from vendorbridge.llm.diagnostics import DiagnosticCollector
from vendorbridge.llm.models import ModelConfig, VendorConfig
from vendorbridge.logging.context import clear_context


# === FIXTURES: Configuration ===


@pytest.fixture
def vendor_config() -> VendorConfig:
    return VendorConfig(api_key="test-key")


@pytest.fixture
def model_config() -> ModelConfig:
    """Vision + thinking capable model priced at 10 / 30 per million tokens."""
    return ModelConfig(
        api_name="test-model",
        is_vision=True,
        is_thinking=True,
        input_token_cost=10.0,
        output_token_cost=30.0,
    )


@pytest.fixture
def plain_model_config() -> ModelConfig:
    """No capabilities, no pricing."""
    return ModelConfig(api_name="plain-model")


@pytest.fixture
def diagnostics() -> DiagnosticCollector:
    return DiagnosticCollector()


@pytest.fixture(autouse=True)
def _reset_log_context():
    yield
    clear_context()


# === FIXTURES: Streams ===


async def _iterate(items: list[Any], error: BaseException | None = None) -> AsyncIterator[Any]:
    for item in items:
        yield item
    if error is not None:
        raise error


@pytest.fixture
def make_stream() -> Callable[..., AsyncIterator[Any]]:
    """Build an async iterator of SDK events, optionally failing at the end."""
    return _iterate


@pytest.fixture
def collect() -> Callable[[AsyncIterator[Any]], Any]:
    """Drain an async iterator into a list."""

    async def _collect(stream: AsyncIterator[Any]) -> list[Any]:
        return [item async for item in stream]

    return _collect
