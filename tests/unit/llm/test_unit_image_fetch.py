# tests/unit/llm/test_unit_image_fetch.py — v1
"""Tests for llm/image_fetch.py — URL download and data URL parsing."""

from __future__ import annotations

import base64

import httpx
import pytest

from vendorbridge.llm import image_fetch
from vendorbridge.llm.image_fetch import fetch_image_data, parse_data_url

_REAL_CLIENT = httpx.AsyncClient


def _install_transport(monkeypatch, handler):
    def factory(*args, **kwargs):
        return _REAL_CLIENT(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(image_fetch.httpx, "AsyncClient", factory)


class TestFetchImageData:
    @pytest.mark.asyncio
    async def test_image_encoded(self, monkeypatch):
        _install_transport(
            monkeypatch,
            lambda request: httpx.Response(
                200, content=b"\x89PNG", headers={"content-type": "image/png; charset=binary"}
            ),
        )
        block = await fetch_image_data("https://example.com/a.png")
        assert block.mime_type == "image/png"
        assert base64.b64decode(block.base64_data) == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self, monkeypatch):
        _install_transport(monkeypatch, lambda request: httpx.Response(404))
        assert await fetch_image_data("https://example.com/missing.png") is None

    @pytest.mark.asyncio
    async def test_non_image_returns_none(self, monkeypatch):
        _install_transport(
            monkeypatch,
            lambda request: httpx.Response(200, text="<html>", headers={"content-type": "text/html"}),
        )
        assert await fetch_image_data("https://example.com/page") is None

    @pytest.mark.asyncio
    async def test_transport_error_returns_none(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        _install_transport(monkeypatch, handler)
        assert await fetch_image_data("https://example.com/a.png") is None


class TestParseDataUrl:
    def test_valid(self):
        block = parse_data_url("data:image/webp;base64,UklGRg==")
        assert block.mime_type == "image/webp"
        assert block.base64_data == "UklGRg=="

    def test_missing_mime_defaults_png(self):
        assert parse_data_url("data:;base64,AAAA").mime_type == "image/png"

    def test_plain_url_rejected(self):
        assert parse_data_url("https://example.com/a.png") is None
        assert parse_data_url("data:image/png,raw") is None
