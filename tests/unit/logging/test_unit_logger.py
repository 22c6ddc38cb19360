# tests/unit/logging/test_unit_logger.py — v2
"""Tests for logging/logger.py — logger factory and formatters."""

from __future__ import annotations

import json
import logging

from vendorbridge.logging.context import set_request_context, set_response_id
from vendorbridge.logging.logger import JsonFormatter, TextFormatter, get_logger, setup_logging


def _record(msg: str = "Hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_request_context("anthropic", "claude-test")
        set_response_id("msg_1")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {
            "vendor": "anthropic", "model": "claude-test", "response_id": "msg_1"
        }

    def test_diagnostic_data_included(self):
        data = {"code": "capability_dropped", "vendor": "grok"}
        parsed = json.loads(JsonFormatter().format(_record(data=data)))
        assert parsed["data"] == data


class TestTextFormatter:
    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_context_tags(self):
        set_request_context("google", "gemini-test")
        output = TextFormatter().format(_record())
        assert "[google]" in output
        assert "(gemini-test)" in output


class TestGetLogger:
    def test_returns_logger(self):
        assert get_logger("adapters").name == "vendorbridge.adapters"


class TestSetupLogging:
    def test_setup_json(self):
        root = setup_logging(level="DEBUG", log_format="json")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_text_does_not_stack(self):
        setup_logging(level="INFO", log_format="text")
        root = setup_logging(level="WARNING", log_format="text")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert root.level == logging.WARNING
