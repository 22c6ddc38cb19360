# src/llm/errors.py — v1
"""Adapter error taxonomy and conversion of exceptions into error blocks.

Configuration problems raise before any network call. Transport errors on
non-streaming calls propagate unchanged; on streaming calls they are turned
into a single ErrorBlock by ``error_block_from_exception``.
"""

from __future__ import annotations

from vendorbridge.llm.models import ErrorBlock

STREAM_ERROR_MESSAGE = "An error occurred while streaming the response."


class VendorBridgeError(Exception):
    """Base class for errors raised by this package."""


class AdapterConfigurationError(VendorBridgeError):
    """Caller configuration is unusable (missing key, nothing to send, ...)."""


class MalformedResponseError(VendorBridgeError):
    """Vendor response contained no extractable content at all."""

    def __init__(self, vendor: str, detail: str):
        self.vendor = vendor
        self.detail = detail
        super().__init__(f"{detail} ({vendor})")


class NotSupportedError(VendorBridgeError, NotImplementedError):
    """Operation is not offered by this vendor adapter."""

    def __init__(self, vendor: str, operation: str, hint: str = ""):
        self.vendor = vendor
        self.operation = operation
        message = f"{operation} is not supported by the {vendor} adapter"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


class UnsupportedVendorError(VendorBridgeError, ValueError):
    """No adapter is registered under the requested vendor name."""


class VendorStreamError(VendorBridgeError):
    """Vendor reported an error inside an open stream."""

    def __init__(self, vendor: str, error_type: str, message: str):
        self.vendor = vendor
        self.error_type = error_type
        super().__init__(f"{vendor} stream error ({error_type}): {message}")


def error_block_from_exception(
    exc: BaseException, public_message: str = STREAM_ERROR_MESSAGE
) -> ErrorBlock:
    """Wrap an exception into a caller-safe ErrorBlock.

    ``code`` is the HTTP status when the SDK exception carries one,
    otherwise the exception class name.
    """
    status = getattr(exc, "status_code", None)
    code = str(status) if status is not None else type(exc).__name__
    return ErrorBlock(
        code=code,
        public_message=public_message,
        private_message=str(exc) or type(exc).__name__,
    )


def soft_failure_block(code: str, public_message: str, detail: str) -> ErrorBlock:
    """ErrorBlock for a vendor-reported terminal state (refusal, overflow, ...)."""
    return ErrorBlock(code=code, public_message=public_message, private_message=detail)
