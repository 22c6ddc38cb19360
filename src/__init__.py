# src/__init__.py — v1
"""vendorbridge: one async interface over multiple generative-AI vendors."""

__version__ = "0.1.0"
