"""
CLI tools for avrogen.

This module provides the avrogen command:
- generate, clean, scan, status

Invariants:
    - Tools never leave a partial cache entry behind
    - Operations are idempotent where possible
"""

from .avrogen_cli import AvroGenCLI

__all__ = ["AvroGenCLI"]
