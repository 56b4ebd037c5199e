"""
avrogen Test Suite.

This package contains:
- unit/: Unit tests (parsers, registry, codegen, scanner, cache, config)
- integration/: Integration tests (full incremental builds, CLI)
"""
