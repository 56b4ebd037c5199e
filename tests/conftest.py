"""
Shared test fixtures for avrogen.
"""

import pytest

from avrogen.schema.registry import reset_registry


@pytest.fixture(autouse=True)
def fresh_registry():
    """Every test starts and ends with an empty global type registry."""
    reset_registry()
    yield
    reset_registry()
