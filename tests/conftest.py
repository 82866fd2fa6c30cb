"""Shared pytest configuration for the asyncreq test suite."""

import sys
from pathlib import Path

import pytest

# Make the package importable without installing it
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from asyncreq.server.config import reset_settings  # noqa: E402


@pytest.fixture
def anyio_backend():
    """The HTTP layer and asyncio bridges are asyncio-only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; start each test from the environment."""
    reset_settings()
    yield
    reset_settings()
