"""
Pytest configuration and fixtures for thumbnail generator tests.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest


def pytest_configure(config):
    """Set up environment variables before any imports."""
    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")


@pytest.fixture
def mock_port():
    """Port whose refine_image returns a distinct artifact per call."""
    port = MagicMock()
    counter = {"n": 0}

    async def refine_image(prompt, base_image=None):
        artifact = f"data:image/png;base64,thumb{counter['n']}"
        counter["n"] += 1
        return artifact

    port.refine_image = AsyncMock(side_effect=refine_image)
    return port
