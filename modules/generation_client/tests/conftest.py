"""
Pytest configuration and fixtures for generation client tests.
"""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest


def pytest_configure(config):
    """Set up environment variables before any imports."""
    os.environ.setdefault("OPENAI_API_KEY", "sk-test123456789012345678901234567890")
    os.environ.setdefault("REPLICATE_API_TOKEN", "r8_test123456789012345678901234567890")
    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")


@pytest.fixture
def mock_openai_client():
    """AsyncOpenAI stand-in returning a four-part script and mp3 bytes."""
    client = MagicMock()
    message = MagicMock()
    message.content = json.dumps({
        "title": "Why Cats Nap",
        "hook": "Ever wondered why your cat sleeps all day?",
        "script": "Cats sleep up to sixteen hours.\n\nThey save energy for hunting.",
        "cta": "Subscribe for more cat facts!",
    })
    choice = MagicMock()
    choice.message = message
    completion = MagicMock()
    completion.choices = [choice]
    client.chat.completions.create = AsyncMock(return_value=completion)

    speech = MagicMock()
    speech.content = b"ID3mp3-bytes"
    client.audio.speech.create = AsyncMock(return_value=speech)
    return client


@pytest.fixture
def mock_replicate_client():
    """replicate.Client stand-in: run() returns one output URL, predictions start pending."""
    client = MagicMock()
    client.run = MagicMock(return_value=["https://replicate.delivery/out.png"])
    prediction = MagicMock()
    prediction.id = "pred-abc"
    prediction.status = "starting"
    prediction.output = None
    client.predictions.create = MagicMock(return_value=prediction)
    client.predictions.get = MagicMock(return_value=prediction)
    return client


@pytest.fixture
def mock_download():
    """Patch artifact downloads to return fixed bytes."""
    with patch(
        "modules.generation_client.replicate_client.download_output",
        new=AsyncMock(return_value=(b"\x89PNG", "image/png")),
    ) as mock:
        yield mock
