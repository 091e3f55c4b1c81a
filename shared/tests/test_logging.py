"""
Tests for structured logging.
"""

import asyncio
import json
import logging
from uuid import uuid4

import pytest
from shared.logging import get_logger, set_run_id, get_run_id, JSONFormatter


def format_last(caplog) -> dict:
    assert len(caplog.records) > 0
    return json.loads(JSONFormatter().format(caplog.records[-1]))


def test_get_logger_creates_logger():
    """Test that get_logger creates a logger instance."""
    logger = get_logger("test_module")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "test_module"


def test_get_logger_configures_handlers_once():
    """Test that repeated calls do not stack handlers."""
    first = get_logger("test_module_handlers")
    handler_count = len(first.handlers)
    second = get_logger("test_module_handlers")
    assert second is first
    assert len(second.handlers) == handler_count


def test_logger_outputs_json_format(caplog):
    """Test that logger outputs JSON format."""
    logger = get_logger("test_module")
    logger.setLevel(logging.INFO)

    logger.info("Test message", extra={"key": "value"})

    log_data = format_last(caplog)
    assert log_data["level"] == "INFO"
    assert log_data["message"] == "Test message"
    assert log_data["key"] == "value"
    assert log_data["timestamp"].endswith("Z")


def test_logger_includes_run_id(caplog):
    """Test that logger includes run_id when set in context."""
    logger = get_logger("test_module")
    logger.setLevel(logging.INFO)

    run_id = str(uuid4())
    set_run_id(run_id)

    try:
        logger.info("Test message")
        assert format_last(caplog)["run_id"] == run_id
    finally:
        set_run_id(None)


def test_logger_excludes_run_id_when_not_set(caplog):
    """Test that logger excludes run_id when not set."""
    logger = get_logger("test_module")
    logger.setLevel(logging.INFO)

    set_run_id(None)
    logger.info("Test message")

    assert "run_id" not in format_last(caplog)


def test_set_get_run_id():
    """Test that run_id can be set and retrieved."""
    set_run_id("run-1")
    assert get_run_id() == "run-1"

    set_run_id(None)
    assert get_run_id() is None


def test_logger_stringifies_complex_extra_fields(caplog):
    """Test that non-scalar extra values are rendered as strings."""
    logger = get_logger("test_module")
    logger.setLevel(logging.INFO)

    logger.info("Test message", extra={"count": 5, "paragraphs": [0, 2]})

    log_data = format_last(caplog)
    assert log_data["count"] == 5
    assert log_data["paragraphs"] == "[0, 2]"


def test_logger_includes_exception(caplog):
    """Test that logger includes exception information."""
    logger = get_logger("test_module")
    logger.setLevel(logging.ERROR)

    try:
        raise ValueError("Test error")
    except ValueError:
        logger.exception("Exception occurred")

    log_data = format_last(caplog)
    assert "exception" in log_data
    assert "ValueError: Test error" in log_data["exception"]


@pytest.mark.asyncio
async def test_run_id_is_isolated_per_task(caplog):
    """Test that each asyncio task sees its own run_id."""

    async def in_task(run_id):
        set_run_id(run_id)
        await asyncio.sleep(0)
        return get_run_id()

    results = await asyncio.gather(in_task("a"), in_task("b"))

    assert results == ["a", "b"]
    assert get_run_id() is None
