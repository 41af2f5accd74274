import logging
import os
from typing import Generator

import pytest

from autopilot.lib.logger import StructuredFormatter, configure_logger


@pytest.fixture
def reset_logging() -> Generator[None, None, None]:
    """Reset logging configuration after each test."""
    yield
    for name in ("autopilot", "test_logger"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def env_cleanup() -> Generator[None, None, None]:
    """Clean up environment variables after each test."""
    old_level = os.environ.get("LOG_LEVEL")
    yield
    if old_level:
        os.environ["LOG_LEVEL"] = old_level
    else:
        os.environ.pop("LOG_LEVEL", None)


def test_configure_logger_default(reset_logging: None, env_cleanup: None) -> None:
    """Test logger configuration with default settings."""
    os.environ.pop("LOG_LEVEL", None)
    logger = configure_logger()
    assert logger.name == "autopilot"
    assert logger.level == logging.INFO


def test_configure_logger_custom_name(reset_logging: None, env_cleanup: None) -> None:
    """Test logger configuration with custom name."""
    os.environ.pop("LOG_LEVEL", None)
    logger = configure_logger("test_logger")
    assert logger.name == "test_logger"
    assert logger.level == logging.INFO


def test_configure_logger_custom_level(reset_logging: None, env_cleanup: None) -> None:
    """Test logger configuration with custom log level."""
    os.environ["LOG_LEVEL"] = "DEBUG"
    logger = configure_logger()
    assert logger.level == logging.DEBUG


def test_configure_logger_invalid_level(reset_logging: None, env_cleanup: None) -> None:
    """Test logger configuration with invalid log level."""
    os.environ["LOG_LEVEL"] = "INVALID"
    logger = configure_logger()
    assert logger.level == logging.INFO  # Should default to INFO for invalid levels


def test_configure_logger_case_insensitive(
    reset_logging: None, env_cleanup: None
) -> None:
    """Test logger configuration with case-insensitive log level."""
    os.environ["LOG_LEVEL"] = "debug"
    logger = configure_logger()
    assert logger.level == logging.DEBUG


def test_configure_logger_single_handler(reset_logging: None) -> None:
    """Configuring the same logger twice does not duplicate output."""
    configure_logger("test_logger")
    logger = configure_logger("test_logger")
    structured = [
        h for h in logger.handlers if isinstance(h.formatter, StructuredFormatter)
    ]
    assert len(structured) == 1
    assert logger.propagate is False


def test_structured_formatter_renders_extras() -> None:
    record = logging.LogRecord(
        "autopilot.queue", logging.WARNING, __file__, 1, "Job retrying", None, None
    )
    record.queue = "workflow-generation"
    record.event_type = "job_retrying"
    record.job_id = "3f2a9c1e-77aa-4b1e-9d1c-0c5f1f9b2a10"
    record.error = None

    line = StructuredFormatter().format(record)

    assert "WARNING" in line
    assert "Job retrying" in line
    assert "queue=workflow-generation" in line
    assert "type=job_retrying" in line
    assert "job=3f2a9c1e" in line
    assert "3f2a9c1e-" not in line
    assert "job_id=" not in line
    assert "error=" not in line


def test_configure_logger_alongside_foreign_handler(reset_logging: None) -> None:
    """A pre-attached handler does not stop structured output from being set up."""
    logger = logging.getLogger("test_logger")
    logger.addHandler(logging.NullHandler())

    configure_logger("test_logger")

    assert any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers)
    assert logger.propagate is False
