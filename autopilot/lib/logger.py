import logging
import os
from typing import Optional

# Map string log levels to logging constants
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# LogRecord attributes that are never rendered as extras
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "taskName",
    ]
)

# Extras rendered under a shorter name and truncated
_SHORT_ID_KEYS = {
    "job_id": "job",
    "test_job_id": "test_job",
    "publish_job_id": "publish_job",
}


class StructuredFormatter(logging.Formatter):
    """Human-readable structured formatter.

    Renders ``timestamp | LEVEL | logger | message`` followed by the ``extra``
    fields passed to the log call as ``key=value`` pairs.
    """

    def format(self, record):
        timestamp = self.formatTime(record, self.datefmt or "%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        logger_name = record.name.split(".")[-1][:20].ljust(20)
        message = record.getMessage()

        log_line = f"{timestamp} | {level} | {logger_name} | {message}"

        extras = []
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or value is None:
                continue
            if key == "event_type":
                extras.append(f"type={value}")
            elif key in _SHORT_ID_KEYS:
                # uuid4 job ids stay greppable by their first segment
                extras.append(f"{_SHORT_ID_KEYS[key]}={str(value)[:8]}")
            elif isinstance(value, (dict, list)):
                extras.append(f"{key}={str(value)[:100]}")
            else:
                extras.append(f"{key}={value}")

        if extras:
            log_line += f" | {' '.join(extras)}"

        if record.exc_info:
            log_line += f"\n{self.formatException(record.exc_info)}"

        return log_line


def configure_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Configure and return a logger instance with consistent formatting and level.

    Args:
        name (Optional[str]): Logger name. If None, returns the package logger

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name if name else "autopilot")

    # Set log level from environment variable, default to INFO if not set
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = LOG_LEVELS.get(log_level_str, logging.INFO)
    logger.setLevel(log_level)

    # Only our own handler counts; others may already be attached
    if not any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)
        # Handlers are attached per logger; avoid double output via root
        logger.propagate = False

    return logger


def setup_uvicorn_logging() -> None:
    """Configure uvicorn and fastapi loggers to use structured formatting."""
    # Access logs are emitted by LoggingMiddleware instead
    logging.getLogger("uvicorn.access").disabled = True

    structured_formatter = StructuredFormatter()

    for logger_name in ["uvicorn", "uvicorn.error", "fastapi"]:
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers:
            handler.setFormatter(structured_formatter)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.setFormatter(structured_formatter)
