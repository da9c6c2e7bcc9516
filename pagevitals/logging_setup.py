"""Structured logging setup for the page-vitals CLI.

Provides JSON and text logging formats with support for --quiet and --verbose flags.

Note: Named logging_setup.py to avoid conflicts with Python's built-in logging module.
"""

import sys
import json
import logging
from typing import Optional, Dict, Any, Union
from datetime import datetime


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON for machine-parseable output.

    Example output:
        {"timestamp": "2025-10-24T23:30:00.123Z", "level": "INFO",
         "logger": "pagevitals.driver", "message": "Page loaded",
         "extra": {"url": "https://example.com", "stage": "navigate"}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data["extra"] = record.extra

        # Function/line info only at DEBUG level
        if record.levelno == logging.DEBUG:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Formats log records as human-readable text.

    Example output:
        2025-10-24 23:30:00 [INFO] pagevitals.launcher: Chrome started (pid 4242)
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if hasattr(record, "extra") and isinstance(record.extra, dict) and record.extra:
            context = " ".join(f"{k}={v}" for k, v in record.extra.items())
            message = f"{message} [{context}]"
        return message


def setup_logging(
    format_type: str = "text",
    level: Optional[str] = None,
    quiet: bool = False,
    verbose: bool = False,
) -> None:
    """Configure logging with specified format and level.

    Args:
        format_type: Output format - "json" or "text" (default: "text")
        level: Logging level - "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
               If None, determined by quiet/verbose flags
        quiet: Suppress all output except errors (sets level to ERROR)
        verbose: Enable debug output (sets level to DEBUG)

    Precedence for level determination:
        1. quiet flag → ERROR
        2. verbose flag → DEBUG
        3. explicit level argument → as specified
        4. default → INFO
    """
    if quiet:
        log_level = logging.ERROR
    elif verbose:
        log_level = logging.DEBUG
    elif level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = logging.INFO

    formatter: Union[JSONFormatter, TextFormatter]
    if format_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("pagevitals").setLevel(log_level)
    # websockets logs every frame at DEBUG; coverage frames are megabytes
    logging.getLogger("websockets").setLevel(max(log_level, logging.INFO))


def log_with_context(
    logger: logging.Logger, level: int, message: str, **extra_fields
) -> None:
    """Log message with extra context fields (useful for JSON logging).

    Example:
        log_with_context(
            logger, logging.INFO, "Page loaded",
            url="https://example.com", stage="navigate"
        )

    JSON output:
        {"timestamp": "...", "level": "INFO", "message": "Page loaded",
         "extra": {"url": "https://example.com", "stage": "navigate"}}
    """
    if not logger.isEnabledFor(level):
        return
    if extra_fields:
        record = logger.makeRecord(
            logger.name, level, "(log_with_context)", 0, message, (), None
        )
        record.extra = extra_fields
        logger.handle(record)
    else:
        logger.log(level, message)
