"""
Logging configuration and utilities for prql-query.

Provides:
- Colored console output on stderr (stdout carries query results)
- Execution timing for compile / execute / write phases
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Optional


# ANSI color codes for console output
class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BG_RED = "\033[41m"


# Level to color mapping
LEVEL_COLORS = {
    "DEBUG": Colors.DIM + Colors.CYAN,
    "INFO": Colors.GREEN,
    "WARNING": Colors.YELLOW,
    "ERROR": Colors.RED,
    "CRITICAL": Colors.BOLD + Colors.BG_RED + Colors.WHITE,
}


class ColoredFormatter(logging.Formatter):
    """
    Colored log formatter for console output.

    Adds ANSI color codes based on log level when stderr is a terminal.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        if not self.use_colors:
            return super().format(record)

        original_levelname = record.levelname
        original_name = record.name

        color = LEVEL_COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{Colors.RESET}"
        record.name = f"{Colors.CYAN}{record.name}{Colors.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname
            record.name = original_name


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    console_colors: bool = True

    @classmethod
    def from_verbosity(cls, verbosity: int) -> "LogConfig":
        """Map the number of -v flags to a level."""
        if verbosity >= 2:
            return cls(level="DEBUG")
        if verbosity == 1:
            return cls(level="INFO")
        return cls()


def setup_logging(
    config: Optional[LogConfig] = None,
    root_logger_name: str = "prql_query",
) -> logging.Logger:
    """
    Configure logging for prql-query.

    Args:
        config: LogConfig instance or None for defaults
        root_logger_name: Name for the package root logger

    Returns:
        Configured logger instance
    """
    config = config or LogConfig()
    level = getattr(logging, config.level.upper())

    logger = logging.getLogger(root_logger_name)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if config.console_colors:
        formatter = ColoredFormatter(config.format, config.date_format)
    else:
        formatter = logging.Formatter(config.format, config.date_format)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a prql-query component.

    Args:
        name: Logger name (will be prefixed with 'prql_query.')

    Returns:
        Logger instance
    """
    if not name.startswith("prql_query"):
        name = f"prql_query.{name}"
    return logging.getLogger(name)


@contextmanager
def log_execution_time(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
):
    """
    Context manager to log execution time of an operation.

    Example:
        with log_execution_time(logger, "execute"):
            backend.execute(sql)
    """
    start_time = perf_counter()
    logger.log(level, f"Starting: {operation}")

    try:
        yield
    except Exception as e:
        elapsed = perf_counter() - start_time
        logger.debug(f"Failed: {operation} after {elapsed:.3f}s - {e}")
        raise
    else:
        elapsed = perf_counter() - start_time
        logger.log(level, f"Completed: {operation} in {elapsed:.3f}s")
