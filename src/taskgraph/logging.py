"""Logging infrastructure for taskgraph.

Provides the Logger interface used for dependency injection of diagnostic output.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod


class LogLevel(enum.Enum):
    """Log verbosity levels for taskgraph diagnostic messages.

    Lower numeric values represent higher severity / less verbosity.
    """
    FATAL = 0  # Only unrecoverable errors (cycles, missing tasks)
    ERROR = 1  # Fatal errors plus task execution failures
    WARN = 2   # Errors plus ignored command failures
    INFO = 3   # Warnings plus normal execution progress (default)
    DEBUG = 4  # Info plus dispatch decisions and resolved paths
    TRACE = 5  # Debug plus fine-grained scheduling tracing


class Logger(ABC):
    """Abstract logger with level filtering and a stack of active levels."""

    @abstractmethod
    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Log a message at the given level."""
        ...

    @abstractmethod
    def push_level(self, level: LogLevel) -> None:
        """Temporarily switch to a new log level."""
        ...

    @abstractmethod
    def pop_level(self) -> LogLevel:
        """Restore the previous log level."""
        ...

    def fatal(self, *args, **kwargs) -> None:
        self.log(LogLevel.FATAL, *args, **kwargs)

    def error(self, *args, **kwargs) -> None:
        self.log(LogLevel.ERROR, *args, **kwargs)

    def warn(self, *args, **kwargs) -> None:
        self.log(LogLevel.WARN, *args, **kwargs)

    def info(self, *args, **kwargs) -> None:
        self.log(LogLevel.INFO, *args, **kwargs)

    def debug(self, *args, **kwargs) -> None:
        self.log(LogLevel.DEBUG, *args, **kwargs)

    def trace(self, *args, **kwargs) -> None:
        self.log(LogLevel.TRACE, *args, **kwargs)


def parse_log_level(value: str) -> LogLevel:
    """Convert a case-insensitive level name into a LogLevel.

    Args:
        value: Level name such as "info" or "DEBUG" ("warning" is accepted for WARN)

    Returns:
        The matching LogLevel

    Raises:
        ValueError: If the name is not a known level
    """
    name = value.strip().upper()
    if name == "WARNING":
        name = "WARN"
    try:
        return LogLevel[name]
    except KeyError:
        valid = ", ".join(level.name.lower() for level in LogLevel)
        raise ValueError(f"Invalid log level '{value}'. Valid levels: {valid}") from None
