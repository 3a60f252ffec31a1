import threading

from rich.console import Console

from taskgraph.logging import Logger, LogLevel


class ConsoleLogger(Logger):
    """Console-based logger implementation using Rich for formatting.

    Filters log messages based on the current log level. Messages with severity
    lower than the current level are suppressed. Supports a stack-based level
    management system for temporary verbosity changes.

    Parallel runs log from several worker threads, so the level stack is
    guarded by a lock. ERROR and FATAL messages go to ``err_console`` when one
    is given, keeping task failures on stderr.
    """

    def __init__(
        self,
        console: Console,
        level: LogLevel = LogLevel.INFO,
        err_console: Console | None = None,
    ) -> None:
        """Initialize the console logger.

        Args:
            console: Rich Console for regular output
            level: Initial log level (default: INFO)
            err_console: Rich Console for errors (default: ``console``)
        """
        self._console = console
        self._err_console = err_console or console
        self._levels = [level]
        self._lock = threading.Lock()

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        """Log a message to the console if it meets the current level threshold.

        Args:
            level: The severity level of this message (default: INFO)
            *args: Positional arguments passed to Rich Console.print()
            **kwargs: Keyword arguments passed to Rich Console.print()
        """
        with self._lock:
            current = self._levels[-1]
        if current.value < level.value:
            return
        console = self._err_console if level.value <= LogLevel.ERROR.value else self._console
        console.print(*args, **kwargs)

    def push_level(self, level: LogLevel) -> None:
        with self._lock:
            self._levels.append(level)

    def pop_level(self) -> LogLevel:
        """Pop the current log level and return to the previous level.

        Raises:
            RuntimeError: If attempting to pop the base (initial) log level
        """
        with self._lock:
            if len(self._levels) <= 1:
                raise RuntimeError("Cannot pop the base log level")
            return self._levels.pop()
