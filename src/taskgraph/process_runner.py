"""Process execution abstraction layer.

This module provides an interface for running subprocesses, allowing for
better testability and dependency injection. Every runner blocks until its
subprocess exits, and terminates the subprocess early if the caller's
cancellation event is set.
"""

import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from subprocess import Popen
from threading import Thread
from typing import Any

__all__ = [
    "ProcessRunner",
    "PassthroughProcessRunner",
    "SilentProcessRunner",
    "StdoutOnlyProcessRunner",
    "StderrOnlyProcessRunner",
    "TaskOutputTypes",
    "make_process_runner",
    "stream_output",
]

from taskgraph.logging import Logger

POLL_INTERVAL_SECS = 0.05
TERMINATE_GRACE_SECS = 5.0
STREAM_JOIN_TIMEOUT_SECS = 1.0


class TaskOutputTypes(Enum):
    """Enum defining task output control modes."""

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


class ProcessRunner(ABC):
    """Abstract interface for running subprocess commands."""

    @abstractmethod
    def run(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Run a command and wait for it to exit.

        Args:
            cmd: Executable followed by its arguments
            cwd: Working directory for the subprocess
            env: Complete environment for the subprocess (None inherits ours)
            cancel_event: When set, the subprocess is asked to terminate

        Returns:
            The subprocess exit code

        Raises:
            OSError: If the executable cannot be launched
        """
        ...


def wait_for_exit(
    process: Popen, cancel_event: threading.Event | None, logger: Logger
) -> int:
    """Wait for a process, terminating it if cancellation is requested.

    Args:
        process: Running subprocess
        cancel_event: Cancellation signal, polled while waiting
        logger: Logger for diagnostic output

    Returns:
        The process exit code
    """
    while True:
        try:
            return process.wait(timeout=POLL_INTERVAL_SECS)
        except subprocess.TimeoutExpired:
            if cancel_event is None or not cancel_event.is_set():
                continue

        logger.debug(f"Cancellation requested, terminating process {process.pid}")
        process.terminate()
        try:
            return process.wait(timeout=TERMINATE_GRACE_SECS)
        except subprocess.TimeoutExpired:
            logger.warn(
                f"Process {process.pid} did not exit within {TERMINATE_GRACE_SECS} seconds, killing it"
            )
            process.kill()
            return process.wait()


class PassthroughProcessRunner(ProcessRunner):
    """Process runner that passes output straight through to our own streams."""

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        process = subprocess.Popen(cmd, cwd=cwd, env=env)
        return wait_for_exit(process, cancel_event, self._logger)


class SilentProcessRunner(ProcessRunner):
    """Process runner that suppresses all subprocess output by redirecting to DEVNULL."""

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return wait_for_exit(process, cancel_event, self._logger)


def stream_output(pipe: Any, target: Any) -> None:
    """Stream output from a pipe to a target stream.

    If the pipe is closed or an error occurs during reading/writing,
    the function returns without raising an exception.

    Args:
        pipe: Input pipe to read from
        target: Output stream to write to
    """
    if pipe:
        try:
            for line in pipe:
                target.write(line)
                target.flush()
        except (OSError, ValueError):
            # Pipe closed or other I/O error - this is expected when
            # process is killed or stdout is closed
            pass


def _run_streamed(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None,
    cancel_event: threading.Event | None,
    logger: Logger,
    stream_stdout: bool,
) -> int:
    """Run a command, streaming one of its pipes and discarding the other."""
    process = subprocess.Popen(
        cmd,
        cwd=cwd,
        env=env,
        stdout=subprocess.PIPE if stream_stdout else subprocess.DEVNULL,
        stderr=subprocess.DEVNULL if stream_stdout else subprocess.PIPE,
        text=True,
        bufsize=1,
    )
    pipe = process.stdout if stream_stdout else process.stderr
    target = sys.stdout if stream_stdout else sys.stderr

    thread = Thread(
        target=stream_output,
        args=(pipe, target),
        name="stdout-streamer" if stream_stdout else "stderr-streamer",
        daemon=True,
    )
    thread.start()

    try:
        return_code = wait_for_exit(process, cancel_event, logger)
    finally:
        thread.join(timeout=STREAM_JOIN_TIMEOUT_SECS)
        if thread.is_alive():
            logger.warn(
                f"Stream thread did not complete within timeout of {STREAM_JOIN_TIMEOUT_SECS} seconds"
            )
        if pipe:
            pipe.close()

    return return_code


class StdoutOnlyProcessRunner(ProcessRunner):
    """Process runner that streams stdout while suppressing stderr.

    Stdout is copied line by line on a helper thread; the interface remains
    synchronous from the caller's perspective.
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        return _run_streamed(cmd, cwd, env, cancel_event, self._logger, stream_stdout=True)


class StderrOnlyProcessRunner(ProcessRunner):
    """Process runner that streams stderr while suppressing stdout."""

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        return _run_streamed(cmd, cwd, env, cancel_event, self._logger, stream_stdout=False)


def make_process_runner(output_type: TaskOutputTypes, logger: Logger) -> ProcessRunner:
    """Factory function for creating ProcessRunner instances.

    Args:
        output_type: The type of output control to use
        logger: Logger handed to the runner for diagnostics

    Returns:
        ProcessRunner: A new ProcessRunner instance

    Raises:
        ValueError: If an invalid TaskOutputTypes value is provided
    """
    match output_type:
        case TaskOutputTypes.ALL:
            return PassthroughProcessRunner(logger)
        case TaskOutputTypes.NONE:
            return SilentProcessRunner(logger)
        case TaskOutputTypes.OUT:
            return StdoutOnlyProcessRunner(logger)
        case TaskOutputTypes.ERR:
            return StderrOnlyProcessRunner(logger)
        case _:
            raise ValueError(f"Invalid TaskOutputTypes: {output_type}")
