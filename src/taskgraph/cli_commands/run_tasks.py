"""Run command implementation."""

from __future__ import annotations

import signal
import threading

import typer
from rich.markup import escape
from rich.table import Table

from taskgraph.cli_commands import get_action_failure_string, get_action_success_string
from taskgraph.config import RunConfig
from taskgraph.executor import Executor, RunResult, RunStatus, TaskState
from taskgraph.logging import Logger
from taskgraph.model import TaskGraph

# Exit code used when the run is interrupted with Ctrl-C
INTERRUPTED_EXIT_CODE = 130

_STATE_STYLES = {
    TaskState.COMPLETED: "green",
    TaskState.COMPLETED_WITH_WARNINGS: "yellow",
    TaskState.SKIPPED: "dim",
    TaskState.FAILED: "red",
    TaskState.CANCELLED: "magenta",
    TaskState.PENDING: "dim",
}


def run_tasks(
    logger: Logger,
    graph: TaskGraph,
    task_names: list[str],
    config: RunConfig,
) -> RunResult:
    """
    Execute the requested tasks and report the outcome.

    SIGINT sets the run's cancellation event so in-flight commands are
    terminated and no new tasks start.

    Args:
    logger: Logger interface for output
    graph: Task graph to run tasks from
    task_names: Names of the tasks requested on the command line
    config: Run options

    Raises:
    typer.Exit: With code 1 on failure, or 130 if the run was interrupted
    """
    executor = Executor(graph, logger)

    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(
            signal.SIGINT, lambda signum, frame: config.cancel_event.set()
        )
    try:
        result = executor.run(task_names, config)
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    if result.records:
        logger.info(_build_summary_table(result))

    label = ", ".join(task_names)
    match result.status:
        case RunStatus.SUCCESS:
            logger.info(f"[green]{get_action_success_string()} '{label}' completed successfully[/green]")
        case RunStatus.PARTIAL_FAILURE:
            warned = [r.name for r in result.records if r.state is TaskState.COMPLETED_WITH_WARNINGS]
            logger.warn(
                f"[yellow]{get_action_success_string()} '{label}' completed with ignored failures in: {', '.join(warned)}[/yellow]"
            )
        case RunStatus.FAILURE:
            logger.error(f"[red]{get_action_failure_string()} '{label}' failed: {escape(str(result.error))}[/red]")
            raise typer.Exit(INTERRUPTED_EXIT_CODE if result.cancelled else 1)

    return result


def _build_summary_table(result: RunResult) -> Table:
    """
    Build a table of each planned task's final state and elapsed time.
    """
    table = Table(title="Run summary", show_edge=False, box=None, padding=(0, 2))
    table.add_column("Task", style="bold cyan", no_wrap=True)
    table.add_column("State")
    table.add_column("Time", justify="right")

    for record in result.records:
        style = _STATE_STYLES.get(record.state, "white")
        duration = f"{record.duration:.2f}s" if record.state.is_final and record.state is not TaskState.CANCELLED else "-"
        table.add_row(record.name, f"[{style}]{record.state.value}[/{style}]", duration)

    return table
