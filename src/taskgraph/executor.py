"""Task execution: sequential and bounded-parallel scheduling of a plan."""

from __future__ import annotations

import enum
import os
import platform
import shlex
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable

from rich.markup import escape

from taskgraph.config import RunConfig
from taskgraph.graph import CycleError, TaskNotFoundError, resolve_execution_order
from taskgraph.logging import Logger
from taskgraph.model import ExecutionPlan, Task, TaskGraph
from taskgraph.process_runner import ProcessRunner, TaskOutputTypes, make_process_runner
from taskgraph.staleness import check_task_status

# Exit codes reported when a command cannot be launched, as a POSIX shell reports them
COMMAND_NOT_EXECUTABLE_EXIT_CODE = 126
COMMAND_NOT_FOUND_EXIT_CODE = 127

# How long the parallel dispatcher waits before re-checking for cancellation
DISPATCH_POLL_SECS = 0.1

ProcessRunnerFactory = Callable[[TaskOutputTypes, Logger], ProcessRunner]


class ExecutionError(Exception):
    """Base class for errors raised while executing tasks."""

    pass


class CommandFailedError(ExecutionError):
    """Raised when a task command exits with a non-zero status."""

    def __init__(self, task_name: str, command: str, exit_code: int):
        self.task_name = task_name
        self.command = command
        self.exit_code = exit_code
        super().__init__(
            f"Task '{task_name}' failed: command '{command}' exited with code {exit_code}"
        )


class TaskCancelledError(ExecutionError):
    """Raised when a run is cancelled before or during a task."""

    def __init__(self, task_name: str | None = None):
        self.task_name = task_name
        if task_name:
            super().__init__(f"Task '{task_name}' was cancelled")
        else:
            super().__init__("Run was cancelled")


class TaskState(enum.Enum):
    """Lifecycle state of a task within one run."""

    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def satisfies_dependents(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.COMPLETED_WITH_WARNINGS, TaskState.SKIPPED)

    @property
    def is_final(self) -> bool:
        return self not in (TaskState.PENDING, TaskState.RUNNING)


class RunStatus(enum.Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


@dataclass
class TaskRecord:
    """Per-run record for one task in the plan."""

    task_id: int
    task: Task
    dep_ids: tuple[int, ...]
    state: TaskState = TaskState.PENDING
    reason: str = ""
    error: ExecutionError | None = None
    warnings: list[CommandFailedError] = field(default_factory=list)
    duration: float = 0.0

    @property
    def name(self) -> str:
        return self.task.name


@dataclass
class FailedTask:
    name: str
    error: Exception


@dataclass
class RunResult:
    """Outcome of a run, reported back to the caller."""

    status: RunStatus
    completed_tasks: list[str] = field(default_factory=list)
    skipped_tasks: list[str] = field(default_factory=list)
    failed_task: FailedTask | None = None
    cancelled: bool = False
    error: Exception | None = None
    records: list[TaskRecord] = field(default_factory=list)
    plan: ExecutionPlan | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is not RunStatus.FAILURE


class RunState:
    """Indexed arena of TaskRecords for a single run.

    Task names are mapped to integer ids once, when the run starts. All state
    transitions happen under one lock, since worker threads and the dispatcher
    both touch the records.
    """

    def __init__(self, graph: TaskGraph, plan: ExecutionPlan):
        self._lock = threading.Lock()
        self._ids: dict[str, int] = {name: i for i, name in enumerate(plan)}
        self._completion_order: list[int] = []
        self.records: list[TaskRecord] = []

        for task_id, name in enumerate(plan):
            task = graph[name]
            # Dependencies outside the plan (skip_deps) never gate dispatch
            dep_ids = tuple(
                dict.fromkeys(self._ids[dep] for dep in task.deps if dep in self._ids)
            )
            self.records.append(TaskRecord(task_id=task_id, task=task, dep_ids=dep_ids))

    def id_of(self, name: str) -> int:
        return self._ids[name]

    def record(self, name: str) -> TaskRecord:
        return self.records[self._ids[name]]

    @property
    def completed(self) -> set[str]:
        """Names of tasks that finished in a state that unblocks dependents."""
        with self._lock:
            return {r.name for r in self.records if r.state.satisfies_dependents}

    @property
    def running(self) -> set[str]:
        with self._lock:
            return {r.name for r in self.records if r.state is TaskState.RUNNING}

    def completion_order(self) -> list[str]:
        with self._lock:
            return [self.records[i].name for i in self._completion_order]

    def _deps_satisfied(self, record: TaskRecord) -> bool:
        return all(self.records[d].state.satisfies_dependents for d in record.dep_ids)

    def is_ready(self, task_id: int) -> bool:
        with self._lock:
            record = self.records[task_id]
            return record.state is TaskState.PENDING and self._deps_satisfied(record)

    def ready_ids(self) -> list[int]:
        """Pending tasks whose dependencies are all satisfied, in plan order."""
        with self._lock:
            return [
                r.task_id
                for r in self.records
                if r.state is TaskState.PENDING and self._deps_satisfied(r)
            ]

    def try_start(self, task_id: int) -> bool:
        """Move a ready task to RUNNING.

        Returns:
            False if the task is not pending, its dependencies are unmet, or
            another task has already failed. This prevents the same task being
            dispatched twice and stops new work once the run has failed.
        """
        with self._lock:
            record = self.records[task_id]
            if record.state is not TaskState.PENDING or not self._deps_satisfied(record):
                return False
            if any(r.state is TaskState.FAILED for r in self.records):
                return False
            record.state = TaskState.RUNNING
            return True

    def finish(
        self,
        task_id: int,
        state: TaskState,
        reason: str = "",
        error: ExecutionError | None = None,
        duration: float = 0.0,
    ) -> None:
        with self._lock:
            record = self.records[task_id]
            record.state = state
            record.reason = reason or record.reason
            record.error = error
            record.duration = duration
            if state.satisfies_dependents:
                self._completion_order.append(task_id)

    def add_warning(self, task_id: int, warning: CommandFailedError) -> None:
        with self._lock:
            self.records[task_id].warnings.append(warning)

    def cancel_pending(self) -> list[str]:
        """Mark every task that has not started as CANCELLED."""
        with self._lock:
            cancelled = []
            for record in self.records:
                if record.state is TaskState.PENDING:
                    record.state = TaskState.CANCELLED
                    cancelled.append(record.name)
            return cancelled

    def has_failures(self) -> bool:
        with self._lock:
            return any(r.state is TaskState.FAILED for r in self.records)

    def in_state(self, *states: TaskState) -> list[TaskRecord]:
        with self._lock:
            return [r for r in self.records if r.state in states]


def split_command(cmd: str) -> list[str]:
    """Split a command string into an executable and its arguments."""
    return shlex.split(cmd, posix=os.name != "nt")


def _get_platform_shell() -> list[str]:
    """Get default shell invocation prefix for the current platform."""
    if platform.system() == "Windows":
        return ["cmd", "/c"]
    return ["bash", "-c"]


class Executor:
    """Executes tasks of a graph with incremental execution logic."""

    def __init__(
        self,
        graph: TaskGraph,
        logger: Logger,
        process_runner_factory: ProcessRunnerFactory = make_process_runner,
    ):
        """Initialize executor.

        Args:
            graph: Task graph containing all tasks
            logger: Logger for progress and diagnostic output
            process_runner_factory: Builds the ProcessRunner used for commands
        """
        self.graph = graph
        self.logger = logger
        self._process_runner_factory = process_runner_factory

    def run(self, root_names: Iterable[str] | str, config: RunConfig | None = None) -> RunResult:
        """Resolve the requested tasks and execute the resulting plan.

        Resolution errors are reported before any command runs.

        Args:
            root_names: Names of the tasks requested by the caller
            config: Run options (defaults to RunConfig())

        Returns:
            RunResult describing the outcome
        """
        config = config or RunConfig()
        try:
            plan = resolve_execution_order(self.graph, root_names, skip_deps=config.skip_deps)
        except TaskNotFoundError as e:
            self.logger.fatal(f"[red]{e}[/red]")
            return RunResult(
                status=RunStatus.FAILURE, failed_task=FailedTask(e.name, e), error=e
            )
        except CycleError as e:
            self.logger.fatal(f"[red]{e}[/red]")
            return RunResult(
                status=RunStatus.FAILURE, failed_task=FailedTask(e.path[0], e), error=e
            )

        self.logger.debug(f"Execution plan: {', '.join(plan)}")
        return self.execute(plan, config)

    def execute(self, plan: ExecutionPlan, config: RunConfig | None = None) -> RunResult:
        """Execute an already-resolved plan.

        Args:
            plan: Execution plan, dependencies before dependents
            config: Run options (defaults to RunConfig())

        Returns:
            RunResult describing the outcome
        """
        config = config or RunConfig()
        state = RunState(self.graph, plan)
        runner = self._process_runner_factory(config.task_output, self.logger)

        if config.parallel:
            self.logger.debug(f"Running {len(plan)} task(s) with up to {config.max_concurrency} in parallel")
            self._execute_parallel(state, config, runner)
        else:
            self._execute_sequential(state, config, runner)

        return self._build_result(state, plan)

    def _execute_sequential(self, state: RunState, config: RunConfig, runner: ProcessRunner) -> None:
        for record in state.records:
            if config.cancelled:
                state.cancel_pending()
                return

            if not state.try_start(record.task_id):
                self.logger.trace(f"Not dispatching '{record.name}' (state: {record.state.value})")
                continue

            self._run_task(state, record, config, runner)

            if record.state is TaskState.FAILED:
                return
            if record.state is TaskState.CANCELLED:
                state.cancel_pending()
                return

    def _execute_parallel(self, state: RunState, config: RunConfig, runner: ProcessRunner) -> None:
        in_flight: dict[Future, TaskRecord] = {}

        with ThreadPoolExecutor(
            max_workers=config.max_concurrency, thread_name_prefix="taskgraph-worker"
        ) as pool:
            while True:
                if config.cancelled:
                    state.cancel_pending()
                elif not state.has_failures():
                    # A worker may have recorded a failure before its future resolved
                    for task_id in state.ready_ids():
                        if len(in_flight) >= config.max_concurrency:
                            break
                        if not state.try_start(task_id):
                            continue
                        record = state.records[task_id]
                        self.logger.trace(f"Dispatching '{record.name}' ({len(in_flight) + 1} in flight)")
                        future = pool.submit(self._run_task, state, record, config, runner)
                        in_flight[future] = record

                if not in_flight:
                    break

                done, _ = wait(in_flight, timeout=DISPATCH_POLL_SECS, return_when=FIRST_COMPLETED)
                for future in done:
                    record = in_flight.pop(future)
                    # _run_task records its own failures; anything raised here is a bug
                    future.result()
                    if record.state is TaskState.FAILED:
                        self.logger.debug(
                            f"Task '{record.name}' failed, waiting for {len(in_flight)} in-flight task(s) to finish"
                        )

    def _run_task(self, state: RunState, record: TaskRecord, config: RunConfig, runner: ProcessRunner) -> None:
        """Run one task that has already been moved to RUNNING."""
        task = record.task
        task_dir = self.graph.task_dir(task)
        started = time.monotonic()

        def finish(task_state: TaskState, reason: str = "", error: ExecutionError | None = None) -> None:
            state.finish(record.task_id, task_state, reason, error, time.monotonic() - started)

        if config.force:
            reason = "forced"
        else:
            status = check_task_status(task, task_dir)
            reason = status.reason
            if not status.will_run:
                self.logger.info(f"[green]Skipping '{task.name}' (up to date)[/green]")
                finish(TaskState.SKIPPED, reason)
                return
            if status.changed_files:
                self.logger.debug(f"'{task.name}' is stale ({reason}): {', '.join(status.changed_files)}")

        self.logger.info(f"[bold]Running: {task.name}[/bold]")
        self.logger.trace(f"'{task.name}' reason={reason} parallel={task.parallel} cwd={task_dir}")

        env = self._task_environment(task)

        for command in task.commands:
            if config.cancelled:
                finish(TaskState.CANCELLED, reason, TaskCancelledError(task.name))
                return

            if config.dry_run:
                self.logger.info(f"  [dim](dry run)[/dim] {escape(command)}")
                continue

            self.logger.info(f"  [cyan]$ {escape(command)}[/cyan]")
            exit_code = self._run_command(task, command, env, config, runner)

            if exit_code == 0:
                continue

            if config.cancelled:
                finish(TaskState.CANCELLED, reason, TaskCancelledError(task.name))
                return

            error = CommandFailedError(task.name, command, exit_code)
            if task.ignore_errors:
                self.logger.warn(f"[yellow]Warning: {escape(str(error))} (ignored)[/yellow]")
                state.add_warning(record.task_id, error)
                continue

            self.logger.error(f"[red]{escape(str(error))}[/red]")
            finish(TaskState.FAILED, reason, error)
            return

        if record.warnings:
            finish(TaskState.COMPLETED_WITH_WARNINGS, reason)
        else:
            finish(TaskState.COMPLETED, reason)

    def _run_command(
        self, task: Task, command: str, env: dict[str, str], config: RunConfig, runner: ProcessRunner
    ) -> int:
        if config.use_shell:
            argv = _get_platform_shell() + [command]
        else:
            try:
                argv = split_command(command)
            except ValueError as e:
                self.logger.error(f"[red]Cannot parse command '{escape(command)}' in task '{task.name}': {escape(str(e))}[/red]")
                return COMMAND_NOT_FOUND_EXIT_CODE
            if not argv:
                return 0

        task_dir = self.graph.task_dir(task)
        try:
            return runner.run(argv, task_dir, env, config.cancel_event)
        except PermissionError as e:
            self.logger.error(f"[red]Cannot execute '{escape(argv[0])}' for task '{task.name}': {escape(str(e))}[/red]")
            return COMMAND_NOT_EXECUTABLE_EXIT_CODE
        except OSError as e:
            if not task_dir.is_dir():
                self.logger.error(
                    f"[red]Working directory '{escape(str(task_dir))}' of task '{task.name}' does not exist[/red]"
                )
            else:
                self.logger.error(f"[red]Cannot launch '{escape(argv[0])}' for task '{task.name}': {escape(str(e))}[/red]")
            return COMMAND_NOT_FOUND_EXIT_CODE
        except ValueError as e:
            # Popen rejects NUL bytes in arguments, cwd and environment
            self.logger.error(f"[red]Cannot launch '{escape(argv[0])}' for task '{task.name}': {escape(str(e))}[/red]")
            return COMMAND_NOT_FOUND_EXIT_CODE

    def _task_environment(self, task: Task) -> dict[str, str]:
        """Snapshot of the process environment with the task's variables merged on top."""
        env = dict(os.environ)
        env.update(task.env)
        return env

    def _build_result(self, state: RunState, plan: ExecutionPlan) -> RunResult:
        failed = state.in_state(TaskState.FAILED)
        cancelled = state.in_state(TaskState.CANCELLED)
        warned = state.in_state(TaskState.COMPLETED_WITH_WARNINGS)

        result = RunResult(
            status=RunStatus.SUCCESS,
            completed_tasks=[
                name for name in state.completion_order()
                if state.record(name).state is not TaskState.SKIPPED
            ],
            skipped_tasks=[r.name for r in state.in_state(TaskState.SKIPPED)],
            records=list(state.records),
            plan=plan,
        )

        if failed:
            first = failed[0]
            result.status = RunStatus.FAILURE
            result.failed_task = FailedTask(first.name, first.error)
            result.error = first.error
        elif cancelled:
            result.status = RunStatus.FAILURE
            result.error = cancelled[0].error or TaskCancelledError(cancelled[0].name)
        elif warned:
            result.status = RunStatus.PARTIAL_FAILURE

        result.cancelled = bool(cancelled)
        return result
