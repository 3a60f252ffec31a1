"""taskgraph - A dependency-aware task runner with incremental execution."""

__version__ = "0.1.0"

from taskgraph.config import ConfigError, RunConfig, load_run_config
from taskgraph.executor import (
    CommandFailedError,
    ExecutionError,
    Executor,
    FailedTask,
    RunResult,
    RunState,
    RunStatus,
    TaskCancelledError,
    TaskRecord,
    TaskState,
)
from taskgraph.graph import (
    CycleError,
    TaskNotFoundError,
    build_dependency_tree,
    resolve_execution_order,
)
from taskgraph.model import ExecutionPlan, Task, TaskGraph
from taskgraph.parser import find_task_file, parse_task_file
from taskgraph.staleness import TaskStatus, check_task_status, should_run

__all__ = [
    "__version__",
    "ConfigError",
    "RunConfig",
    "load_run_config",
    "CommandFailedError",
    "ExecutionError",
    "Executor",
    "FailedTask",
    "RunResult",
    "RunState",
    "RunStatus",
    "TaskCancelledError",
    "TaskRecord",
    "TaskState",
    "CycleError",
    "TaskNotFoundError",
    "build_dependency_tree",
    "resolve_execution_order",
    "ExecutionPlan",
    "Task",
    "TaskGraph",
    "find_task_file",
    "parse_task_file",
    "TaskStatus",
    "check_task_status",
    "should_run",
]
