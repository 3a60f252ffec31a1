"""Task graph data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping


def _as_tuple(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class Task:
    """Represents a task definition.

    Tasks are immutable once constructed; sequence fields are normalised to
    tuples so a single string may be given where a list is expected.
    """

    name: str
    commands: tuple[str, ...] = ()
    desc: str = ""
    deps: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    working_dir: str = ""
    sources: tuple[str, ...] = ()
    generates: tuple[str, ...] = ()
    ignore_errors: bool = False
    parallel: bool = False
    source_file: str = ""  # Track which file defined this task

    def __post_init__(self):
        if not self.name:
            raise ValueError("Task name must not be empty")
        object.__setattr__(self, "commands", _as_tuple(self.commands))
        object.__setattr__(self, "deps", _as_tuple(self.deps))
        object.__setattr__(self, "sources", _as_tuple(self.sources))
        object.__setattr__(self, "generates", _as_tuple(self.generates))
        object.__setattr__(
            self, "env", MappingProxyType({str(k): str(v) for k, v in dict(self.env).items()})
        )

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass
class TaskGraph:
    """Mapping of task name to Task, plus the directory tasks are relative to.

    Dependency names are not checked here; they are resolved lazily by
    resolve_execution_order() so tasks may be registered in any order.
    """

    tasks: dict[str, Task]
    project_root: Path = field(default_factory=Path.cwd)

    def get_task(self, name: str) -> Task | None:
        """Get task by name.

        Args:
            name: Task name

        Returns:
            Task if found, None otherwise
        """
        return self.tasks.get(name)

    def task_names(self) -> list[str]:
        """Get all task names."""
        return list(self.tasks.keys())

    def task_dir(self, task: Task) -> Path:
        """Directory a task's commands run in and its patterns are relative to."""
        return Path(self.project_root) / task.working_dir

    def __contains__(self, name: object) -> bool:
        return name in self.tasks

    def __getitem__(self, name: str) -> Task:
        return self.tasks[name]


@dataclass(frozen=True)
class ExecutionPlan:
    """Linear, dependency-respecting order in which tasks are considered."""

    task_names: tuple[str, ...]
    roots: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.task_names)

    def __len__(self) -> int:
        return len(self.task_names)

    def __contains__(self, name: object) -> bool:
        return name in self.task_names

    def index(self, name: str) -> int:
        return self.task_names.index(name)
