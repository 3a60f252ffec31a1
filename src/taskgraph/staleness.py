"""Incremental execution decisions based on file modification times.

The decision is deliberately coarse: a task is either wholly up to date or
wholly stale, judged only by comparing the newest source mtime against every
generated file's mtime. Content is never hashed, so touching a source file
makes its task stale even if the bytes are unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from taskgraph.model import Task


class GlobExpansionError(Exception):
    """Raised when a glob pattern cannot be expanded."""

    pass


@dataclass
class TaskStatus:
    """Result of the staleness check for one task."""

    task_name: str
    will_run: bool
    reason: str  # "no_sources", "no_outputs", "glob_error", "sources_missing",
    # "outputs_missing", "outputs_stale", "fresh"
    changed_files: list[str] = field(default_factory=list)


def expand_globs(patterns: tuple[str, ...] | list[str], base_path: Path) -> list[Path]:
    """Expand glob patterns to the regular files they match.

    Args:
        patterns: Glob patterns, relative to base_path
        base_path: Directory to resolve patterns from

    Returns:
        Matching files, in pattern order, without duplicates

    Raises:
        GlobExpansionError: If a pattern is invalid (absolute, empty, or
            otherwise rejected by pathlib)
    """
    files: dict[Path, None] = {}
    for pattern in patterns:
        files.update(dict.fromkeys(_expand_one(pattern, base_path)))
    return list(files)


def _expand_one(pattern: str, base_path: Path) -> list[Path]:
    try:
        return sorted(match for match in base_path.glob(pattern) if match.is_file())
    except (NotImplementedError, ValueError, OSError) as e:
        raise GlobExpansionError(f"Cannot expand pattern '{pattern}': {e}") from e


def check_task_status(task: Task, base_path: Path) -> TaskStatus:
    """Check if a task's commands need to run.

    A task is up to date only when it declares both sources and generated
    files, every generated pattern matches at least one file, and no generated
    file is older than the newest source file.

    Args:
        task: Task to check
        base_path: Directory the task's patterns are relative to

    Returns:
        TaskStatus indicating whether the task will run and why
    """
    if not task.sources:
        return TaskStatus(task_name=task.name, will_run=True, reason="no_sources")
    if not task.generates:
        return TaskStatus(task_name=task.name, will_run=True, reason="no_outputs")

    try:
        source_files = expand_globs(task.sources, base_path)
        if not source_files:
            return TaskStatus(task_name=task.name, will_run=True, reason="sources_missing")
        max_source_time = max(f.stat().st_mtime for f in source_files)

        missing = [p for p in task.generates if not _expand_one(p, base_path)]
        if missing:
            return TaskStatus(
                task_name=task.name,
                will_run=True,
                reason="outputs_missing",
                changed_files=missing,
            )

        stale = [
            str(f.relative_to(base_path))
            for f in expand_globs(task.generates, base_path)
            if f.stat().st_mtime < max_source_time
        ]
    except (GlobExpansionError, OSError):
        return TaskStatus(task_name=task.name, will_run=True, reason="glob_error")

    if stale:
        return TaskStatus(
            task_name=task.name,
            will_run=True,
            reason="outputs_stale",
            changed_files=stale,
        )

    return TaskStatus(task_name=task.name, will_run=False, reason="fresh")


def should_run(task: Task, base_path: Path) -> bool:
    """Decide whether a task's commands must run.

    Args:
        task: Task to check
        base_path: Directory the task's patterns are relative to

    Returns:
        False only if the task's generated files are all present and no older
        than its newest source file
    """
    return check_task_status(task, base_path).will_run
