"""Parse task definition YAML files into a TaskGraph."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from taskgraph.model import Task, TaskGraph

TASK_FILE_NAMES = ("taskgraph.yaml", "taskgraph.yml", "tg.yaml")

_TASK_KEYS = {
    "desc",
    "deps",
    "cmd",
    "env",
    "working_dir",
    "sources",
    "generates",
    "ignore_errors",
    "parallel",
}


def find_task_file(start_dir: Path | None = None) -> Path | None:
    """Find a task file in the current or parent directories.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to the task file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    # Search up the directory tree
    while True:
        for filename in TASK_FILE_NAMES:
            task_file = current / filename
            if task_file.exists():
                return task_file

        parent = current.parent
        if parent == current:
            # Reached root
            break
        current = parent

    return None


def parse_task_file(task_file: Path) -> TaskGraph:
    """Parse a task file.

    Tasks can be defined either at the root of the document or under a
    "tasks:" key.

    Args:
        task_file: Path to the task file

    Returns:
        TaskGraph rooted at the task file's directory

    Raises:
        FileNotFoundError: If the task file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the task structure is invalid
    """
    if not task_file.exists():
        raise FileNotFoundError(f"Task file not found: {task_file}")

    with open(task_file, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Task file '{task_file}' must contain a dictionary of tasks")

    tasks_data = data["tasks"] if "tasks" in data else data
    if tasks_data is None:
        tasks_data = {}
    if not isinstance(tasks_data, dict):
        raise ValueError("'tasks' must be a dictionary")

    tasks: dict[str, Task] = {}
    for task_name, task_data in tasks_data.items():
        tasks[str(task_name)] = _parse_task(str(task_name), task_data, task_file)

    return TaskGraph(tasks=tasks, project_root=task_file.parent)


def _parse_task(name: str, task_data: Any, source_file: Path) -> Task:
    if not isinstance(task_data, dict):
        raise ValueError(f"Task '{name}' must be a dictionary")

    unknown = sorted(set(task_data) - _TASK_KEYS)
    if unknown:
        raise ValueError(f"Task '{name}' has unknown field(s): {', '.join(unknown)}")

    if "cmd" not in task_data:
        raise ValueError(f"Task '{name}' missing required 'cmd' field")

    env = task_data.get("env", {}) or {}
    if not isinstance(env, dict):
        raise ValueError(f"Task '{name}': 'env' must be a dictionary")

    for flag in ("ignore_errors", "parallel"):
        if not isinstance(task_data.get(flag, False), bool):
            raise ValueError(f"Task '{name}': '{flag}' must be true or false")

    return Task(
        name=name,
        commands=_parse_commands(name, task_data["cmd"]),
        desc=str(task_data.get("desc", "") or ""),
        deps=_string_list(name, "deps", task_data.get("deps")),
        env={str(k): _env_value(name, k, v) for k, v in env.items()},
        working_dir=str(task_data.get("working_dir", "") or ""),
        sources=_string_list(name, "sources", task_data.get("sources")),
        generates=_string_list(name, "generates", task_data.get("generates")),
        ignore_errors=task_data.get("ignore_errors", False),
        parallel=task_data.get("parallel", False),
        source_file=str(source_file),
    )


def _parse_commands(name: str, cmd: Any) -> list[str]:
    """Normalise a cmd field: a list of commands, or a string with one command per line."""
    if isinstance(cmd, str):
        return [line.strip() for line in cmd.splitlines() if line.strip()]
    if isinstance(cmd, list) and all(isinstance(c, str) for c in cmd):
        return [c for c in cmd if c.strip()]
    raise ValueError(f"Task '{name}': 'cmd' must be a string or a list of strings")


def _string_list(name: str, field_name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise ValueError(f"Task '{name}': '{field_name}' must be a string or a list of strings")


def _env_value(name: str, key: Any, value: Any) -> str:
    """Render a scalar env value the way a shell would expect to read it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError(f"Task '{name}': env value for '{key}' must be a scalar")
    return str(value)
