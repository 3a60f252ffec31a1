from __future__ import annotations

from rich.table import Table

from taskgraph.logging import Logger
from taskgraph.model import TaskGraph


def list_tasks(logger: Logger, graph: TaskGraph) -> None:
    """
    List all available tasks with their dependencies and descriptions.
    """
    names = sorted(graph.task_names())
    max_task_name_len = max((len(name) for name in names), default=0)

    # Borderless table: name, dependencies, description
    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Task", style="bold cyan", no_wrap=True, width=max_task_name_len)
    table.add_column("Deps", style="dim", max_width=40)
    table.add_column("Description", style="white", max_width=80)

    for name in names:
        task = graph[name]
        deps = f"\\[{', '.join(task.deps)}]" if task.deps else ""
        table.add_row(name, deps, task.desc)

    logger.info(table)
