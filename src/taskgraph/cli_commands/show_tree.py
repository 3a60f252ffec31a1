from __future__ import annotations

import typer
from rich.tree import Tree

from taskgraph.graph import TaskNotFoundError, build_dependency_tree
from taskgraph.logging import Logger
from taskgraph.model import TaskGraph


def show_tree(logger: Logger, graph: TaskGraph, task_name: str) -> None:
    """
    Show dependency tree structure.
    """
    try:
        dep_tree = build_dependency_tree(graph, task_name)
    except TaskNotFoundError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    logger.info(_build_rich_tree(dep_tree))


def _build_rich_tree(dep_tree: dict) -> Tree:
    """
    Build a Rich Tree visualization from a dependency tree structure.

    Args:
        dep_tree: Nested dictionary representing task dependencies

    Returns:
        Rich Tree object for terminal display
    """
    task_name = dep_tree["name"]
    if dep_tree.get("cycle"):
        return Tree(f"[red]{task_name} (cycle)[/red]")

    tree = Tree(task_name)
    for dep in dep_tree.get("deps", []):
        tree.add(_build_rich_tree(dep))

    return tree
