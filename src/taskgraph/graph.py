"""Dependency resolution using depth-first traversal."""

from __future__ import annotations

from typing import Iterable

from taskgraph.model import ExecutionPlan, TaskGraph


class TaskNotFoundError(Exception):
    """Raised when a requested task or a task dependency doesn't exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Task not found: {name}")


class CycleError(Exception):
    """Raised when a dependency cycle is detected.

    Attributes:
        path: Task names from the re-entered task back round to itself,
            e.g. ["a", "b", "a"]
    """

    def __init__(self, path: list[str]):
        self.path = list(path)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.path)}")


def resolve_execution_order(
    graph: TaskGraph,
    root_names: Iterable[str] | str,
    skip_deps: bool = False,
) -> ExecutionPlan:
    """Resolve execution order for a set of root tasks and their dependencies.

    Dependencies are visited in declaration order and each task is appended
    after its dependencies, so the same graph and roots always produce the
    same plan. A task shared by several roots appears once, at the position
    the first root to need it puts it.

    Args:
        graph: Task graph containing all tasks
        root_names: Names of the tasks requested by the caller
        skip_deps: If True, plan only the roots themselves, in caller order

    Returns:
        ExecutionPlan with dependencies before their dependents

    Raises:
        TaskNotFoundError: If a root or any dependency doesn't exist
        CycleError: If a dependency cycle is detected
    """
    if isinstance(root_names, str):
        root_names = [root_names]
    roots = tuple(root_names)

    order: list[str] = []
    visited: set[str] = set()

    if skip_deps:
        for name in roots:
            if name not in graph:
                raise TaskNotFoundError(name)
            if name not in visited:
                visited.add(name)
                order.append(name)
        return ExecutionPlan(task_names=tuple(order), roots=roots)

    # Current DFS path, in order, for cycle reporting
    path: list[str] = []
    visiting: set[str] = set()

    def visit(task_name: str) -> None:
        if task_name in visited:
            return

        if task_name in visiting:
            start = path.index(task_name)
            raise CycleError(path[start:] + [task_name])

        task = graph.get_task(task_name)
        if task is None:
            raise TaskNotFoundError(task_name)

        visiting.add(task_name)
        path.append(task_name)

        for dep in task.deps:
            visit(dep)

        path.pop()
        visiting.discard(task_name)

        visited.add(task_name)
        order.append(task_name)

    for root in roots:
        visit(root)

    return ExecutionPlan(task_names=tuple(order), roots=roots)


def build_dependency_tree(graph: TaskGraph, target_task: str) -> dict:
    """Build a tree structure representing dependencies for visualization.

    Args:
        graph: Task graph containing all tasks
        target_task: Name of the task to build tree for

    Returns:
        Nested dictionary representing the dependency tree. A task that
        re-enters its own ancestry is marked with "cycle": True and not expanded.

    Raises:
        TaskNotFoundError: If the task or any dependency doesn't exist
    """
    if target_task not in graph:
        raise TaskNotFoundError(target_task)

    ancestors: set[str] = set()

    def build_tree(task_name: str) -> dict:
        task = graph.get_task(task_name)
        if task is None:
            raise TaskNotFoundError(task_name)

        # Prevent infinite recursion on cycles
        if task_name in ancestors:
            return {"name": task_name, "deps": [], "cycle": True}

        ancestors.add(task_name)
        tree = {
            "name": task_name,
            "deps": [build_tree(dep) for dep in dict.fromkeys(task.deps)],
        }
        ancestors.remove(task_name)

        return tree

    return build_tree(target_task)
