"""Unit tests for the list, tree and run command output."""

import io
import unittest
from pathlib import Path
from unittest.mock import patch

import typer
from rich.console import Console

from helpers.process_runner import MockProcessRunner, make_mock_process_runner_factory
from taskgraph.cli_commands.list_tasks import list_tasks
from taskgraph.cli_commands.run_tasks import INTERRUPTED_EXIT_CODE, run_tasks
from taskgraph.cli_commands.show_tree import show_tree
from taskgraph.config import RunConfig
from taskgraph.console_logger import ConsoleLogger
from taskgraph.executor import Executor, RunStatus
from taskgraph.logging import LogLevel
from taskgraph.model import Task, TaskGraph


def make_graph(*tasks: Task) -> TaskGraph:
    return TaskGraph(tasks={t.name: t for t in tasks}, project_root=Path.cwd())


class OutputTestCase(unittest.TestCase):
    def setUp(self):
        self.console = Console(file=io.StringIO(), width=200, color_system=None)
        self.logger = ConsoleLogger(self.console, LogLevel.INFO)

    @property
    def output(self) -> str:
        return self.console.file.getvalue()


class TestListTasks(OutputTestCase):
    def test_lists_tasks_sorted_with_deps_and_description(self):
        graph = make_graph(
            Task(name="test", deps=["build"], commands=["pytest"], desc="Run the test suite"),
            Task(name="build", commands=["make"], desc="Compile everything"),
        )

        list_tasks(self.logger, graph)

        lines = [line.strip() for line in self.output.splitlines() if line.strip()]
        self.assertTrue(lines[0].startswith("build"))
        self.assertIn("Compile everything", lines[0])
        self.assertTrue(lines[1].startswith("test"))
        self.assertIn("[build]", lines[1])
        self.assertIn("Run the test suite", lines[1])

    def test_empty_graph(self):
        list_tasks(self.logger, make_graph())

        self.assertEqual(self.output.strip(), "")


class TestShowTree(OutputTestCase):
    def test_tree_shows_nested_dependencies(self):
        graph = make_graph(
            Task(name="clean", commands=["rm -rf build"]),
            Task(name="build", deps=["clean"], commands=["make"]),
            Task(name="deploy", deps=["build"], commands=["./deploy.sh"]),
        )

        show_tree(self.logger, graph, "deploy")

        lines = self.output.splitlines()
        self.assertEqual(lines[0].strip(), "deploy")
        self.assertIn("build", lines[1])
        self.assertIn("clean", lines[2])
        # Deeper dependencies are indented further
        self.assertGreater(lines[2].index("clean"), lines[1].index("build"))

    def test_tree_marks_cycles(self):
        graph = make_graph(
            Task(name="a", deps=["b"], commands=["true"]),
            Task(name="b", deps=["a"], commands=["true"]),
        )

        show_tree(self.logger, graph, "a")

        self.assertIn("a (cycle)", self.output)

    def test_unknown_task_exits(self):
        with self.assertRaises(typer.Exit) as cm:
            show_tree(self.logger, make_graph(), "missing")

        self.assertEqual(cm.exception.exit_code, 1)
        self.assertIn("Task not found: missing", self.output)


class TestRunTasks(OutputTestCase):
    def setUp(self):
        super().setUp()
        self.runner = MockProcessRunner()
        factory = make_mock_process_runner_factory(self.runner)
        patcher = patch(
            "taskgraph.cli_commands.run_tasks.Executor",
            side_effect=lambda graph, logger: Executor(graph, logger, factory),
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_success_prints_summary(self):
        graph = make_graph(
            Task(name="build", commands=["make"]),
            Task(name="test", deps=["build"], commands=["make test"]),
        )

        result = run_tasks(self.logger, graph, ["test"], RunConfig())

        self.assertEqual(result.status, RunStatus.SUCCESS)
        self.assertIn("Run summary", self.output)
        self.assertIn("completed successfully", self.output)
        summary = self.output[self.output.index("Run summary"):]
        self.assertLess(summary.index("build"), summary.index("test"))

    def test_partial_failure_names_warned_tasks(self):
        self.runner.exit_codes["lint ."] = 1
        graph = make_graph(
            Task(name="lint", commands=["lint ."], ignore_errors=True),
            Task(name="build", deps=["lint"], commands=["make"]),
        )

        result = run_tasks(self.logger, graph, ["build"], RunConfig())

        self.assertEqual(result.status, RunStatus.PARTIAL_FAILURE)
        self.assertIn("completed with ignored failures in: lint", self.output)
        self.assertIn("completed_with_warnings", self.output)

    def test_failure_exits_with_one(self):
        self.runner.exit_codes["make"] = 2
        graph = make_graph(Task(name="build", commands=["make"]))

        with self.assertRaises(typer.Exit) as cm:
            run_tasks(self.logger, graph, ["build"], RunConfig())

        self.assertEqual(cm.exception.exit_code, 1)
        self.assertIn("exited with code 2", self.output)
        self.assertIn("failed", self.output)

    def test_cancelled_run_exits_with_interrupt_code(self):
        config = RunConfig()
        config.cancel_event.set()
        graph = make_graph(Task(name="build", commands=["make"]))

        with self.assertRaises(typer.Exit) as cm:
            run_tasks(self.logger, graph, ["build"], config)

        self.assertEqual(cm.exception.exit_code, INTERRUPTED_EXIT_CODE)
        self.assertEqual(self.runner.calls, [])

    def test_resolution_error_has_no_summary(self):
        with self.assertRaises(typer.Exit):
            run_tasks(self.logger, make_graph(), ["missing"], RunConfig())

        self.assertNotIn("Run summary", self.output)
        self.assertIn("Task not found: missing", self.output)


if __name__ == "__main__":
    unittest.main()
