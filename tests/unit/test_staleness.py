"""Tests for staleness module."""

import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from taskgraph.model import Task
from taskgraph.staleness import (
    GlobExpansionError,
    check_task_status,
    expand_globs,
    should_run,
)


def touch(path: Path, mtime: float) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(path.name)
    os.utime(path, (mtime, mtime))
    return path


class TestShouldRun(unittest.TestCase):
    def setUp(self):
        self._tmpdir = TemporaryDirectory()
        self.root = Path(self._tmpdir.name)

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_no_patterns_always_runs(self):
        task = Task(name="test", commands=["pytest"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "no_sources")

    def test_sources_without_generates_always_runs(self):
        touch(self.root / "main.c", 1000)
        task = Task(name="lint", sources=["*.c"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "no_outputs")

    def test_generates_without_sources_always_runs(self):
        touch(self.root / "app", 1000)
        task = Task(name="build", generates=["app"])

        self.assertTrue(should_run(task, self.root))

    def test_sources_matching_nothing_runs(self):
        touch(self.root / "app", 1000)
        task = Task(name="build", sources=["src/*.c"], generates=["app"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "sources_missing")

    def test_missing_generated_file_runs(self):
        """Test a task whose declared output does not exist is stale."""
        touch(self.root / "src" / "main.c", 1000)
        task = Task(name="build", sources=["src/*.c"], generates=["app"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "outputs_missing")
        self.assertEqual(status.changed_files, ["app"])

    def test_one_of_several_generated_files_missing_runs(self):
        touch(self.root / "main.c", 1000)
        touch(self.root / "app", 2000)
        task = Task(name="build", sources=["main.c"], generates=["app", "app.map"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.changed_files, ["app.map"])

    def test_outputs_newer_than_sources_skips(self):
        """Test a task is up to date when every output is newer than every source."""
        touch(self.root / "src" / "a.c", 1000)
        touch(self.root / "src" / "b.c", 1500)
        touch(self.root / "build" / "a.o", 2000)
        touch(self.root / "build" / "b.o", 2500)
        task = Task(name="build", sources=["src/*.c"], generates=["build/*.o"])

        status = check_task_status(task, self.root)
        self.assertFalse(status.will_run)
        self.assertEqual(status.reason, "fresh")
        self.assertFalse(should_run(task, self.root))

    def test_output_older_than_newest_source_runs(self):
        touch(self.root / "src" / "a.c", 1000)
        touch(self.root / "src" / "b.c", 3000)
        touch(self.root / "build" / "a.o", 2000)
        touch(self.root / "build" / "b.o", 4000)
        task = Task(name="build", sources=["src/*.c"], generates=["build/*.o"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "outputs_stale")
        self.assertEqual(status.changed_files, [os.path.join("build", "a.o")])

    def test_equal_timestamps_are_fresh(self):
        touch(self.root / "in.txt", 1000)
        touch(self.root / "out.txt", 1000)
        task = Task(name="copy", sources=["in.txt"], generates=["out.txt"])

        self.assertFalse(should_run(task, self.root))

    def test_touching_a_source_makes_task_stale(self):
        source = touch(self.root / "in.txt", 1000)
        touch(self.root / "out.txt", 2000)
        task = Task(name="copy", sources=["in.txt"], generates=["out.txt"])
        self.assertFalse(should_run(task, self.root))

        os.utime(source, (3000, 3000))
        self.assertTrue(should_run(task, self.root))

    def test_directories_do_not_count_as_matches(self):
        touch(self.root / "in.txt", 1000)
        (self.root / "dist").mkdir()
        task = Task(name="pack", sources=["in.txt"], generates=["dist"])

        self.assertTrue(should_run(task, self.root))

    def test_recursive_patterns(self):
        touch(self.root / "src" / "pkg" / "deep" / "mod.py", 1000)
        touch(self.root / "dist" / "pkg.whl", 2000)
        task = Task(name="wheel", sources=["src/**/*.py"], generates=["dist/*.whl"])

        self.assertFalse(should_run(task, self.root))

    def test_invalid_pattern_runs(self):
        touch(self.root / "out.txt", 1000)
        task = Task(name="odd", sources=[str(self.root / "in.txt")], generates=["out.txt"])

        status = check_task_status(task, self.root)
        self.assertTrue(status.will_run)
        self.assertEqual(status.reason, "glob_error")


class TestExpandGlobs(unittest.TestCase):
    def test_files_in_pattern_order_without_duplicates(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            touch(root / "b.txt", 1000)
            touch(root / "a.txt", 1000)
            touch(root / "c.md", 1000)

            files = expand_globs(["*.md", "*.txt", "a.txt"], root)
            self.assertEqual([f.name for f in files], ["c.md", "a.txt", "b.txt"])

    def test_empty_pattern_raises(self):
        with TemporaryDirectory() as tmpdir:
            with self.assertRaises(GlobExpansionError):
                expand_globs([""], Path(tmpdir))


if __name__ == "__main__":
    unittest.main()
