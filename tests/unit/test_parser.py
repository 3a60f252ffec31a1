"""Tests for parser module."""

import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

import yaml

from taskgraph.parser import find_task_file, parse_task_file


class ParserTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = TemporaryDirectory()
        self.root = Path(self._tmpdir.name)
        self.task_file = self.root / "taskgraph.yaml"

    def tearDown(self):
        self._tmpdir.cleanup()

    def parse(self, content: str):
        self.task_file.write_text(content)
        return parse_task_file(self.task_file)


class TestParseTaskFile(ParserTestCase):
    def test_full_task(self):
        graph = self.parse("""
build:
  desc: Compile the application
  deps: [clean, generate]
  cmd:
    - make
    - make install
  env:
    CC: clang
    JOBS: 4
  working_dir: native
  sources: ["src/**/*.c"]
  generates: [bin/app]
  ignore_errors: true
  parallel: true
""")
        task = graph["build"]

        self.assertEqual(task.desc, "Compile the application")
        self.assertEqual(task.deps, ("clean", "generate"))
        self.assertEqual(task.commands, ("make", "make install"))
        self.assertEqual(task.env, {"CC": "clang", "JOBS": "4"})
        self.assertEqual(task.working_dir, "native")
        self.assertEqual(task.sources, ("src/**/*.c",))
        self.assertEqual(task.generates, ("bin/app",))
        self.assertTrue(task.ignore_errors)
        self.assertTrue(task.parallel)
        self.assertEqual(task.source_file, str(self.task_file))
        self.assertEqual(graph.project_root, self.root)

    def test_tasks_key(self):
        graph = self.parse("""
tasks:
  clean:
    cmd: rm -rf out
  build:
    deps: clean
    cmd: make
""")
        self.assertEqual(graph.task_names(), ["clean", "build"])
        self.assertEqual(graph["build"].deps, ("clean",))

    def test_multiline_cmd_is_one_command_per_line(self):
        graph = self.parse("""
build:
  cmd: |
    mkdir -p out

    make
""")
        self.assertEqual(graph["build"].commands, ("mkdir -p out", "make"))

    def test_dangling_dependency_is_accepted(self):
        graph = self.parse("""
build:
  deps: [missing]
  cmd: make
""")
        self.assertEqual(graph["build"].deps, ("missing",))

    def test_empty_file(self):
        self.assertEqual(self.parse("").task_names(), [])

    def test_missing_cmd(self):
        with self.assertRaises(ValueError) as cm:
            self.parse("build:\n  desc: nothing to do\n")
        self.assertIn("cmd", str(cm.exception))

    def test_unknown_field(self):
        with self.assertRaises(ValueError) as cm:
            self.parse("build:\n  cmd: make\n  outputs: [a]\n")
        self.assertIn("outputs", str(cm.exception))

    def test_task_must_be_mapping(self):
        with self.assertRaises(ValueError):
            self.parse("build: make\n")

    def test_env_must_be_mapping(self):
        with self.assertRaises(ValueError):
            self.parse("build:\n  cmd: make\n  env: [A]\n")

    def test_env_scalars_are_rendered_for_the_shell(self):
        graph = self.parse("""
build:
  cmd: make
  env:
    DEBUG: true
    STRIP: false
    EMPTY:
    LEVEL: 2
""")

        self.assertEqual(
            graph["build"].env, {"DEBUG": "true", "STRIP": "false", "EMPTY": "", "LEVEL": "2"}
        )

    def test_env_values_must_be_scalars(self):
        with self.assertRaises(ValueError):
            self.parse("build:\n  cmd: make\n  env:\n    PATHS: [a, b]\n")

    def test_flags_must_be_bool(self):
        with self.assertRaises(ValueError):
            self.parse("build:\n  cmd: make\n  ignore_errors: sometimes\n")

    def test_invalid_yaml(self):
        with self.assertRaises(yaml.YAMLError):
            self.parse("build: [\n")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_task_file(self.root / "nope.yaml")


class TestFindTaskFile(ParserTestCase):
    def test_found_in_parent_directory(self):
        self.task_file.write_text("")
        nested = self.root / "src" / "pkg"
        nested.mkdir(parents=True)

        self.assertEqual(find_task_file(nested), self.task_file.resolve())

    def test_short_name(self):
        short = self.root / "tg.yaml"
        short.write_text("")

        self.assertEqual(find_task_file(self.root), short.resolve())


if __name__ == "__main__":
    unittest.main()
