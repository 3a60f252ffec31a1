"""Command-line interface for taskgraph."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from taskgraph import __version__
from taskgraph.cli_commands.list_tasks import list_tasks
from taskgraph.cli_commands.run_tasks import run_tasks
from taskgraph.cli_commands.show_tree import show_tree
from taskgraph.config import ConfigError, RunConfig, load_run_config
from taskgraph.console_logger import ConsoleLogger
from taskgraph.logging import Logger, LogLevel, parse_log_level
from taskgraph.model import TaskGraph
from taskgraph.parser import TASK_FILE_NAMES, find_task_file, parse_task_file

app = typer.Typer(
    help="taskgraph - dependency-aware task runner with incremental execution",
    add_completion=False,
    no_args_is_help=False,
)


def _get_graph(logger: Logger, tasks_file: Optional[str]) -> TaskGraph:
    """Locate and parse the task file, exiting with an error if that fails."""
    task_file = Path(tasks_file) if tasks_file else find_task_file()
    if task_file is None:
        logger.error(f"[red]No task file found ({', '.join(TASK_FILE_NAMES)})[/red]")
        raise typer.Exit(1)

    try:
        return parse_task_file(task_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"[red]Error parsing task file: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _build_run_config(
    logger: Logger,
    project_root: Path,
    parallel: bool,
    jobs: Optional[int],
    force: bool,
    dry_run: bool,
    only: bool,
    verbose: bool,
    shell: bool,
    task_output: Optional[str],
) -> RunConfig:
    """Layer command-line flags over the settings from config files."""
    try:
        config = load_run_config(project_root)
        overrides: dict = {
            "parallel": parallel or config.parallel,
            "force": force,
            "dry_run": dry_run,
            "skip_deps": only,
            "verbose": verbose or config.verbose,
            "use_shell": shell or config.use_shell,
        }
        if jobs is not None:
            overrides["max_concurrency"] = jobs
        if task_output is not None:
            overrides["task_output"] = task_output
        return replace(config, **overrides)
    except ConfigError as e:
        logger.error(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def main(
    task_names: Optional[List[str]] = typer.Argument(None, help="Tasks to run"),
    parallel: bool = typer.Option(False, "--parallel", "-p", help="Run independent tasks concurrently"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Maximum number of tasks running at once"),
    force: bool = typer.Option(False, "--force", "-f", help="Run tasks even if they are up to date"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show commands without running them"),
    only: bool = typer.Option(False, "--only", "-o", help="Run only the named tasks, not their dependencies"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
    shell: bool = typer.Option(False, "--shell", help="Run commands through the platform shell"),
    task_output: Optional[str] = typer.Option(
        None, "--task-output", help="Which task output to show: all, out, err, none"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="fatal, error, warn, info, debug or trace"
    ),
    list_opt: bool = typer.Option(False, "--list", "-l", help="List all available tasks"),
    tree: Optional[str] = typer.Option(None, "--tree", help="Show the dependency tree of a task"),
    tasks_file: Optional[str] = typer.Option(None, "--tasks", "-T", help="Path to the task file"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
):
    """Run tasks and their dependencies."""
    level = LogLevel.INFO
    if log_level is not None:
        try:
            level = parse_log_level(log_level)
        except ValueError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(1)
    elif verbose:
        level = LogLevel.DEBUG

    logger = ConsoleLogger(Console(), level, err_console=Console(stderr=True))

    if version:
        logger.info(f"taskgraph version {__version__}")
        return

    graph = _get_graph(logger, tasks_file)

    if list_opt:
        list_tasks(logger, graph)
        return

    if tree is not None:
        show_tree(logger, graph, tree)
        return

    if not task_names:
        logger.info("[bold]Available tasks:[/bold]")
        for name in sorted(graph.task_names()):
            logger.info(f"  - {name}")
        logger.info("\nUse [cyan]tg <task-name>[/cyan] to run a task")
        return

    config = _build_run_config(
        logger, graph.project_root, parallel, jobs, force, dry_run, only, verbose, shell, task_output
    )
    if config.verbose and log_level is None:
        logger.push_level(LogLevel.DEBUG)

    run_tasks(logger, graph, task_names, config)


if __name__ == "__main__":
    app()
