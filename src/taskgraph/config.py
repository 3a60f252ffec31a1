"""Run configuration and configuration file parsing.

Settings are layered: machine config, then user config, then the nearest
project config, with later files overriding earlier ones. Command-line flags
are applied on top by the CLI.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from taskgraph.process_runner import TaskOutputTypes

__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "PROJECT_CONFIG_FILE",
    "RunConfig",
    "ConfigError",
    "get_user_config_path",
    "get_machine_config_path",
    "find_project_config",
    "parse_config_file",
    "load_run_config",
]

DEFAULT_MAX_CONCURRENCY = 10
PROJECT_CONFIG_FILE = ".taskgraph-config.yml"


class ConfigError(Exception):
    """Raised when a configuration file or setting is invalid."""

    pass


@dataclass
class RunConfig:
    """Options controlling a single run of the engine."""

    parallel: bool = False
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    force: bool = False  # Bypass the staleness check and always run commands
    dry_run: bool = False  # Log commands instead of spawning them
    skip_deps: bool = False  # Plan only the requested tasks
    verbose: bool = False
    use_shell: bool = False  # Hand commands to the platform shell instead of splitting them
    task_output: TaskOutputTypes = TaskOutputTypes.ALL
    cancel_event: threading.Event = field(default_factory=threading.Event, compare=False)

    def __post_init__(self):
        if isinstance(self.task_output, str):
            try:
                self.task_output = TaskOutputTypes(self.task_output.lower())
            except ValueError:
                valid = ", ".join(t.value for t in TaskOutputTypes)
                raise ConfigError(
                    f"Invalid task_output '{self.task_output}'. Valid values: {valid}"
                ) from None
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ConfigError(f"max_concurrency must be an integer, got {self.max_concurrency!r}")
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be at least 1, got {self.max_concurrency}")

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


# Keys a config file may set, and the type each must have
_CONFIG_KEYS: dict[str, type] = {
    "parallel": bool,
    "max_concurrency": int,
    "use_shell": bool,
    "task_output": str,
    "verbose": bool,
}


def get_machine_config_path() -> Path:
    """Get the path to the machine-level (system-wide) configuration file.

    Returns:
        Path to the machine config file (may not exist)
    """
    config_dir = Path(platformdirs.site_config_dir("taskgraph"))
    return config_dir / "config.yml"


def get_user_config_path() -> Path:
    """Get the path to the user-level configuration file.

    Returns:
        Path to the user config file (may not exist)
    """
    config_dir: Path = Path(platformdirs.user_config_dir("taskgraph"))
    return config_dir / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """Walk up the directory tree from start_dir to find .taskgraph-config.yml.

    Args:
        start_dir: Directory to start searching from

    Returns:
        Path to .taskgraph-config.yml if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() can raise OSError on invalid paths or RuntimeError on symlink loops
        return None

    while True:
        try:
            config_path = current / PROJECT_CONFIG_FILE
            if config_path.exists():
                return config_path
        except OSError:
            # Skip directories we cannot inspect and keep walking up
            pass

        parent = current.parent
        if parent == current:
            return None
        current = parent


def parse_config_file(path: Path) -> dict[str, Any]:
    """Parse a taskgraph configuration file.

    Empty files and files that don't exist are valid and yield no settings.

    Args:
        path: Path to the configuration file

    Returns:
        Dictionary of recognised settings found in the file

    Raises:
        ConfigError: If the file is unreadable, malformed YAML, not a mapping,
            or contains unknown keys or wrongly typed values

    Example config file (.taskgraph-config.yml):
        ```yaml
        parallel: true
        max_concurrency: 4
        task_output: err
        ```
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a dictionary")

    settings: dict[str, Any] = {}
    for key, value in data.items():
        expected = _CONFIG_KEYS.get(key)
        if expected is None:
            valid = ", ".join(_CONFIG_KEYS)
            raise ConfigError(
                f"Error in config file '{path}': unknown setting '{key}' (valid settings: {valid})"
            )
        # bool is a subclass of int, so reject it explicitly for integer settings
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigError(
                f"Error in config file '{path}': Field '{key}' must be of type {expected.__name__}"
            )
        settings[key] = value

    return settings


def load_run_config(start_dir: Path, base: RunConfig | None = None) -> RunConfig:
    """Build a RunConfig from the machine, user and project config files.

    Args:
        start_dir: Directory to start the project config search from
        base: Config to layer file settings onto (defaults to RunConfig())

    Returns:
        A new RunConfig with file settings applied in precedence order

    Raises:
        ConfigError: If any config file or the merged result is invalid
    """
    settings: dict[str, Any] = {}
    candidates = [get_machine_config_path(), get_user_config_path()]
    project_config = find_project_config(start_dir)
    if project_config is not None:
        candidates.append(project_config)

    for path in candidates:
        settings.update(parse_config_file(path))

    return replace(base or RunConfig(), **settings)
