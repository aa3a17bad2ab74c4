"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path

from squidcalc._errors import SquidCalcError


class ConfigError(SquidCalcError):
    """Error in squidcalc configuration."""


@dataclass(slots=True, frozen=True)
class SquidCalcConfig:
    """Configuration loaded from the ``[tool.squidcalc]`` table of pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).
    """

    task: Path | None = None
    output: Path | None = None
    max_workers: int | None = None
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.squidcalc].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value)
    if not path.is_absolute():
        path = project_root / path
    return path


def load_config(pyproject_path: Path) -> SquidCalcConfig:
    """Load and validate [tool.squidcalc] config from pyproject.toml.

    Raises:
        ConfigError: If the file is not valid TOML or the configuration is invalid.

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("squidcalc", {})
    if not section:
        return SquidCalcConfig(project_root=project_root)

    unknown = sorted(set(section) - {"task", "output", "max_workers"})
    if unknown:
        msg = f"Unknown [tool.squidcalc] key(s): {', '.join(unknown)}"
        raise ConfigError(msg)

    max_workers = section.get("max_workers")
    if max_workers is not None and (isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1):
        msg = "Invalid [tool.squidcalc].max_workers: expected a positive integer"
        raise ConfigError(msg)

    return SquidCalcConfig(
        task=_parse_path(section, "task", project_root),
        output=_parse_path(section, "output", project_root),
        max_workers=max_workers,
        project_root=project_root,
    )


def get_config() -> SquidCalcConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        SquidCalcConfig (may be empty if no pyproject.toml or no [tool.squidcalc] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return SquidCalcConfig()
    return load_config(pyproject_path)
