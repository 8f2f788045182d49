"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path


class ConfigError(Exception):
    """Error in adjmap configuration."""


@dataclass(slots=True, frozen=True)
class AdjmapConfig:
    """Configuration loaded from the ``[tool.adjmap]`` table of pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).
    """

    map: Path | None = None
    scenario: str | None = None
    include_hidden: bool = False
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
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(pyproject_path: Path) -> AdjmapConfig:
    """Load and validate [tool.adjmap] config from pyproject.toml.

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("adjmap", {})
    if not section:
        return AdjmapConfig(project_root=project_root)

    unknown = sorted(set(section) - {"map", "scenario", "include-hidden"})
    if unknown:
        msg = f"Unknown keys in [tool.adjmap]: {', '.join(unknown)}"
        raise ConfigError(msg)

    map_path: Path | None = None
    if "map" in section:
        value = section["map"]
        if not isinstance(value, str):
            msg = "Invalid [tool.adjmap].map: expected string path"
            raise ConfigError(msg)
        map_path = Path(value)
        if not map_path.is_absolute():
            map_path = project_root / map_path

    scenario = section.get("scenario")
    if scenario is not None and not isinstance(scenario, str):
        msg = "Invalid [tool.adjmap].scenario: expected string"
        raise ConfigError(msg)

    include_hidden = section.get("include-hidden", False)
    if not isinstance(include_hidden, bool):
        msg = "Invalid [tool.adjmap].include-hidden: expected boolean"
        raise ConfigError(msg)

    return AdjmapConfig(
        map=map_path,
        scenario=scenario,
        include_hidden=include_hidden,
        project_root=project_root,
    )


def get_config() -> AdjmapConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        AdjmapConfig (may be empty if no pyproject.toml or no [tool.adjmap] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return AdjmapConfig()
    return load_config(pyproject_path)
