"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path

from modelit._storage import DEFAULT_STORAGE_DIRECTORY


class ConfigError(Exception):
    """Error in modelit configuration."""


@dataclass(slots=True, frozen=True)
class ModelitConfig:
    """Configuration loaded from pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).
    """

    model: Path | None = None
    horizon: int | None = None
    output: Path | None = None
    storage: Path = DEFAULT_STORAGE_DIRECTORY
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


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.modelit].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = project_root / path
    return path


def load_config(pyproject_path: Path) -> ModelitConfig:
    """Load and validate [tool.modelit] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed ModelitConfig

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

    section = data.get("tool", {}).get("modelit", {})
    if not section:
        return ModelitConfig(project_root=project_root)

    horizon: int | None = None
    if "horizon" in section:
        horizon = section["horizon"]
        if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon < 1:
            msg = "Invalid [tool.modelit].horizon: expected an integer of at least 1"
            raise ConfigError(msg)

    storage = _parse_path(section, "storage", project_root)

    return ModelitConfig(
        model=_parse_path(section, "model", project_root),
        horizon=horizon,
        output=_parse_path(section, "output", project_root),
        storage=storage if storage is not None else DEFAULT_STORAGE_DIRECTORY,
        project_root=project_root,
    )


def get_config() -> ModelitConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        ModelitConfig (may be empty if no pyproject.toml or no [tool.modelit] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return ModelitConfig()
    return load_config(pyproject_path)
