"""Directory-backed model storage keyed by model name."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from ._errors import ModelitError, StorageError
from ._io import load_model, save_model
from ._models import Model

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIRECTORY = Path("~/.modelit/models")

_UNSAFE_CHARACTERS = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """File-level facts about a stored model."""

    name: str
    path: Path
    size: int
    last_modified: datetime
    variable_count: int


class ModelStorage:
    """Save and load models as ``<name>.toml`` files in one directory.

    Characters other than letters, digits, ``_`` and ``-`` in a model name
    are replaced by ``_`` to form the file name.

    Example:
        >>> storage = ModelStorage(tmp_path)
        >>> storage.save(model)
        >>> storage.list_models()
        ['cashflow']

    """

    suffix = ".toml"

    def __init__(self, base_directory: Path | str = DEFAULT_STORAGE_DIRECTORY) -> None:
        self.base_directory = Path(base_directory).expanduser()

    def path_for(self, name: str) -> Path:
        return self.base_directory / f"{_UNSAFE_CHARACTERS.sub('_', name)}{self.suffix}"

    def save(self, model: Model) -> Path:
        """Write a model, replacing any stored model of the same name.

        Raises:
            StorageError: If the file cannot be written.

        """
        path = self.path_for(model.name)
        try:
            save_model(model, path)
        except OSError as e:
            raise StorageError("save", str(e), model.name) from e
        logger.info("Saved model '%s' to %s", model.name, path)
        return path

    def load(self, name: str) -> Model:
        """Read a stored model.

        Raises:
            StorageError: If the model does not exist or cannot be parsed.

        """
        path = self.path_for(name)
        if not path.exists():
            raise StorageError("load", "model not found", name)
        try:
            return load_model(path)
        except (OSError, ValueError, KeyError, ModelitError) as e:
            raise StorageError("load", str(e), name) from e

    def delete(self, name: str) -> None:
        """Remove a stored model.

        Raises:
            StorageError: If the model does not exist or cannot be removed.

        """
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            raise StorageError("delete", "model not found", name) from None
        except OSError as e:
            raise StorageError("delete", str(e), name) from e
        logger.info("Deleted model '%s'", name)

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def list_models(self) -> list[str]:
        """List the names of stored models, sorted; empty when the directory is missing."""
        if not self.base_directory.is_dir():
            return []
        return sorted(p.stem for p in self.base_directory.glob(f"*{self.suffix}") if p.is_file())

    def info(self, name: str) -> ModelInfo:
        """Get file facts and the variable count of a stored model.

        Raises:
            StorageError: If the model does not exist or cannot be parsed.

        """
        model = self.load(name)
        path = self.path_for(name)
        stats = path.stat()
        return ModelInfo(
            name=name,
            path=path,
            size=stats.st_size,
            last_modified=datetime.fromtimestamp(stats.st_mtime, tz=UTC),
            variable_count=len(model),
        )

    def import_model(self, path: Path | str) -> Model:
        """Load a model document from any location and store it.

        Raises:
            StorageError: If the document cannot be read or stored.

        """
        try:
            model = load_model(path)
        except (OSError, ValueError, KeyError, ModelitError) as e:
            raise StorageError("import", str(e), str(path)) from e
        self.save(model)
        return model

    def export_model(self, name: str, path: Path | str) -> Path:
        """Copy a stored model to a ``.toml`` or ``.json`` document.

        Raises:
            StorageError: If the model cannot be loaded or written.

        """
        model = self.load(name)
        try:
            return save_model(model, path)
        except (OSError, ValueError) as e:
            raise StorageError("export", str(e), name) from e
