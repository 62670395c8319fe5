"""Reading and writing model documents and evaluation results."""

from __future__ import annotations

import json
import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w

from ._models import Model, ModelDocument

if TYPE_CHECKING:
    from ._eval_engine import EvaluationResult

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".toml", ".json")


def _serialize_value(value: Any) -> Any:
    """Recursively prepare a value for TOML or JSON output.

    Handles:
    - Enum members: Converted to their value
    - dict: Values serialized; None and empty containers dropped (TOML has no null)
    - list/tuple: Items serialized
    - Path objects: Converted to strings
    """
    if isinstance(value, Enum):
        return value.value

    if isinstance(value, dict):
        result = {}
        for k, v in value.items():
            serialized = _serialize_value(v)
            if serialized is None or serialized == {} or serialized == []:
                continue
            result[k] = serialized
        return result

    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]

    if isinstance(value, Path):
        return str(value)

    return value


def model_to_dict(model: Model, *, mode: str = "python") -> dict[str, Any]:
    """Convert a model into the plain document structure written to disk.

    Dependencies are only written for variables without a formula; for the
    others they are derived again on load.
    """
    data = model.to_document().model_dump(mode=mode, exclude_none=True)
    for variable in data.get("variables", []):
        if variable.get("formula"):
            variable.pop("dependencies", None)
    return _serialize_value(data)


def model_from_dict(data: dict[str, Any]) -> Model:
    """Validate a document structure and build the model it describes.

    Raises:
        pydantic.ValidationError: If the structure does not describe a model.
        FormulaParseError: If a formula is malformed.
        KeyError: If a variable name or edge id appears twice.

    """
    return Model.from_document(ModelDocument.model_validate(data))


def _check_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        msg = f"Unsupported file type '{path.suffix}' for {path}; use one of {', '.join(SUPPORTED_SUFFIXES)}."
        raise ValueError(msg)
    return suffix


def load_model(path: Path | str) -> Model:
    """Load a model from a ``.toml`` or ``.json`` document.

    Args:
        path: Path to the document.

    Returns:
        The loaded Model. It is not integrity-checked; use validate_model.

    """
    path = Path(path)
    suffix = _check_suffix(path)

    if suffix == ".json":
        model = Model.from_document(ModelDocument.model_validate_json(path.read_bytes()))
    else:
        with path.open("rb") as f:
            model = model_from_dict(tomllib.load(f))

    logger.debug(f"Loaded model '{model.name}' from {path}")
    return model


def save_model(model: Model, path: Path | str) -> Path:
    """Write a model to a ``.toml`` or ``.json`` document.

    Returns:
        The path written to.

    """
    path = Path(path)
    suffix = _check_suffix(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = model_to_dict(model, mode="json" if suffix == ".json" else "python")
    if suffix == ".json":
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    else:
        with path.open("wb") as f:
            tomli_w.dump(data, f)

    logger.debug(f"Saved model '{model.name}' to {path}")
    return path


def load_scenarios(path: Path | str) -> dict[str, dict[str, float | list[float]]]:
    """Load scenario overrides from a ``.toml`` or ``.json`` file.

    Each top-level table is a scenario mapping parameter names to a number
    or a list of numbers:

        [high_growth]
        REVENUE = [100, 120, 144]

        [flat]
        REVENUE = 100

    Raises:
        ValueError: If the structure is not a table of tables of numbers.

    """
    path = Path(path)
    suffix = _check_suffix(path)
    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    else:
        with path.open("rb") as f:
            data = tomllib.load(f)

    if not isinstance(data, dict):
        msg = f"Scenario file {path} must contain a table of scenarios."
        raise ValueError(msg)  # noqa: TRY004

    scenarios: dict[str, dict[str, float | list[float]]] = {}
    for scenario, overrides in data.items():
        if not isinstance(overrides, dict):
            msg = f"Scenario '{scenario}' in {path} must be a table of parameter values."
            raise ValueError(msg)  # noqa: TRY004
        scenarios[scenario] = {}
        for name, values in overrides.items():
            if isinstance(values, bool) or not isinstance(values, int | float | list):
                msg = f"Scenario '{scenario}': value for '{name}' must be a number or a list of numbers."
                raise ValueError(msg)
            scenarios[scenario][name] = values
    logger.debug(f"Loaded {len(scenarios)} scenario(s) from {path}")
    return scenarios


def results_to_dict(result: EvaluationResult, names: list[str] | None = None) -> dict[str, Any]:
    """Convert an evaluation result to a dictionary suitable for export.

    Args:
        result: The evaluation result.
        names: Restrict ``values`` to these variables; all when None.

    Returns:
        A dictionary with the structure:
        {
            "horizon": 3,
            "success": true,
            "errors": [...],
            "parameters": {"REVENUE": 100.0},
            "values": {"REVENUE": [100.0, 110.0, 121.0], ...}
        }

    """
    data: dict[str, Any] = {
        "horizon": result.horizon,
        "success": result.success,
        "elapsed": result.elapsed,
    }
    if result.errors:
        data["errors"] = list(result.errors)
    if result.parameters:
        data["parameters"] = dict(result.parameters)
    if result.values is not None:
        data["values"] = {
            name: list(row) for name, row in result.values.items() if names is None or name in names
        }
    return data


def export_results(result: EvaluationResult, output_path: Path | str, names: list[str] | None = None) -> Path:
    """Export an evaluation result to a ``.toml`` or ``.json`` file.

    Returns:
        The path written to.

    """
    output_path = Path(output_path)
    suffix = _check_suffix(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = results_to_dict(result, names)
    if suffix == ".json":
        output_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    else:
        with output_path.open("wb") as f:
            tomli_w.dump(data, f)

    logger.debug(f"Exported results to {output_path}")
    return output_path
