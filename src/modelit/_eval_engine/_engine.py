"""Time-recursive evaluation of a model."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from modelit._analysis import collect_problems
from modelit._errors import EvaluationError, FormulaParseError, MissingVariableError, ModelitError
from modelit._formula import evaluate_formula
from modelit._graph import DependencyGraph

from ._context import EvaluationContext, seed_context
from ._resolution import resolve_substitutions

if TYPE_CHECKING:
    from modelit._models import Model

logger = logging.getLogger(__name__)

ScenarioOverrides: TypeAlias = Mapping[str, float | Sequence[float]]


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Result of evaluating a model over a horizon.

    Attributes:
        horizon: Number of time steps requested.
        values: Mapping from variable name to its sequence of length
            ``horizon``, or None if the evaluation failed.
        parameters: First seeded value of each seeded parameter variable.
        errors: Error messages; empty on success.
        elapsed: Wall-clock seconds spent.

    """

    horizon: int
    values: dict[str, list[float]] | None = None
    parameters: dict[str, float] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        """Check if evaluation completed without errors."""
        return len(self.errors) == 0 and self.values is not None

    def get_value(self, name: str) -> list[float]:
        """Get the computed sequence of a variable.

        Raises:
            KeyError: If the evaluation failed or the variable is unknown.

        """
        if self.values is None:
            msg = f"No values available: {'; '.join(self.errors)}"
            raise KeyError(msg)
        return self.values[name]


@dataclass(frozen=True, slots=True)
class VariableEvaluation:
    """Result of evaluating a single variable together with what it reads."""

    name: str
    horizon: int
    values: list[float] | None = None
    errors: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return len(self.errors) == 0 and self.values is not None


def _partition(model: Model, order: list[str]) -> tuple[list[str], list[str]]:
    """Split formula-bearing variables into the two passes, keeping topological order.

    A formula without time-offset tokens that reads a time-dependent variable
    goes to the second pass so that it sees computed values.
    """
    first: list[str] = []
    second: list[str] = []
    late: set[str] = set()

    for name in order:
        variable = model.variables[name]
        if not variable.has_formula:
            continue
        if variable.is_time_dependent or any(dep in late for dep in variable.dependencies):
            late.add(name)
            second.append(name)
        else:
            first.append(name)

    return first, second


def _run_pass(model: Model, names: list[str], context: EvaluationContext) -> None:
    for step in range(context.horizon):
        for name in names:
            variable = model.variables[name]
            if variable.formula is None:
                continue
            substitutions = resolve_substitutions(variable, context, step)
            try:
                value = evaluate_formula(variable.formula, substitutions)
            except EvaluationError as e:
                raise EvaluationError(e.formula, e.reason, variable=name, time_step=step) from e
            except FormulaParseError as e:
                raise FormulaParseError(e.formula, e.reason, variable=name) from e
            context.values[name][step] = value
            logger.debug("  %s[%d] = %r", name, step, value)


def compute_values(model: Model, horizon: int, graph: DependencyGraph | None = None) -> EvaluationContext:
    """Run both evaluation passes and return the filled context.

    The model is assumed to have passed ``collect_problems``.

    Raises:
        ValueError: If ``horizon`` is less than 1.
        CircularDependencyError: If the graph has a non-temporal cycle.
        ModelitError: If a formula cannot be evaluated.

    """
    if graph is None:
        graph = DependencyGraph.from_model(model)

    context = seed_context(model, horizon)
    order = graph.topological_order()
    first, second = _partition(model, order)

    logger.debug("Pass 1: %d time-independent variable(s) over %d step(s)", len(first), horizon)
    _run_pass(model, first, context)
    logger.debug("Pass 2: %d time-dependent variable(s) over %d step(s)", len(second), horizon)
    _run_pass(model, second, context)

    return context


def evaluate_model(model: Model, horizon: int) -> EvaluationResult:
    """Evaluate every variable of a model over ``horizon`` time steps.

    This is a pure function that:
    1. Builds a DependencyGraph from the model's formulas
    2. Checks referential integrity and cycles, aborting with no values on failure
    3. Seeds the values table from each variable's seeded values
    4. Evaluates time-independent formulas, then time-dependent ones, step by step

    Args:
        model: The model to evaluate.
        horizon: Number of time steps, at least 1.

    Returns:
        EvaluationResult containing computed values or the errors.

    Raises:
        ValueError: If ``horizon`` is less than 1.

    Example:
        >>> result = evaluate_model(model, 3)
        >>> if result.success:
        ...     print(result.values["EBITDA"])

    """
    if horizon < 1:
        msg = f"Horizon must be at least 1, got {horizon}."
        raise ValueError(msg)

    start = time.perf_counter()
    graph = DependencyGraph.from_model(model)

    problems = collect_problems(model, graph)
    if problems:
        logger.warning("Model %s is invalid: %s", model.name, "; ".join(problems))
        return EvaluationResult(horizon=horizon, errors=problems, elapsed=time.perf_counter() - start)

    logger.debug("Evaluating %s (%d variables, horizon %d)", model.name, len(model), horizon)
    try:
        context = compute_values(model, horizon, graph)
    except ModelitError as e:
        logger.warning("Evaluation of %s failed: %s", model.name, e)
        return EvaluationResult(horizon=horizon, errors=[str(e)], elapsed=time.perf_counter() - start)

    return EvaluationResult(
        horizon=horizon,
        values={name: list(row) for name, row in context.values.items()},
        parameters=dict(context.parameters),
        elapsed=time.perf_counter() - start,
    )


def evaluate_variable(model: Model, name: str, horizon: int) -> VariableEvaluation:
    """Evaluate one variable using only the variables it transitively reads."""
    if horizon < 1:
        msg = f"Horizon must be at least 1, got {horizon}."
        raise ValueError(msg)

    start = time.perf_counter()
    if name not in model:
        error = MissingVariableError(name)
        logger.warning("Evaluation of %s failed: %s", name, error)
        return VariableEvaluation(name=name, horizon=horizon, errors=[str(error)])

    submodel = model.subset({name, *model.all_dependencies(name)}, name=model.name)
    result = evaluate_model(submodel, horizon)
    return VariableEvaluation(
        name=name,
        horizon=horizon,
        values=result.values[name] if result.values is not None else None,
        errors=list(result.errors),
        elapsed=time.perf_counter() - start,
    )


def _apply_overrides(model: Model, overrides: ScenarioOverrides) -> None:
    for name, values in overrides.items():
        variable = model.get_variable(name)
        if not variable.is_parameter:
            msg = f"Variable '{name}' is not a parameter and cannot be overridden"
            raise ValueError(msg)
        seeded = (values,) if isinstance(values, int | float) else tuple(values)
        model.update_variable(name, values=seeded)


def simulate_scenarios(
    model: Model,
    scenarios: Mapping[str, ScenarioOverrides],
    horizon: int,
) -> dict[str, EvaluationResult]:
    """Evaluate the model once per scenario with parameter values overridden.

    Each scenario works on its own clone of the model, so scenarios are
    independent of each other and of their order. Unknown names are not
    skipped: overriding an unknown or non-parameter variable fails that
    scenario only.

    Args:
        model: The base model; it is never modified.
        scenarios: Maps scenario name to ``{parameter: seeded values}``. A
            bare number stands for a single seeded value.
        horizon: Number of time steps, at least 1.

    Returns:
        Mapping from scenario name to its EvaluationResult.

    """
    if horizon < 1:
        msg = f"Horizon must be at least 1, got {horizon}."
        raise ValueError(msg)

    results: dict[str, EvaluationResult] = {}
    for scenario, overrides in scenarios.items():
        scenario_model = model.clone()
        try:
            _apply_overrides(scenario_model, overrides)
        except (ModelitError, ValueError) as e:
            logger.warning("Scenario %s failed: %s", scenario, e)
            results[scenario] = EvaluationResult(horizon=horizon, errors=[f"Scenario '{scenario}': {e}"])
            continue
        logger.debug("Running scenario %s", scenario)
        results[scenario] = evaluate_model(scenario_model, horizon)
    return results
