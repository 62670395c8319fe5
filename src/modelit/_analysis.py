"""Structural checks and graph statistics for a model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import CircularDependencyError
from ._graph import DependencyGraph

if TYPE_CHECKING:
    from ._models import Model

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Outcome of validate_model.

    Attributes:
        errors: Problems that prevent evaluation.
        warnings: Edge annotation issues; they never affect evaluation.

    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


@dataclass(frozen=True, slots=True)
class GraphAnalysis:
    """Summary statistics of the dependency graph of a model."""

    node_count: int
    edge_count: int
    max_level: int
    cycle_count: int
    is_acyclic: bool
    topological_order: list[str]
    time_dependent_count: int
    cycles: list[list[str]] = field(default_factory=list)
    levels: dict[str, int] = field(default_factory=dict)


def collect_problems(model: Model, graph: DependencyGraph | None = None) -> list[str]:
    """List everything that would make evaluation of ``model`` fail up front.

    Referential-integrity problems come first, then one entry for the
    non-temporal cycles, if any.
    """
    if graph is None:
        graph = DependencyGraph.from_model(model)

    problems = model.check_integrity()
    cycles = graph.find_cycles()
    if cycles:
        problems.append(str(CircularDependencyError.from_cycles(cycles)))
    return problems


def validate_model(model: Model) -> ValidationReport:
    """Check a model for integrity problems and circular dependencies.

    Args:
        model: The model to check.

    Returns:
        A ValidationReport; ``is_valid`` is False when any error was found.

    Example:
        >>> report = validate_model(model)
        >>> if not report.is_valid:
        ...     print("\\n".join(report.errors))

    """
    errors = collect_problems(model)
    warnings = [issue for edge in model.edges.values() for issue in edge.issues()]
    if errors:
        logger.debug("Model %s has %d problem(s)", model.name, len(errors))
    return ValidationReport(errors=errors, warnings=warnings)


def analyze_graph(model: Model) -> GraphAnalysis:
    """Compute the dependency graph statistics of a model.

    ``topological_order`` is empty when the graph has a cycle.
    """
    graph = DependencyGraph.from_model(model)
    cycles = graph.find_cycles()
    order = graph.topological_order() if not cycles else []
    return GraphAnalysis(
        node_count=len(graph),
        edge_count=len(graph.edges),
        max_level=graph.max_level,
        cycle_count=len(cycles),
        is_acyclic=not cycles,
        topological_order=order,
        time_dependent_count=len(graph.time_dependent_names()),
        cycles=cycles,
        levels={node.name: node.level for node in graph.nodes},
    )
