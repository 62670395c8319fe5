"""Time-recursive computation graphs of formula-defined variables."""

__all__ = [
    "CircularDependencyError",
    "CycleError",
    "DependencyGraph",
    "DependencyKind",
    "Edge",
    "EdgeKind",
    "EdgeMetadata",
    "EvaluationContext",
    "EvaluationError",
    "EvaluationResult",
    "FormulaParseError",
    "GraphAnalysis",
    "GraphEdge",
    "GraphNode",
    "MissingVariableError",
    "Model",
    "ModelDocument",
    "ModelInfo",
    "ModelMetadata",
    "ModelStorage",
    "ModelitError",
    "ParsedFormula",
    "StorageError",
    "TimeReference",
    "ValidationReport",
    "Variable",
    "VariableEvaluation",
    "VariableInUseError",
    "VariableKind",
    "VariableMetadata",
    "analyze_graph",
    "base_name",
    "evaluate_formula",
    "evaluate_model",
    "evaluate_variable",
    "export_results",
    "find_cycles",
    "formula_edges",
    "load_model",
    "load_scenarios",
    "parse_formula",
    "parse_time_reference",
    "save_model",
    "seed_context",
    "simulate_scenarios",
    "topological_sort",
    "validate_formula",
    "validate_model",
]

from ._analysis import GraphAnalysis, ValidationReport, analyze_graph, validate_model
from ._errors import (
    CircularDependencyError,
    EvaluationError,
    FormulaParseError,
    MissingVariableError,
    ModelitError,
    StorageError,
    VariableInUseError,
)
from ._eval_engine import (
    EvaluationContext,
    EvaluationResult,
    VariableEvaluation,
    evaluate_model,
    evaluate_variable,
    seed_context,
    simulate_scenarios,
)
from ._formula import (
    ParsedFormula,
    TimeReference,
    base_name,
    evaluate_formula,
    parse_formula,
    parse_time_reference,
    validate_formula,
)
from ._graph import CycleError, DependencyGraph, DependencyKind, GraphEdge, GraphNode, find_cycles, topological_sort
from ._io import export_results, load_model, load_scenarios, save_model
from ._kinds import EdgeKind, VariableKind
from ._models import (
    Edge,
    EdgeMetadata,
    Model,
    ModelDocument,
    ModelMetadata,
    Variable,
    VariableMetadata,
    formula_edges,
)
from ._storage import ModelInfo, ModelStorage
