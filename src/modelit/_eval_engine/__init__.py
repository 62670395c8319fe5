"""Evaluation engine module for modelit.

This module provides pure functions for evaluating models over a time
horizon. Each call seeds its own context from the model it is given and
produces computed results without side effects.

Key types:
- EvaluationContext: Values table for one evaluation call
- EvaluationResult: Structured result containing computed values and errors
- evaluate_model: Evaluate every variable of a model
- evaluate_variable: Evaluate one variable and what it reads
- simulate_scenarios: Evaluate a model once per set of parameter overrides
"""

from ._context import EvaluationContext, seed_context
from ._engine import (
    EvaluationResult,
    VariableEvaluation,
    compute_values,
    evaluate_model,
    evaluate_variable,
    simulate_scenarios,
)
from ._resolution import resolve_substitutions

__all__ = [
    "EvaluationContext",
    "EvaluationResult",
    "VariableEvaluation",
    "compute_values",
    "evaluate_model",
    "evaluate_variable",
    "resolve_substitutions",
    "seed_context",
    "simulate_scenarios",
]
