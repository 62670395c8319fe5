"""Token resolution for the evaluation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

from modelit._errors import MissingVariableError
from modelit._formula import parse_time_reference

if TYPE_CHECKING:
    from modelit._models import Variable

    from ._context import EvaluationContext


def resolve_substitutions(variable: Variable, context: EvaluationContext, step: int) -> dict[str, float]:
    """Build the token substitution map for one formula at one step.

    Plain names read the current step. A time-offset token ``X[t+k]`` reads
    step ``step + k`` through ``EvaluationContext.lookup``.

    Args:
        variable: The variable whose formula is about to be evaluated.
        context: The values table.
        step: The current time step.

    Returns:
        Mapping from each dependency token as written to its value.

    Raises:
        MissingVariableError: If a token names a variable absent from the context.

    """
    substitutions: dict[str, float] = {}

    for token in variable.dependencies:
        reference = parse_time_reference(token)
        name = reference.variable if reference is not None else token
        if name not in context.values:
            raise MissingVariableError(name, referenced_by=variable.name)

        if reference is None:
            substitutions[token] = context.values[name][step]
        else:
            substitutions[token] = context.lookup(name, step + reference.offset)

    return substitutions
