"""Per-call evaluation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from modelit._kinds import VariableKind

if TYPE_CHECKING:
    from modelit._models import Model


@dataclass(slots=True)
class EvaluationContext:
    """Values table for one evaluation call.

    Attributes:
        horizon: Number of time steps.
        values: Maps each variable to its sequence of length ``horizon``.
        parameters: First seeded value of each seeded parameter variable.
        seeds: The seeded values as given, used for lookback before step 0.

    """

    horizon: int
    values: dict[str, list[float]] = field(default_factory=dict)
    parameters: dict[str, float] = field(default_factory=dict)
    seeds: dict[str, tuple[float, ...]] = field(default_factory=dict)

    def lookup(self, name: str, step: int) -> float:
        """Read a value at a possibly out-of-range step.

        Steps before 0 resolve to the first seeded value (0.0 if unseeded),
        however far back they reach. Steps at or past the horizon hold the
        last value constant.
        """
        if step < 0:
            seeds = self.seeds.get(name, ())
            return float(seeds[0]) if seeds else 0.0
        row = self.values[name]
        return row[min(step, self.horizon - 1)]


def seed_context(model: Model, horizon: int) -> EvaluationContext:
    """Pre-fill the values table from the seeded values of every variable.

    Sequences are zero-padded or truncated to the horizon.

    Raises:
        ValueError: If ``horizon`` is less than 1.

    """
    if horizon < 1:
        msg = f"Horizon must be at least 1, got {horizon}."
        raise ValueError(msg)

    context = EvaluationContext(horizon=horizon)
    for name, variable in model.variables.items():
        seeds = variable.values or ()
        row = [float(v) for v in seeds[:horizon]]
        row.extend([0.0] * (horizon - len(row)))
        context.values[name] = row
        context.seeds[name] = seeds

        match variable.kind:
            case VariableKind.PARAMETER:
                if seeds:
                    context.parameters[name] = float(seeds[0])
            case VariableKind.SCALAR | VariableKind.SERIES:
                pass

    return context
