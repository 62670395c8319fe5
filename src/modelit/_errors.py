"""Exception taxonomy for modelit.

Every error raised by the core derives from ModelitError so that the
operation contracts can turn it into an error message without catching
unrelated exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class ModelitError(Exception):
    """Base class for all modelit errors."""

    code: str = "UNKNOWN_ERROR"


class FormulaParseError(ModelitError):
    """A formula is malformed or still holds an unresolved token."""

    code = "FORMULA_ERROR"

    def __init__(self, formula: str, reason: str, variable: str | None = None) -> None:
        self.formula = formula
        self.reason = reason
        self.variable = variable
        context = f" in variable '{variable}'" if variable else ""
        super().__init__(f"Formula error{context}: {reason} (formula: {formula!r})")


class MissingVariableError(ModelitError):
    """A variable name does not resolve to a Variable in the model."""

    code = "VARIABLE_NOT_FOUND"

    def __init__(self, name: str, referenced_by: str | None = None) -> None:
        self.name = name
        self.referenced_by = referenced_by
        if referenced_by is None:
            message = f"Variable '{name}' not found"
        else:
            message = f"Dependency '{name}' not found for '{referenced_by}'"
        super().__init__(message)


class CircularDependencyError(ModelitError):
    """A non-temporal cycle exists among formula dependencies."""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")

    @classmethod
    def from_cycles(cls, cycles: Iterable[Sequence[str]]) -> CircularDependencyError:
        """Build an error from the first of several cycles, mentioning all of them."""
        cycles = [list(c) for c in cycles]
        error = cls(cycles[0])
        if len(cycles) > 1:
            rendered = ", ".join(" -> ".join(c) for c in cycles)
            error.args = (f"Circular dependencies detected: {rendered}",)
        return error


class EvaluationError(ModelitError):
    """Arithmetic failure while computing a formula."""

    code = "EVALUATION_ERROR"

    def __init__(
        self,
        formula: str,
        reason: str,
        *,
        variable: str | None = None,
        time_step: int | None = None,
    ) -> None:
        self.formula = formula
        self.reason = reason
        self.variable = variable
        self.time_step = time_step
        where = ""
        if variable is not None:
            where = f" for variable '{variable}'"
        if time_step is not None:
            where += f" at step {time_step}"
        super().__init__(f"Failed to evaluate {formula!r}{where}: {reason}")


class StorageError(ModelitError):
    """A storage operation failed."""

    code = "STORAGE_ERROR"

    def __init__(self, operation: str, message: str, resource: str | None = None) -> None:
        self.operation = operation
        self.resource = resource
        target = f" '{resource}'" if resource else ""
        super().__init__(f"Storage {operation} failed{target}: {message}")


class VariableInUseError(ModelitError):
    """A variable cannot be removed while something still refers to it."""

    code = "VARIABLE_IN_USE"

    def __init__(self, name: str, referrers: Sequence[str]) -> None:
        self.name = name
        self.referrers = list(referrers)
        super().__init__(f"Cannot remove variable '{name}' - it is referenced by: {', '.join(self.referrers)}")
