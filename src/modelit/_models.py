from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._errors import FormulaParseError, MissingVariableError, VariableInUseError
from ._formula import IDENTIFIER_PATTERN, TimeReference, base_name, parse_formula, parse_time_reference
from ._kinds import EdgeKind, VariableKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)


class VariableMetadata(BaseModel):
    """Descriptive information attached to a variable."""

    model_config = ConfigDict(frozen=True)

    units: str | None = None
    description: str | None = None
    source: str | None = None
    tags: tuple[str, ...] = ()


class Variable(BaseModel):
    """A named quantity, optionally defined by a formula.

    ``dependencies`` is derived from the formula whenever one is given; it is
    only taken as supplied for variables without a formula.

    Example:
        >>> cash = Variable(name="CASH", formula="CASH[t-1] + INFLOW", values=(1000.0,))
        >>> cash.dependencies
        ('CASH[t-1]', 'INFLOW')

    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=rf"^{IDENTIFIER_PATTERN}$")
    kind: VariableKind = VariableKind.SCALAR
    formula: str | None = None
    dependencies: tuple[str, ...] = Field(default=(), validate_default=True)
    values: tuple[float, ...] | None = None
    metadata: VariableMetadata = Field(default_factory=VariableMetadata)

    @field_validator("formula")
    @classmethod
    def _strip_formula(cls, formula: str | None) -> str | None:
        if formula is None:
            return None
        return formula.strip() or None

    @field_validator("dependencies")
    @classmethod
    def _derive_dependencies(cls, dependencies: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        formula = info.data.get("formula")
        if not formula:
            return dependencies
        try:
            return parse_formula(formula).dependencies
        except FormulaParseError as e:
            raise FormulaParseError(e.formula, e.reason, variable=info.data.get("name")) from None

    @property
    def has_formula(self) -> bool:
        return self.formula is not None

    @property
    def has_values(self) -> bool:
        return bool(self.values)

    @property
    def is_parameter(self) -> bool:
        return self.kind == VariableKind.PARAMETER

    @property
    def time_references(self) -> tuple[TimeReference, ...]:
        """Time-offset tokens in the formula, empty without a formula."""
        if self.formula is None:
            return ()
        return parse_formula(self.formula).time_references

    @property
    def is_time_dependent(self) -> bool:
        return len(self.time_references) > 0


class EdgeMetadata(BaseModel):
    """Annotation carried by an edge."""

    model_config = ConfigDict(frozen=True)

    description: str | None = None
    strength: float | None = Field(default=None, ge=0, le=1)
    confidence: float | None = Field(default=None, ge=0, le=1)
    lag: int | None = None
    author: str | None = None


class Edge(BaseModel):
    """An agent-visible annotation between two variables.

    Edges mirror (or embellish) what the formulas already say. They are never
    consulted for evaluation order.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    source: str
    target: str
    kind: EdgeKind = EdgeKind.DEPENDENCY
    metadata: EdgeMetadata = Field(default_factory=EdgeMetadata)

    @property
    def strength(self) -> float:
        return self.metadata.strength if self.metadata.strength is not None else 1.0

    @property
    def confidence(self) -> float:
        return self.metadata.confidence if self.metadata.confidence is not None else 1.0

    @property
    def lag(self) -> int:
        return self.metadata.lag if self.metadata.lag is not None else 0

    def is_temporal(self) -> bool:
        """Check if the edge describes a lagged relationship."""
        return self.kind == EdgeKind.TEMPORAL or self.metadata.lag is not None

    def issues(self) -> list[str]:
        """Return consistency problems with this edge's annotation."""
        issues: list[str] = []
        if self.kind == EdgeKind.TEMPORAL and self.metadata.lag is None:
            issues.append(f"Edge '{self.id}': lag must be specified for temporal edges")
        if self.source == self.target and self.kind != EdgeKind.TEMPORAL:
            issues.append(f"Edge '{self.id}': only temporal edges may connect a variable to itself")
        return issues

    @staticmethod
    def make_id(source: str, target: str, kind: EdgeKind) -> str:
        return f"{source}-{kind}-{target}"

    @classmethod
    def dependency(cls, source: str, target: str, **metadata: Any) -> Edge:
        """Create a dependency edge with a derived id."""
        return cls(
            id=cls.make_id(source, target, EdgeKind.DEPENDENCY),
            source=source,
            target=target,
            kind=EdgeKind.DEPENDENCY,
            metadata=EdgeMetadata(**metadata),
        )

    @classmethod
    def temporal(cls, source: str, target: str, lag: int, **metadata: Any) -> Edge:
        """Create a temporal edge with a derived id."""
        return cls(
            id=cls.make_id(source, target, EdgeKind.TEMPORAL),
            source=source,
            target=target,
            kind=EdgeKind.TEMPORAL,
            metadata=EdgeMetadata(lag=lag, **metadata),
        )


class ModelMetadata(BaseModel):
    created: datetime | None = None
    updated: datetime | None = None
    version: str | None = None
    author: str | None = None


class ModelDocument(BaseModel):
    """Serializable form of a Model."""

    name: str = Field(min_length=1)
    description: str | None = None
    metadata: ModelMetadata = Field(default_factory=ModelMetadata)
    variables: list[Variable] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


def _is_temporal_self_reference(token: str, variable_name: str) -> bool:
    reference = parse_time_reference(token)
    return reference is not None and reference.variable == variable_name


def formula_edges(model: Model) -> list[Edge]:
    """Derive the edge overlay that mirrors the formulas of a model.

    Plain references become dependency edges and time-offset references become
    temporal edges whose lag is the negated offset. References to variables
    absent from the model are skipped.
    """
    edges: dict[str, Edge] = {}
    for variable in model.variables.values():
        for token in variable.dependencies:
            reference = parse_time_reference(token)
            if reference is None:
                edge = Edge.dependency(token, variable.name)
            else:
                edge = Edge.temporal(reference.variable, variable.name, lag=-reference.offset)
            if edge.source in model and edge.id not in edges:
                edges[edge.id] = edge
    return list(edges.values())


@dataclass(slots=True)
class Model:
    """A named set of variables and the edges annotating them.

    Every mutation re-checks referential integrity: a plain dependency must
    name a variable of this model, and a variable cannot be removed while
    another variable or an edge still names it.
    """

    name: str
    description: str | None = None
    metadata: ModelMetadata = field(default_factory=ModelMetadata)
    _variables: dict[str, Variable] = field(default_factory=dict)
    _edges: dict[str, Edge] = field(default_factory=dict)

    @property
    def variables(self) -> Mapping[str, Variable]:
        """Read-only view of the variables, in insertion order."""
        return MappingProxyType(self._variables)

    @property
    def edges(self) -> Mapping[str, Edge]:
        """Read-only view of the edges, keyed by id."""
        return MappingProxyType(self._edges)

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    def get_variable(self, name: str) -> Variable:
        """Get a variable by name.

        Raises:
            MissingVariableError: If no variable has that name.

        """
        try:
            return self._variables[name]
        except KeyError:
            raise MissingVariableError(name) from None

    def add_variable(self, variable: Variable) -> None:
        """Add a variable to the model.

        Raises:
            KeyError: If a variable with the same name already exists.
            MissingVariableError: If a dependency names an absent variable.

        """
        if variable.name in self._variables:
            msg = f"Variable with name '{variable.name}' already exists in model '{self.name}'."
            raise KeyError(msg)
        self._check_dependencies(variable)
        self._variables[variable.name] = variable
        logger.debug("Added variable %s to %s", variable.name, self.name)
        self._touch()

    def update_variable(self, name: str, /, **changes: Any) -> Variable:
        """Replace a variable with a copy carrying the given field changes.

        Changing the formula re-derives the dependencies; removing it clears them.

        Returns:
            The new Variable.

        """
        existing = self.get_variable(name)
        if changes.get("name", name) != name:
            msg = "Variables cannot be renamed; remove and re-add instead."
            raise ValueError(msg)

        data = existing.model_dump()
        if "formula" in changes and "dependencies" not in changes:
            data["dependencies"] = ()
        data.update(changes)
        updated = Variable.model_validate(data)

        self._check_dependencies(updated)
        self._variables[name] = updated
        logger.debug("Updated variable %s in %s", name, self.name)
        self._touch()
        return updated

    def remove_variable(self, name: str) -> Variable:
        """Remove a variable that nothing else refers to.

        Raises:
            MissingVariableError: If the variable does not exist.
            VariableInUseError: If another variable or an edge names it.

        """
        self.get_variable(name)
        referrers = [v.name for v in self.dependents_of(name)]
        referrers.extend(
            f"edge '{edge.id}'" for edge in self._edges.values() if name in (edge.source, edge.target)
        )
        if referrers:
            raise VariableInUseError(name, referrers)
        removed = self._variables.pop(name)
        self._touch()
        return removed

    def add_edge(self, edge: Edge) -> None:
        """Add an edge between two existing variables.

        Raises:
            KeyError: If an edge with the same id already exists.
            MissingVariableError: If the source or target is absent.

        """
        if edge.id in self._edges:
            msg = f"Edge with id '{edge.id}' already exists in model '{self.name}'."
            raise KeyError(msg)
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._variables:
                raise MissingVariableError(endpoint, referenced_by=f"edge '{edge.id}'")
        self._edges[edge.id] = edge
        self._touch()

    def remove_edge(self, edge_id: str) -> Edge:
        """Remove an edge by id."""
        try:
            removed = self._edges.pop(edge_id)
        except KeyError:
            msg = f"Edge with id '{edge_id}' not found in model '{self.name}'."
            raise KeyError(msg) from None
        self._touch()
        return removed

    def dependents_of(self, name: str) -> list[Variable]:
        """Get the other variables whose formulas refer to ``name``."""
        return [
            variable
            for variable in self._variables.values()
            if variable.name != name and any(base_name(dep) == name for dep in variable.dependencies)
        ]

    def dependencies_of(self, name: str) -> list[Variable]:
        """Get the variables that ``name`` refers to directly, excluding itself."""
        variable = self.get_variable(name)
        bases = dict.fromkeys(base_name(dep) for dep in variable.dependencies)
        return [self._variables[b] for b in bases if b != name and b in self._variables]

    def all_dependencies(self, name: str) -> frozenset[str]:
        """Get the names of all variables ``name`` transitively refers to.

        Temporal loops are tolerated; the variable itself is never included.
        """
        visited: set[str] = set()
        stack = [v.name for v in self.dependencies_of(name)]
        while stack:
            current = stack.pop()
            if current in visited or current == name:
                continue
            visited.add(current)
            stack.extend(v.name for v in self.dependencies_of(current))
        return frozenset(visited)

    def check_integrity(self) -> list[str]:
        """Collect every referential-integrity problem in the model.

        Returns:
            List of error messages. Empty list if the model is consistent.

        """
        errors: list[str] = []
        for variable in self._variables.values():
            try:
                self._check_dependencies(variable)
            except MissingVariableError as e:
                errors.append(f"Variable '{variable.name}': {e}")
        for edge in self._edges.values():
            errors.extend(
                f"Edge '{edge.id}': variable '{endpoint}' not found"
                for endpoint in (edge.source, edge.target)
                if endpoint not in self._variables
            )
        return errors

    def sync_formula_edges(self) -> list[Edge]:
        """Add the formula-mirroring edges that are not in the model yet.

        Returns:
            The edges that were added.

        """
        added = [edge for edge in formula_edges(self) if edge.id not in self._edges]
        for edge in added:
            self._edges[edge.id] = edge
        if added:
            self._touch()
        return added

    def clone(self) -> Model:
        return Model(
            name=self.name,
            description=self.description,
            metadata=self.metadata.model_copy(),
            _variables=dict(self._variables),
            _edges=dict(self._edges),
        )

    def subset(self, names: Iterable[str], name: str | None = None) -> Model:
        """Build a model holding only the named variables and the edges between them."""
        wanted = set(names)
        for missing in wanted - self._variables.keys():
            raise MissingVariableError(missing)
        return Model(
            name=name if name is not None else f"{self.name}_subset",
            description=self.description,
            _variables={n: v for n, v in self._variables.items() if n in wanted},
            _edges={
                i: e for i, e in self._edges.items() if e.source in wanted and e.target in wanted
            },
        )

    def to_document(self) -> ModelDocument:
        return ModelDocument(
            name=self.name,
            description=self.description,
            metadata=self.metadata,
            variables=list(self._variables.values()),
            edges=list(self._edges.values()),
        )

    @classmethod
    def from_document(cls, document: ModelDocument) -> Model:
        """Build a model from its document without per-variable integrity checks.

        Loaded documents may be inconsistent; ``check_integrity`` reports it.
        """
        variables: dict[str, Variable] = {}
        for variable in document.variables:
            if variable.name in variables:
                msg = f"Variable with name '{variable.name}' appears twice in model '{document.name}'."
                raise KeyError(msg)
            variables[variable.name] = variable
        edges: dict[str, Edge] = {}
        for edge in document.edges:
            if edge.id in edges:
                msg = f"Edge with id '{edge.id}' appears twice in model '{document.name}'."
                raise KeyError(msg)
            edges[edge.id] = edge
        return cls(
            name=document.name,
            description=document.description,
            metadata=document.metadata.model_copy(),
            _variables=variables,
            _edges=edges,
        )

    def _check_dependencies(self, variable: Variable) -> None:
        for token in variable.dependencies:
            if _is_temporal_self_reference(token, variable.name):
                continue
            base = base_name(token)
            if base != variable.name and base not in self._variables:
                raise MissingVariableError(base, referenced_by=variable.name)

    def _touch(self) -> None:
        now = datetime.now(UTC)
        if self.metadata.created is None:
            self.metadata.created = now
        self.metadata.updated = now
