"""Dependency graph derived from the formulas of a model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any

from modelit._errors import CircularDependencyError, MissingVariableError
from modelit._formula import parse_time_reference

from ._algorithms import CycleError, find_cycles, post_order, topological_sort

if TYPE_CHECKING:
    from modelit._models import Model

logger = logging.getLogger(__name__)


class DependencyKind(StrEnum):
    """How a formula refers to another variable."""

    DIRECT = auto()  # Plain name, current step
    TEMPORAL = auto()  # Time-offset token such as X[t-1]


@dataclass(frozen=True, slots=True)
class GraphEdge:
    """An edge of the derived graph: ``target``'s formula reads ``source``."""

    source: str
    target: str
    kind: DependencyKind
    offset: int = 0


@dataclass(frozen=True, slots=True)
class GraphNode:
    """Read-only view of one variable in the graph.

    Attributes:
        name: The variable name.
        dependencies: Variables the formula refers to, time-offset tokens
            collapsed to their base name.
        dependents: Variables whose formulas refer to this one.
        level: 0 for sources, otherwise 1 + the highest dependency level.
        is_time_dependent: Whether the formula has a time-offset token.
        dangling: Referenced names that are not in the graph.

    """

    name: str
    dependencies: tuple[str, ...]
    dependents: tuple[str, ...]
    level: int
    is_time_dependent: bool
    dangling: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class _Link:
    source: int
    target: int
    kind: DependencyKind
    offset: int


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Formula-induced dependencies of a model, stored as an index arena.

    Each variable gets a stable integer id (its position in the model) and
    every cross-reference is an id into the arena. The graph is rebuilt for
    every analysis; it is never persisted.

    Only plain references and same-step references to other variables
    (``X[t]``) constrain the evaluation order. Lagged references such as
    ``CASH[t-1]`` read an earlier step, so they never form a cycle. References
    to names absent from the graph are skipped during traversal and reported
    on the node as ``dangling``.
    """

    _names: tuple[str, ...]
    _index: dict[str, int]
    _dependencies: tuple[tuple[int, ...], ...]
    _ordering: dict[int, tuple[int, ...]]
    _dependents: tuple[tuple[int, ...], ...]
    _links: tuple[_Link, ...]
    _time_dependent: tuple[bool, ...]
    _dangling: tuple[tuple[str, ...], ...]
    _levels: tuple[int, ...]

    @classmethod
    def from_model(cls, model: Model) -> DependencyGraph:
        """Build the graph from the dependency tokens of a model's variables.

        Args:
            model: The model to analyze.

        Returns:
            A new DependencyGraph instance.

        """
        names = tuple(model.variables)
        index = {name: i for i, name in enumerate(names)}

        dependencies: list[tuple[int, ...]] = []
        ordering: dict[int, tuple[int, ...]] = {}
        dependents: list[list[int]] = [[] for _ in names]
        links: list[_Link] = []
        dangling: list[tuple[str, ...]] = []

        for i, variable in enumerate(model.variables.values()):
            deps: dict[int, None] = {}
            order_deps: dict[int, None] = {}
            missing: dict[str, None] = {}
            for token in variable.dependencies:
                reference = parse_time_reference(token)
                base = reference.variable if reference is not None else token
                j = index.get(base)
                if j is None:
                    missing[base] = None
                    continue
                if reference is None:
                    links.append(_Link(j, i, DependencyKind.DIRECT, 0))
                    order_deps[j] = None
                else:
                    links.append(_Link(j, i, DependencyKind.TEMPORAL, reference.offset))
                    if reference.offset == 0 and j != i:
                        order_deps[j] = None
                if j not in deps:
                    deps[j] = None
                    dependents[j].append(i)
            dependencies.append(tuple(deps))
            ordering[i] = tuple(order_deps)
            dangling.append(tuple(missing))

        # Levels follow every link, lagged ones included; a node on the current path counts as final.
        level_graph = {i: tuple(j for j in deps if j != i) for i, deps in enumerate(dependencies)}
        levels = [0] * len(names)
        for i in post_order(level_graph):
            levels[i] = 1 + max((levels[j] for j in level_graph[i]), default=-1)

        logger.debug("Built dependency graph with %d nodes and %d edges", len(names), len(links))

        return cls(
            _names=names,
            _index=index,
            _dependencies=tuple(dependencies),
            _ordering=ordering,
            _dependents=tuple(tuple(d) for d in dependents),
            _links=tuple(links),
            _time_dependent=tuple(v.is_time_dependent for v in model.variables.values()),
            _dangling=tuple(dangling),
            _levels=tuple(levels),
        )

    @property
    def names(self) -> tuple[str, ...]:
        """All variable names, in model order."""
        return self._names

    @property
    def nodes(self) -> tuple[GraphNode, ...]:
        return tuple(self._node(i) for i in range(len(self._names)))

    @property
    def edges(self) -> tuple[GraphEdge, ...]:
        return tuple(
            GraphEdge(
                source=self._names[link.source],
                target=self._names[link.target],
                kind=link.kind,
                offset=link.offset,
            )
            for link in self._links
        )

    @property
    def max_level(self) -> int:
        """Highest level in the graph, 0 for an empty graph."""
        return max(self._levels, default=0)

    def node(self, name: str) -> GraphNode:
        """Get the view of one node.

        Raises:
            MissingVariableError: If the name is not in the graph.

        """
        try:
            return self._node(self._index[name])
        except KeyError:
            raise MissingVariableError(name) from None

    def dependencies(self, name: str) -> tuple[str, ...]:
        """Get the direct dependencies of a node, empty for unknown names."""
        i = self._index.get(name)
        if i is None:
            return ()
        return tuple(self._names[j] for j in self._dependencies[i])

    def dependents(self, name: str) -> tuple[str, ...]:
        """Get the direct dependents of a node, empty for unknown names."""
        i = self._index.get(name)
        if i is None:
            return ()
        return tuple(self._names[j] for j in self._dependents[i])

    def ancestors(self, name: str) -> frozenset[str]:
        """Get all transitive dependencies of a node, excluding the node itself."""
        return self._reachable(name, self._dependencies)

    def descendants(self, name: str) -> frozenset[str]:
        """Get all transitive dependents of a node, excluding the node itself."""
        return self._reachable(name, self._dependents)

    def topological_order(self) -> list[str]:
        """Return names so that every variable follows what it must wait for.

        Raises:
            CircularDependencyError: If a non-temporal cycle exists.

        """
        try:
            order = topological_sort(self._ordering)
        except CycleError as e:
            raise CircularDependencyError([self._names[i] for i in e.cycle]) from None
        return [self._names[i] for i in order]

    def find_cycles(self) -> list[list[str]]:
        """Collect all non-temporal cycles without raising.

        Each cycle starts and ends with the same variable.
        """
        return [[self._names[i] for i in cycle] for cycle in find_cycles(self._ordering)]

    def is_acyclic(self) -> bool:
        try:
            self.topological_order()
        except CircularDependencyError:
            return False
        return True

    def level(self, name: str) -> int:
        return self._levels[self._index[name]]

    def evaluation_groups(self) -> list[list[str]]:
        """Group names by level, lowest level first."""
        groups: dict[int, list[str]] = {}
        for i, level in enumerate(self._levels):
            groups.setdefault(level, []).append(self._names[i])
        return [groups[level] for level in sorted(groups)]

    def time_dependent_names(self) -> list[str]:
        return [name for name, flag in zip(self._names, self._time_dependent, strict=True) if flag]

    def to_dict(self) -> dict[str, Any]:
        """Convert the graph to plain data for JSON export."""
        return {
            "nodes": [
                {
                    "name": node.name,
                    "dependencies": list(node.dependencies),
                    "dependents": list(node.dependents),
                    "level": node.level,
                    "is_time_dependent": node.is_time_dependent,
                    "dangling": list(node.dangling),
                }
                for node in self.nodes
            ],
            "edges": [
                {"source": e.source, "target": e.target, "kind": str(e.kind), "offset": e.offset}
                for e in self.edges
            ],
        }

    def _node(self, i: int) -> GraphNode:
        return GraphNode(
            name=self._names[i],
            dependencies=tuple(self._names[j] for j in self._dependencies[i]),
            dependents=tuple(self._names[j] for j in self._dependents[i]),
            level=self._levels[i],
            is_time_dependent=self._time_dependent[i],
            dangling=self._dangling[i],
        )

    def _reachable(self, name: str, adjacency: tuple[tuple[int, ...], ...]) -> frozenset[str]:
        start = self._index.get(name)
        if start is None:
            return frozenset()
        visited: set[int] = set()
        stack = list(adjacency[start])
        while stack:
            current = stack.pop()
            if current not in visited and current != start:
                visited.add(current)
                stack.extend(adjacency[current])
        return frozenset(self._names[i] for i in visited)

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        """Check if a variable is in the graph."""
        return name in self._index
