"""Graph algorithms for dependency graph operations.

All functions take a graph as a mapping from each node to the nodes it
depends on. Dependencies that are not keys of the mapping are skipped.
"""

from collections.abc import Collection, Hashable, Iterator, Mapping
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


class CycleError(ValueError):
    """Raised by topological_sort when the graph contains a cycle.

    Attributes:
        cycle: The nodes on the cycle, closed by repeating the first node.

    """

    def __init__(self, cycle: list) -> None:
        self.cycle = cycle
        super().__init__(f"Cycle detected in graph: {' -> '.join(map(str, cycle))}")


def _walk(
    dependencies: Mapping[T, Collection[T]],
) -> Iterator[tuple[T, list[T] | None]]:
    """Depth-first walk yielding nodes in post-order and cycles as found.

    Yields ``(node, None)`` when a node is finished (all of its dependencies
    were finished before it) and ``(node, cycle)`` when an edge leads back to
    a node that is still in progress.
    """
    finished: set[T] = set()
    in_progress: set[T] = set()

    for root in dependencies:
        if root in finished:
            continue
        path: list[T] = [root]
        in_progress.add(root)
        stack: list[Iterator[T]] = [iter(dependencies[root])]

        while stack:
            node = path[-1]
            for dep in stack[-1]:
                if dep not in dependencies or dep in finished:
                    continue
                if dep in in_progress:
                    start = path.index(dep)
                    yield dep, [*path[start:], dep]
                    continue
                path.append(dep)
                in_progress.add(dep)
                stack.append(iter(dependencies[dep]))
                break
            else:
                stack.pop()
                path.pop()
                in_progress.discard(node)
                finished.add(node)
                yield node, None


def topological_sort(dependencies: Mapping[T, Collection[T]]) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Args:
        dependencies: Mapping from node to the nodes it depends on.

    Returns:
        List of nodes in topological order.

    Raises:
        CycleError: If the graph contains a cycle.

    Example:
        >>> # c depends on b, b depends on a
        >>> topological_sort({"a": [], "b": ["a"], "c": ["b"]})
        ['a', 'b', 'c']

    """
    order: list[T] = []
    for node, cycle in _walk(dependencies):
        if cycle is not None:
            raise CycleError(cycle)
        order.append(node)
    return order


def find_cycles(dependencies: Mapping[T, Collection[T]]) -> list[list[T]]:
    """Collect the cycles met by the same walk topological_sort performs.

    The result is empty exactly when topological_sort would succeed.
    """
    return [cycle for _, cycle in _walk(dependencies) if cycle is not None]


def post_order(dependencies: Mapping[T, Collection[T]]) -> list[T]:
    """Return every node in depth-first post-order, ignoring back edges."""
    return [node for node, cycle in _walk(dependencies) if cycle is None]
