"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph: The formula-induced graph of a model, stored as an index arena
- topological_sort / find_cycles: Depth-first algorithms over any dependency mapping
"""

from ._algorithms import CycleError, find_cycles, topological_sort
from ._dependency_graph import DependencyGraph, DependencyKind, GraphEdge, GraphNode

__all__ = [
    "CycleError",
    "DependencyGraph",
    "DependencyKind",
    "GraphEdge",
    "GraphNode",
    "find_cycles",
    "topological_sort",
]
