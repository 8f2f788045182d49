"""Graph utilities shared by property ordering and node validation.

This module contains:
- topological_sort: Kahn's algorithm over a mapping of node to out-edges
- CycleError: Raised when no topological order exists
- DependencyGraph[T]: A generic, immutable "depends on" graph with queries
"""

from ._algorithms import CycleError, topological_sort
from ._dependency_graph import DependencyGraph

__all__ = ["CycleError", "DependencyGraph", "topological_sort"]
