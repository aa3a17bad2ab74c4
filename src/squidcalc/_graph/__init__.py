"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: An immutable directed graph of dependencies
- topological_sort / topological_levels: Ordering with cycle detection
"""

from ._algorithms import topological_levels, topological_sort
from ._dependency_graph import DependencyGraph

__all__ = ["DependencyGraph", "topological_levels", "topological_sort"]
