"""Dependency graph between named expressions."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from ._algorithms import topological_levels, topological_sort


@dataclass(frozen=True, slots=True)
class DependencyGraph[T]:
    """An immutable directed graph of "depends on" relationships.

    - predecessors[b] = {a} means "b depends on a"
    - successors[a] = {b} means "a is depended on by b"

    Unlike a plain DAG type, the graph may be built with cycles; they are
    reported when an order is requested.

    Attributes:
        _predecessors: Mapping from node to its direct dependencies.
        _successors: Mapping from node to nodes that depend on it.

    """

    _predecessors: dict[T, frozenset[T]] = field(default_factory=dict)
    _successors: dict[T, frozenset[T]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[T, T]], nodes: Iterable[T] = ()) -> DependencyGraph[T]:
        """Build a graph from (dependency, dependent) edges.

        Args:
            edges: Pairs (a, b) meaning "b depends on a".
            nodes: Extra nodes to include even when they have no edges.

        Example:
            >>> graph = DependencyGraph.from_edges([("B", "A")], nodes=["C"])
            >>> graph.predecessors("A")
            frozenset({'B'})

        """
        predecessors: defaultdict[T, set[T]] = defaultdict(set)
        successors: defaultdict[T, set[T]] = defaultdict(set)

        for node in nodes:
            predecessors.setdefault(node, set())
            successors.setdefault(node, set())

        for src, dst in edges:
            predecessors[dst].add(src)
            successors[src].add(dst)
            predecessors.setdefault(src, set())
            successors.setdefault(dst, set())

        return cls(
            _predecessors={k: frozenset(v) for k, v in predecessors.items()},
            _successors={k: frozenset(v) for k, v in successors.items()},
        )

    @property
    def nodes(self) -> frozenset[T]:
        """All nodes in the graph."""
        return frozenset(self._predecessors.keys()) | frozenset(self._successors.keys())

    def predecessors(self, node: T) -> frozenset[T]:
        """Direct dependencies of a node."""
        return self._predecessors.get(node, frozenset())

    def successors(self, node: T) -> frozenset[T]:
        """Nodes that directly depend on a node."""
        return self._successors.get(node, frozenset())

    def ancestors(self, node: T) -> frozenset[T]:
        """All transitive dependencies of a node."""
        visited: set[T] = set()
        stack = list(self.predecessors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.predecessors(current))
        return frozenset(visited)

    def topological_order(self) -> list[T]:
        """Return nodes with every dependency before its dependents.

        Raises:
            CyclicDependencyError: If the graph contains a cycle.

        """
        return topological_sort(self._ordered_successors())

    def levels(self) -> list[list[T]]:
        """Return groups of mutually independent nodes in dependency order.

        Raises:
            CyclicDependencyError: If the graph contains a cycle.

        """
        return topological_levels(self._ordered_successors())

    def subgraph(self, nodes: frozenset[T]) -> DependencyGraph[T]:
        """Create a subgraph keeping only edges whose endpoints are both in ``nodes``."""
        return DependencyGraph(
            _predecessors={n: self._predecessors.get(n, frozenset()) & nodes for n in nodes},
            _successors={n: self._successors.get(n, frozenset()) & nodes for n in nodes},
        )

    def _ordered_successors(self) -> dict[T, list[T]]:
        # Sorted when possible so orders are reproducible across runs.
        def _sorted(items: Iterable[T]) -> list[T]:
            try:
                return sorted(items)  # type: ignore[type-var]
            except TypeError:
                return list(items)

        return {node: _sorted(self._successors.get(node, ())) for node in _sorted(self.nodes)}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node: T) -> bool:
        return node in self._predecessors or node in self._successors
