"""Tests for DependencyGraph and graph algorithms."""

import pytest

from squidcalc import CyclicDependencyError
from squidcalc._graph import DependencyGraph, topological_levels, topological_sort


class TestTopologicalSort:
    """Tests for the topological_sort algorithm."""

    def test_empty_graph(self) -> None:
        assert topological_sort({}) == []

    def test_single_node(self) -> None:
        assert topological_sort({"a": []}) == ["a"]

    def test_linear_chain(self) -> None:
        # a -> b -> c (c depends on b, b depends on a)
        result = topological_sort({"a": ["b"], "b": ["c"], "c": []})
        assert result == ["a", "b", "c"]

    def test_diamond_dependency(self) -> None:
        result = topological_sort({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})
        assert result[0] == "a"
        assert result[-1] == "d"
        assert result.index("b") < result.index("d")
        assert result.index("c") < result.index("d")

    def test_cycle_detection(self) -> None:
        with pytest.raises(CyclicDependencyError, match="Cycle"):
            topological_sort({"a": ["b"], "b": ["a"]})

    def test_cycle_is_a_value_error(self) -> None:
        with pytest.raises(ValueError, match="Cycle"):
            topological_sort({"a": ["a"]})

    def test_cycle_names_only_its_members(self) -> None:
        # d hangs off the a-b-c cycle but is not part of it
        with pytest.raises(CyclicDependencyError) as exc_info:
            topological_sort({"a": ["b"], "b": ["c"], "c": ["a", "d"], "d": []})
        assert exc_info.value.members == ("a", "b", "c")

    def test_works_with_tuples(self) -> None:
        result = topological_sort({("a", 1): [("b", 2)], ("b", 2): []})
        assert result == [("a", 1), ("b", 2)]


class TestTopologicalLevels:
    def test_independent_nodes_share_a_level(self) -> None:
        levels = topological_levels({"a": ["c"], "b": ["c"], "c": []})
        assert [sorted(level) for level in levels] == [["a", "b"], ["c"]]

    def test_chain_has_one_node_per_level(self) -> None:
        assert topological_levels({"a": ["b"], "b": ["c"], "c": []}) == [["a"], ["b"], ["c"]]

    def test_cycle_raises(self) -> None:
        with pytest.raises(CyclicDependencyError):
            topological_levels({"a": ["b"], "b": ["a"], "c": []})


class TestDependencyGraphConstruction:
    def test_empty_graph(self) -> None:
        graph: DependencyGraph[str] = DependencyGraph.from_edges([])
        assert len(graph) == 0
        assert graph.nodes == frozenset()

    def test_single_edge(self) -> None:
        graph = DependencyGraph.from_edges([("B", "A")])
        assert graph.nodes == frozenset({"A", "B"})
        assert graph.predecessors("A") == frozenset({"B"})
        assert graph.successors("B") == frozenset({"A"})

    def test_isolated_nodes(self) -> None:
        graph = DependencyGraph.from_edges([("B", "A")], nodes=["C"])
        assert "C" in graph
        assert graph.predecessors("C") == frozenset()

    def test_contains(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b")])
        assert "a" in graph
        assert "z" not in graph


class TestDependencyGraphTransitiveQueries:
    def test_ancestors(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c"), ("x", "c")])
        assert graph.ancestors("c") == frozenset({"a", "b", "x"})
        assert graph.ancestors("a") == frozenset()

    def test_ancestors_terminate_on_cycle(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "a")])
        assert graph.ancestors("a") == frozenset({"a", "b"})


class TestDependencyGraphOrder:
    def test_topological_order_respects_dependencies(self) -> None:
        graph = DependencyGraph.from_edges([("b", "a"), ("c", "a"), ("c", "b")])
        order = graph.topological_order()
        assert order.index("c") < order.index("b") < order.index("a")

    def test_order_is_reproducible(self) -> None:
        edges = [("z", "m"), ("a", "m"), ("k", "m")]
        assert DependencyGraph.from_edges(edges).topological_order() == ["a", "k", "z", "m"]

    def test_levels(self) -> None:
        graph = DependencyGraph.from_edges([("a", "c"), ("b", "c")], nodes=["d"])
        assert graph.levels() == [["a", "b", "d"], ["c"]]


class TestDependencyGraphSubgraph:
    def test_subgraph_keeps_internal_edges(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
        sub = graph.subgraph(frozenset({"a", "b"}))
        assert sub.predecessors("b") == frozenset({"a"})
        assert "c" not in sub

    def test_subgraph_removes_external_edges(self) -> None:
        graph = DependencyGraph.from_edges([("a", "b"), ("x", "b")])
        sub = graph.subgraph(frozenset({"a", "b"}))
        assert sub.predecessors("b") == frozenset({"a"})
