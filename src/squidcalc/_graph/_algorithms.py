"""Graph algorithms for expression dependency ordering."""

from collections import defaultdict, deque
from collections.abc import Collection, Hashable, Mapping

from squidcalc._errors import CyclicDependencyError


def _indegrees[T: Hashable](successors: Mapping[T, Collection[T]]) -> defaultdict[T, int]:
    indegree: defaultdict[T, int] = defaultdict(int)
    for node, deps in successors.items():
        indegree[node] = indegree.get(node, 0)
        for dep in deps:
            indegree[dep] += 1
    return indegree


def _cycle_members[T: Hashable](successors: Mapping[T, Collection[T]], remaining: set[T]) -> set[T]:
    """Strip nodes that merely hang off a cycle, leaving the nodes that form it."""
    members = set(remaining)
    changed = True
    while changed:
        changed = False
        for node in list(members):
            if not any(s in members for s in successors.get(node, ())):
                members.discard(node)
                changed = True
    return members or remaining


def topological_sort[T: Hashable](successors: Mapping[T, Collection[T]]) -> list[T]:
    """Sort a graph topologically (dependencies before dependents).

    Args:
        successors: Mapping from node to collection of nodes that depend on it.
            An edge (a -> b) means "b depends on a".

    Returns:
        List of nodes in topological order.

    Raises:
        CyclicDependencyError: If the graph contains a cycle. No partial order
            is returned.

    Example:
        >>> topological_sort({"a": ["b"], "b": ["c"], "c": []})
        ['a', 'b', 'c']

    """
    indegree = _indegrees(successors)

    queue = deque([node for node, deg in indegree.items() if deg == 0])
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in successors.get(node, []):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    if len(order) != len(indegree):
        remaining = set(indegree) - set(order)
        raise CyclicDependencyError(_cycle_members(successors, remaining))

    return order


def topological_levels[T: Hashable](successors: Mapping[T, Collection[T]]) -> list[list[T]]:
    """Group nodes into levels whose members depend only on earlier levels.

    Nodes within one level are independent of each other and may be evaluated
    concurrently; each level must complete before the next one starts.

    Raises:
        CyclicDependencyError: If the graph contains a cycle.

    """
    indegree = _indegrees(successors)
    level = [node for node, deg in indegree.items() if deg == 0]
    levels: list[list[T]] = []
    seen = 0

    while level:
        levels.append(level)
        seen += len(level)
        next_level: list[T] = []
        for node in level:
            for successor in successors.get(node, []):
                indegree[successor] -= 1
                if indegree[successor] == 0:
                    next_level.append(successor)
        level = next_level

    if seen != len(indegree):
        ordered = {node for lvl in levels for node in lvl}
        raise CyclicDependencyError(_cycle_members(successors, set(indegree) - ordered))

    return levels
