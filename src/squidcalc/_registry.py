"""Registry of named expressions and their reference dependencies."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ._errors import DuplicateNameError, ExpressionNotFoundError
from ._graph import DependencyGraph

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator

    from ._expression import Expression

logger = logging.getLogger(__name__)


class ExpressionRegistry:
    """Expressions of a task, keyed by unique name.

    An expression depends on every registered expression its formula names.
    Names listed in ``shadowed`` (the task's fraction fields) resolve to
    field data before expressions, so they never count as dependencies.

    Attributes:
        strict: Reject registering a name that is already taken.
        revision: Incremented on every change to the registered expressions.

    """

    def __init__(self, expressions: Iterable[Expression] = (), *, strict: bool = False) -> None:
        self.strict = strict
        self.revision = 0
        self._expressions: dict[str, Expression] = {}
        for expression in expressions:
            self.register(expression)

    def register(self, expression: Expression, *, strict: bool | None = None) -> None:
        """Insert an expression, replacing any expression of the same name.

        Args:
            expression: The expression to register.
            strict: Override the registry's strict mode for this call.

        Raises:
            DuplicateNameError: In strict mode, if the name is already registered.

        """
        strict = self.strict if strict is None else strict
        if expression.name in self._expressions:
            if strict:
                msg = f"Expression '{expression.name}' is already registered"
                raise DuplicateNameError(msg)
            logger.debug("Replacing expression '%s'", expression.name)
        self._expressions[expression.name] = expression
        self.revision += 1

    def resolve(self, name: str) -> Expression:
        """Get an expression by name.

        Raises:
            ExpressionNotFoundError: If no expression has this name.

        """
        try:
            return self._expressions[name]
        except KeyError:
            raise ExpressionNotFoundError(name) from None

    def get(self, name: str) -> Expression | None:
        return self._expressions.get(name)

    def remove(self, name: str) -> Expression:
        """Remove and return an expression.

        Raises:
            ExpressionNotFoundError: If no expression has this name.

        """
        expression = self.resolve(name)
        del self._expressions[name]
        self.revision += 1
        return expression

    @property
    def names(self) -> list[str]:
        return list(self._expressions)

    def dependency_graph(self, shadowed: Collection[str] = ()) -> DependencyGraph[str]:
        """Build the graph of expression references.

        An edge (a, b) means expression b references expression a.
        """
        edges = [
            (reference, name)
            for name, expression in self._expressions.items()
            for reference in expression.references()
            if reference in self._expressions and reference not in shadowed
        ]
        return DependencyGraph.from_edges(edges, nodes=self._expressions)

    def _requested_graph(self, names: Iterable[str] | None, shadowed: Collection[str]) -> DependencyGraph[str]:
        graph = self.dependency_graph(shadowed)
        if names is None:
            return graph
        needed: set[str] = set()
        for name in names:
            self.resolve(name)
            needed.add(name)
            needed |= graph.ancestors(name)
        return graph.subgraph(frozenset(needed))

    def evaluation_order(self, names: Iterable[str] | None = None, shadowed: Collection[str] = ()) -> list[str]:
        """Order expressions so that every dependency comes first.

        Args:
            names: Expressions to order, with their transitive dependencies.
                All registered expressions when omitted.
            shadowed: Names that resolve to fraction fields.

        Raises:
            ExpressionNotFoundError: If a requested name is not registered.
            CyclicDependencyError: If the expressions reference each other in a cycle.

        """
        return self._requested_graph(names, shadowed).topological_order()

    def evaluation_levels(
        self,
        names: Iterable[str] | None = None,
        shadowed: Collection[str] = (),
    ) -> list[list[str]]:
        """Like :meth:`evaluation_order`, grouped into mutually independent levels."""
        return self._requested_graph(names, shadowed).levels()

    def __contains__(self, name: object) -> bool:
        return name in self._expressions

    def __iter__(self) -> Iterator[Expression]:
        return iter(self._expressions.values())

    def __len__(self) -> int:
        return len(self._expressions)
