"""Task context: the data, parameters and expressions one evaluation runs against.

One task context is active at a time per thread (``with task: ...``); tree
evaluation receives it explicitly, so worker threads never rely on the
active context.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING

import numpy as np
from scoped_context import ScopedContext

from ._cache import ResultCache
from ._errors import CyclicDependencyError, NumericFault, UnresolvedReferenceError
from ._fraction import FractionSet, fraction_key, select
from ._numeric import as_array2d
from ._registry import ExpressionRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from ._eval_engine import EvaluationResult
    from ._expression import Expression
    from ._fraction import Fraction
    from ._numeric import Array2D, RawValue

logger = logging.getLogger(__name__)

# Names of the expressions being evaluated by the current thread, outermost first.
_evaluating_var: ContextVar[tuple[str, ...]] = ContextVar("evaluating", default=())


class TaskContext(ScopedContext):
    """Fractions, global parameters and registered expressions of one task.

    Every data mutation increments ``version``; cached results are tagged
    with the version and the registry revision they were computed under and
    are not returned once either has moved on.

    Example:
        >>> task = TaskContext(parameters={"num": 5, "den": 0})
        >>> task.register(Expression.from_formula("r", "num / den", mode=EvaluationMode.SUMMARY))
        >>> task.evaluate("r")
        array([[0.]])

    """

    def __init__(
        self,
        fractions: Iterable[Fraction] = (),
        parameters: Mapping[str, RawValue] | None = None,
        registry: ExpressionRegistry | None = None,
    ) -> None:
        self.registry = registry if registry is not None else ExpressionRegistry()
        self.version = 0
        self._fractions: dict[str, Fraction] = {f.fraction_id: f for f in fractions}
        self._parameters: dict[str, RawValue] = dict(parameters or {})
        self._cache = ResultCache()
        self._field_names: tuple[int, frozenset[str]] | None = None

    def __repr__(self) -> str:
        return (
            f"TaskContext(fractions={len(self._fractions)}, parameters={len(self._parameters)}, "
            f"expressions={len(self.registry)}, version={self.version})"
        )

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    def _bump(self) -> None:
        self.version += 1

    @property
    def fractions(self) -> list[Fraction]:
        return list(self._fractions.values())

    @property
    def parameters(self) -> dict[str, RawValue]:
        return dict(self._parameters)

    @property
    def reference_materials(self) -> list[Fraction]:
        return self.fractions_for(FractionSet.REFERENCE_MATERIALS)

    @property
    def unknowns(self) -> list[Fraction]:
        return self.fractions_for(FractionSet.UNKNOWNS)

    def fractions_for(self, fraction_set: FractionSet) -> list[Fraction]:
        return select(self.fractions, fraction_set)

    @property
    def field_names(self) -> frozenset[str]:
        """Names of the fields measured on at least one fraction."""
        cached = self._field_names
        if cached is not None and cached[0] == self.version:
            return cached[1]
        names = frozenset(name for f in self._fractions.values() for name in f.values)
        self._field_names = (self.version, names)
        return names

    def set_fractions(self, fractions: Iterable[Fraction]) -> None:
        self._fractions = {f.fraction_id: f for f in fractions}
        self._bump()

    def add_fraction(self, fraction: Fraction) -> None:
        """Add a fraction, replacing any fraction with the same id."""
        self._fractions[fraction.fraction_id] = fraction
        self._bump()

    def remove_fraction(self, fraction_id: str) -> Fraction:
        fraction = self._fractions.pop(fraction_id)
        self._bump()
        return fraction

    def set_parameter(self, name: str, value: RawValue) -> None:
        self._parameters[name] = value
        self._bump()

    def remove_parameter(self, name: str) -> None:
        del self._parameters[name]
        self._bump()

    def register(self, expression: Expression, *, strict: bool | None = None) -> None:
        """Register an expression with this task's registry."""
        self.registry.register(expression, strict=strict)

    # -------------------------------------------------------------------------
    # Reference resolution
    # -------------------------------------------------------------------------

    def resolve(self, name: str, fractions: Sequence[Fraction]) -> Array2D:
        """Resolve a variable reference for ``fractions``.

        A name is looked up as a fraction field, then as a registered
        expression, then as a global parameter.

        Raises:
            UnresolvedReferenceError: If the name matches none of them.
            NumericFault: If field or parameter data is not numeric.

        """
        if name in self.field_names:
            return self._field_values(name, fractions)
        expression = self.registry.get(name)
        if expression is not None:
            return self._reference(expression, fractions)
        if name in self._parameters:
            return as_array2d(self._parameters[name]).copy()
        raise UnresolvedReferenceError(name)

    def _reference(self, expression: Expression, fractions: Sequence[Fraction]) -> Array2D:
        """Value of a referenced expression for the caller's fractions.

        Summary expressions always run over their own target set. Per-fraction
        expressions are evaluated once over their target set and the caller's
        rows picked from that result, unless the caller asks for fractions
        outside the target set.
        """
        if expression.is_summary:
            return self._evaluate(expression, None)
        targets = self.fractions_for(expression.applies_to)
        rows = {f.fraction_id: i for i, f in enumerate(targets)}
        if any(f.fraction_id not in rows for f in fractions):
            return self._evaluate(expression, fractions)
        result = self._evaluate(expression, targets)
        return result[[rows[f.fraction_id] for f in fractions]]

    def _field_values(self, name: str, fractions: Sequence[Fraction]) -> Array2D:
        rows: list[Array2D | None] = []
        for fraction in fractions:
            if not fraction.has(name):
                rows.append(None)
                continue
            row = as_array2d(fraction.values[name])
            if row.shape[0] != 1:
                msg = f"Field '{name}' of fraction '{fraction.fraction_id}' is not a scalar or a flat sequence"
                raise NumericFault(msg)
            rows.append(row)

        widths = {row.shape[1] for row in rows if row is not None}
        if len(widths) > 1:
            msg = f"Field '{name}' has per-scan sequences of different lengths: {sorted(widths)}"
            raise NumericFault(msg)
        width = widths.pop() if widths else 1
        if not rows:
            return np.empty((0, width), dtype=np.float64)
        return np.vstack([np.full((1, width), np.nan) if row is None else row for row in rows])

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _tag(self) -> tuple[int, int]:
        return (self.version, self.registry.revision)

    def _evaluate(self, expression: Expression, fractions: Sequence[Fraction] | None) -> Array2D:
        if fractions is None:
            fractions = self.fractions_for(expression.applies_to)
        key = (expression.name, fraction_key(fractions))
        tag = self._tag()
        cached = self._cache.get(key, tag)
        if cached is not None:
            return cached

        stack = _evaluating_var.get()
        if expression.name in stack:
            raise CyclicDependencyError(stack[stack.index(expression.name) :])
        token = _evaluating_var.set((*stack, expression.name))
        try:
            logger.debug("Evaluating '%s' over %d fraction(s)", expression.name, len(fractions))
            result = expression.tree.evaluate(fractions, self)
        finally:
            _evaluating_var.reset(token)

        return self._cache.put(key, tag, result)

    def evaluate(
        self,
        name: str,
        fractions: Sequence[Fraction] | None = None,
        *,
        check_cycles: bool = True,
    ) -> Array2D:
        """Evaluate a registered expression, using and filling the cache.

        Args:
            name: The expression to evaluate.
            fractions: Fractions to evaluate over. Defaults to the fractions
                the expression applies to.
            check_cycles: Check the expression's dependencies for cycles first.

        Raises:
            ExpressionNotFoundError: If the expression is not registered.
            CyclicDependencyError: If the expression depends on itself.
            UnresolvedReferenceError: If the formula names an unknown binding.

        """
        expression = self.registry.resolve(name)
        if check_cycles:
            self.registry.evaluation_order([name], shadowed=self.field_names)
        return self._evaluate(expression, fractions)

    def evaluate_all(self, names: Iterable[str] | None = None, *, max_workers: int | None = None) -> EvaluationResult:
        """Evaluate expressions in dependency order.

        See :func:`squidcalc.evaluate_expressions`.
        """
        from ._eval_engine import evaluate_expressions  # noqa: PLC0415

        return evaluate_expressions(self, names, max_workers=max_workers)

    def cached(self, name: str, fractions: Sequence[Fraction] | None = None) -> Array2D | None:
        """Return the cached result of an expression, or None if absent or stale."""
        if fractions is None:
            expression = self.registry.get(name)
            if expression is None:
                return None
            fractions = self.fractions_for(expression.applies_to)
        return self._cache.get((name, fraction_key(fractions)), self._tag())

    def clear_cache(self) -> None:
        self._cache.clear()

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (
            name in self.field_names or name in self.registry or name in self._parameters
        )
