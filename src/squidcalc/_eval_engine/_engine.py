"""Core evaluation engine for a task's expressions."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from squidcalc._errors import EvaluationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from squidcalc._context import TaskContext
    from squidcalc._numeric import Array2D

logger = logging.getLogger(__name__)

type _Outcome = tuple[Array2D | None, str | None]


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Result of evaluating the expressions of a task.

    Attributes:
        values: Mapping from expression name to its computed array.
        errors: List of (expression name, error message) for failed expressions,
            including expressions skipped because a dependency failed.
        order: Expression names in the order they were evaluated.

    """

    values: dict[str, Array2D] = field(default_factory=dict)
    errors: list[tuple[str, str]] = field(default_factory=list)
    order: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if evaluation completed without errors."""
        return len(self.errors) == 0

    @property
    def failed(self) -> frozenset[str]:
        return frozenset(name for name, _ in self.errors)

    def get_value(self, name: str) -> Array2D:
        """Get a computed array by expression name.

        Raises:
            KeyError: If the expression has no value (failed or not requested).

        """
        return self.values[name]


def _evaluate_one(context: TaskContext, name: str) -> _Outcome:
    try:
        return context.evaluate(name, check_cycles=False), None
    except EvaluationError as e:
        logger.debug("Evaluation of '%s' failed: %s", name, e)
        return None, str(e)


def evaluate_expressions(
    context: TaskContext,
    names: Iterable[str] | None = None,
    *,
    max_workers: int | None = None,
) -> EvaluationResult:
    """Evaluate expressions of a task context in dependency order.

    The dependency order is computed before anything is evaluated, so a
    cycle leaves the cache untouched. An expression that fails is recorded
    in the result's errors; the expressions depending on it are recorded as
    failed without being evaluated, and the rest of the batch continues.

    Args:
        context: The task context to evaluate.
        names: Expressions to evaluate, with their dependencies. All
            registered expressions when omitted.
        max_workers: Evaluate the independent expressions of each dependency
            level on a thread pool of this size. Each level completes before
            the next one starts.

    Raises:
        CyclicDependencyError: If the requested expressions depend on each other in a cycle.
        ExpressionNotFoundError: If a requested name is not registered.

    """
    shadowed = context.field_names
    names = None if names is None else list(names)
    levels = context.registry.evaluation_levels(names, shadowed=shadowed)
    graph = context.registry.dependency_graph(shadowed)

    values: dict[str, Array2D] = {}
    errors: list[tuple[str, str]] = []
    order: list[str] = []
    failed: set[str] = set()

    logger.debug("Evaluating %d level(s) with max_workers=%s", len(levels), max_workers)

    executor = ThreadPoolExecutor(max_workers=max_workers) if max_workers and max_workers > 1 else None
    try:
        for level in levels:
            runnable: list[str] = []
            for name in level:
                failed_deps = sorted(graph.predecessors(name) & failed)
                if failed_deps:
                    failed.add(name)
                    errors.append((name, f"Dependency failed: {', '.join(failed_deps)}"))
                else:
                    runnable.append(name)

            if executor is None:
                outcomes = [_evaluate_one(context, name) for name in runnable]
            else:
                futures = [executor.submit(_evaluate_one, context, name) for name in runnable]
                outcomes = [future.result() for future in futures]

            for name, (value, error) in zip(runnable, outcomes, strict=True):
                order.append(name)
                if error is not None:
                    failed.add(name)
                    errors.append((name, error))
                else:
                    values[name] = value
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    return EvaluationResult(values=values, errors=errors, order=order)
