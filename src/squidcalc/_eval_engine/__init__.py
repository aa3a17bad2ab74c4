"""Batch evaluation of a task's expressions.

Key types:
- EvaluationResult: Computed arrays, per-expression errors and the order used
- evaluate_expressions: Evaluate expressions of a task context in dependency order
"""

from ._engine import EvaluationResult, evaluate_expressions

__all__ = [
    "EvaluationResult",
    "evaluate_expressions",
]
