"""Exception hierarchy for squidcalc.

Structural and lookup errors (unresolved references, cycles, arity) propagate to
the caller. Numeric faults are captured inside operations and converted to
sentinel values, so they only escape when raised outside any operation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class SquidCalcError(Exception):
    """Base class for all squidcalc errors."""


class EvaluationError(SquidCalcError):
    """Evaluation of an expression tree failed for a structural reason."""


class UnresolvedReferenceError(EvaluationError):
    """A variable reference names no binding in the active task context."""

    def __init__(self, name: str) -> None:
        self.name = name
        msg = (
            f"Unresolved reference '{name}': not a fraction field, "
            "named expression or parameter of the task"
        )
        super().__init__(msg)


class ShapeMismatchError(EvaluationError):
    """Operand arrays cannot be broadcast against each other."""


class NumericFault(SquidCalcError):  # noqa: N818
    """A numeric computation could not produce a value (domain error, bad data)."""


class ArityMismatchError(SquidCalcError, ValueError):
    """An operation node was built with the wrong number of children."""

    def __init__(self, operation: str, expected: int, actual: int) -> None:
        self.operation = operation
        self.expected = expected
        self.actual = actual
        msg = f"Operation '{operation}' takes {expected} argument(s), got {actual}"
        super().__init__(msg)


class CyclicDependencyError(SquidCalcError, ValueError):
    """Expressions reference each other in a cycle."""

    def __init__(self, members: Iterable[object]) -> None:
        self.members = tuple(sorted(str(m) for m in members))
        msg = f"Cycle detected between expressions: {', '.join(self.members)}"
        super().__init__(msg)


class DuplicateNameError(SquidCalcError):
    """An expression with the same name is already registered (strict mode)."""


class ExpressionNotFoundError(SquidCalcError, KeyError):
    """No expression with the requested name is registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Expression '{name}' is not registered")

    def __str__(self) -> str:
        return str(self.args[0])


class FormulaSyntaxError(SquidCalcError, ValueError):
    """A source formula could not be parsed."""

    def __init__(self, message: str, position: int) -> None:
        self.position = position
        super().__init__(f"{message} at position {position}")


class TaskFileError(SquidCalcError):
    """A task file is malformed."""


class UnknownOperationError(SquidCalcError, KeyError):
    """No operation with the requested name is in the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown operation: {name}")

    def __str__(self) -> str:
        return str(self.args[0])
