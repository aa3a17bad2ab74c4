"""Operation descriptors: self-describing, stateless units of computation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Protocol

import numpy as np

from squidcalc._errors import NumericFault
from squidcalc._numeric import Fault, broadcast_rows, zeros

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from squidcalc._numeric import Array2D, Outcome
    from squidcalc._records import OperationRecord

logger = logging.getLogger(__name__)

LEAF_PRECEDENCE = 100


class Notation(StrEnum):
    """How an operation is written in a formula."""

    INFIX = auto()  # a + b
    FUNCTION = auto()  # ln(a)


class RowRule(StrEnum):
    """How many rows an operation produces."""

    PER_ROW = auto()  # Rows of the broadcast inputs (one per fraction in batch mode)
    SUMMARY = auto()  # A single row summarizing all input rows


class OperationCategory(StrEnum):
    ARITHMETIC = auto()
    COMPARISON = auto()
    FUNCTION = auto()
    LOGIC = auto()
    AGGREGATE = auto()
    LOOKUP = auto()


class Renderable(Protocol):
    """What a descriptor needs from a child node to render it."""

    @property
    def precedence(self) -> int: ...

    def to_formula(self) -> str: ...

    def to_math_ml(self) -> str: ...


type EvaluationRule = Callable[[Sequence[Array2D]], Array2D]


@dataclass(frozen=True, slots=True)
class OperationDescriptor:
    """Immutable metadata and evaluation rule of one operation.

    Attributes:
        name: Operation name, also the function name in formulas.
        argument_count: Number of children an operation node must have.
        precedence: Display precedence; higher binds tighter.
        rule: Pure function from the children's arrays to the result array.
        definition: One-line human readable definition.
        category: Grouping used for documentation.
        notation: Infix operator or function call.
        symbol: Infix symbol (``+``, ``<=``); the name is used when None.
        math_ml_symbol: Symbol used in presentation markup; defaults to ``symbol``.
        row_rule: Whether the output keeps the input rows or summarizes them.
        col_count: Declared number of output columns.
        labels_for_output_values: Labels of the output values, one tuple per row.
        labels_for_input_values: Labels of the inputs, one per argument.

    """

    name: str
    argument_count: int
    precedence: int
    rule: EvaluationRule = field(repr=False, compare=False)
    definition: str
    category: OperationCategory
    notation: Notation = Notation.FUNCTION
    symbol: str | None = None
    math_ml_symbol: str | None = None
    row_rule: RowRule = RowRule.PER_ROW
    col_count: int = 1
    labels_for_output_values: tuple[tuple[str, ...], ...] = ()
    labels_for_input_values: tuple[str, ...] = ()

    @property
    def row_count(self) -> int | None:
        """Declared row count; None when the rows follow the inputs."""
        return 1 if self.row_rule is RowRule.SUMMARY else None

    @property
    def display_symbol(self) -> str:
        return self.symbol or self.name

    def apply(self, outcomes: Sequence[Outcome], default_rows: int = 1) -> Array2D:
        """Evaluate the operation over its children's outcomes.

        A faulted child, or a numeric fault raised by the rule, yields a zero
        array of the declared shape; faults never leave this method.

        Args:
            outcomes: Child arrays, or ``Fault`` markers for children whose
                evaluation raised a numeric fault.
            default_rows: Row count of the sentinel when no input fixes it
                (the number of fractions being evaluated).

        """
        arrays = [o for o in outcomes if not isinstance(o, Fault)]
        if len(arrays) != len(outcomes):
            reasons = "; ".join(o.reason for o in outcomes if isinstance(o, Fault))
            logger.warning("Operation '%s' received a faulted argument (%s); using 0.0", self.name, reasons)
            return self.sentinel(arrays, default_rows)

        try:
            with np.errstate(all="ignore"):
                return self.rule(arrays)
        except NumericFault as e:
            logger.warning("Operation '%s' failed (%s); using 0.0", self.name, e)
            return self.sentinel(arrays, default_rows)

    def sentinel(self, arrays: Sequence[Array2D], default_rows: int = 1) -> Array2D:
        """Zero array shaped like this operation's output."""
        if self.row_rule is RowRule.SUMMARY:
            return zeros(1, self.col_count)
        rows = broadcast_rows(arrays, default_rows)
        cols = max((a.shape[1] for a in arrays), default=self.col_count)
        return zeros(rows, cols)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _needs_parentheses(self, child: Renderable) -> bool:
        return child.precedence < self.precedence

    def render_formula(self, children: Sequence[Renderable]) -> str:
        """Render the operation applied to ``children`` as a formula string."""
        if self.notation is Notation.INFIX:
            left, right = (
                f"({c.to_formula()})" if self._needs_parentheses(c) else c.to_formula() for c in children
            )
            return f"{left} {self.display_symbol} {right}"
        args = ", ".join(c.to_formula() for c in children)
        return f"{self.name}({args})"

    def render_math_ml(self, children: Sequence[Renderable]) -> str:
        """Render the operation applied to ``children`` as presentation MathML."""
        if self.notation is Notation.INFIX:
            left, right = (
                f"<mfenced>{c.to_math_ml()}</mfenced>" if self._needs_parentheses(c) else c.to_math_ml()
                for c in children
            )
            if self.name == "divide":
                return f"<mfrac>{children[0].to_math_ml()}{children[1].to_math_ml()}</mfrac>"
            if self.name == "pow":
                return f"<msup>{left}{children[1].to_math_ml()}</msup>"
            symbol = self.math_ml_symbol or self.display_symbol
            return f"<mrow>{left}<mo>{symbol}</mo>{right}</mrow>"
        args = "".join(c.to_math_ml() for c in children)
        return f"<mrow><mi>{self.name}</mi><mfenced>{args}</mfenced></mrow>"

    def to_record(self) -> OperationRecord:
        """Describe this operation for persistence or display."""
        from squidcalc._records import OperationRecord  # noqa: PLC0415

        return OperationRecord(
            name=self.name,
            argument_count=self.argument_count,
            row_count=self.row_count,
            col_count=self.col_count,
            labels_for_output_values=[list(row) for row in self.labels_for_output_values],
            labels_for_input_values=list(self.labels_for_input_values),
            definition=self.definition,
        )
