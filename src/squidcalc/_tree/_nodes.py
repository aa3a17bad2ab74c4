"""Expression tree nodes.

Nodes are immutable once built; editing a formula builds a new tree. Each
node evaluates to a 2-D float array for a list of fractions and a task
context, renders itself as a formula string and as presentation MathML, and
converts to and from its serialization record.
"""

from __future__ import annotations

import html
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Protocol

import numpy as np

from squidcalc._errors import ArityMismatchError, NumericFault, ShapeMismatchError
from squidcalc._fraction import FractionSet
from squidcalc._numeric import capture, zeros
from squidcalc._operations import LEAF_PRECEDENCE, default_catalog
from squidcalc._records import ConstantRecord, NodeRecord, OperationNodeRecord, RootRecord, VariableRecord

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from squidcalc._fraction import Fraction
    from squidcalc._numeric import Array2D
    from squidcalc._operations import OperationCatalog, OperationDescriptor

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class ReferenceResolver(Protocol):
    """The part of a task context a tree needs to evaluate variable references."""

    def resolve(self, name: str, fractions: Sequence[Fraction]) -> Array2D: ...


class EvaluationMode(StrEnum):
    """How an expression root runs its tree over a set of fractions."""

    PER_FRACTION = auto()  # Once per fraction, results stacked one row per fraction
    SUMMARY = auto()  # Once over the whole fraction set


def format_number(value: float) -> str:
    if math.isfinite(value) and float(value).is_integer() and abs(value) < 1e15:  # noqa: PLR2004
        return str(int(value))
    return repr(float(value))


def format_name(name: str) -> str:
    """Render a variable name, quoting it when it is not a plain identifier."""
    if _IDENTIFIER.fullmatch(name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'["{escaped}"]'


class ExpressionNode(ABC):
    """Base class for expression tree nodes."""

    __slots__ = ()

    @property
    def precedence(self) -> int:
        return LEAF_PRECEDENCE

    @abstractmethod
    def evaluate(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:
        """Evaluate this subtree over ``fractions``."""

    @abstractmethod
    def to_formula(self) -> str: ...

    @abstractmethod
    def to_math_ml(self) -> str: ...

    @abstractmethod
    def to_record(self) -> NodeRecord: ...

    def children_nodes(self) -> tuple[ExpressionNode, ...]:
        return ()

    def walk(self) -> Iterator[ExpressionNode]:
        """Iterate over this node and all its descendants, depth-first."""
        yield self
        for child in self.children_nodes():
            yield from child.walk()

    def references(self) -> frozenset[str]:
        """Names referenced by variable nodes anywhere in this subtree."""
        return frozenset(n.name for n in self.walk() if isinstance(n, VariableNode))

    def __str__(self) -> str:
        return self.to_formula()


@dataclass(frozen=True, slots=True)
class ConstantNode(ExpressionNode):
    value: float

    def evaluate(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:  # noqa: ARG002
        return np.array([[self.value]], dtype=np.float64)

    def to_formula(self) -> str:
        return format_number(self.value)

    def to_math_ml(self) -> str:
        return f"<mn>{format_number(self.value)}</mn>"

    def to_record(self) -> ConstantRecord:
        return ConstantRecord(value=self.value)


@dataclass(frozen=True, slots=True)
class VariableNode(ExpressionNode):
    """Reference to a fraction field, a named expression or a task parameter."""

    name: str

    def evaluate(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:
        return context.resolve(self.name, fractions)

    def to_formula(self) -> str:
        return format_name(self.name)

    def to_math_ml(self) -> str:
        return f"<mi>{html.escape(self.name)}</mi>"

    def to_record(self) -> VariableRecord:
        return VariableRecord(name=self.name)


@dataclass(frozen=True, slots=True)
class OperationNode(ExpressionNode):
    """An operation applied to an ordered tuple of child nodes.

    Raises:
        ArityMismatchError: If the number of children differs from the
            operation's argument count.

    """

    operation: OperationDescriptor
    children: tuple[ExpressionNode, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", tuple(self.children))
        if len(self.children) != self.operation.argument_count:
            raise ArityMismatchError(self.operation.name, self.operation.argument_count, len(self.children))

    @property
    def precedence(self) -> int:
        return self.operation.precedence

    def children_nodes(self) -> tuple[ExpressionNode, ...]:
        return self.children

    def evaluate(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:
        outcomes = [capture(lambda c=child: c.evaluate(fractions, context)) for child in self.children]
        return self.operation.apply(outcomes, default_rows=len(fractions))

    def to_formula(self) -> str:
        return self.operation.render_formula(self.children)

    def to_math_ml(self) -> str:
        return self.operation.render_math_ml(self.children)

    def to_record(self) -> OperationNodeRecord:
        return OperationNodeRecord(
            operation=self.operation.name,
            children=[child.to_record() for child in self.children],
        )


@dataclass(frozen=True, slots=True)
class ExpressionRoot(ExpressionNode):
    """Root of an expression tree, carrying how the tree is run.

    Attributes:
        child: The formula's top node.
        mode: Per-fraction or summary evaluation.
        applies_to: Which fractions of the task the expression runs on.

    """

    child: ExpressionNode
    mode: EvaluationMode = EvaluationMode.PER_FRACTION
    applies_to: FractionSet = FractionSet.ALL

    @property
    def precedence(self) -> int:
        return self.child.precedence

    @property
    def is_summary(self) -> bool:
        return self.mode is EvaluationMode.SUMMARY

    def children_nodes(self) -> tuple[ExpressionNode, ...]:
        return (self.child,)

    def evaluate(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:
        if self.is_summary:
            return self._evaluate_child(fractions, context)
        if not fractions:
            return zeros(0, 1)
        return stack_rows([self.evaluate_fraction(f, context) for f in fractions])

    def evaluate_fraction(self, fraction: Fraction, context: ReferenceResolver) -> Array2D:
        """Evaluate the tree for a single fraction, yielding one row."""
        result = self._evaluate_child([fraction], context)
        if result.shape[0] != 1:
            msg = f"Per-fraction result for '{fraction.fraction_id}' has {result.shape[0]} rows, expected 1"
            raise ShapeMismatchError(msg)
        return result

    def _evaluate_child(self, fractions: Sequence[Fraction], context: ReferenceResolver) -> Array2D:
        try:
            return self.child.evaluate(fractions, context)
        except NumericFault as e:
            logger.warning("Numeric fault evaluating '%s' (%s); using 0.0", self.to_formula(), e)
            return zeros(1 if self.is_summary else len(fractions), 1)

    def to_formula(self) -> str:
        return self.child.to_formula()

    def to_math_ml(self) -> str:
        return f'<math xmlns="http://www.w3.org/1998/Math/MathML">{self.child.to_math_ml()}</math>'

    def to_record(self) -> RootRecord:
        return RootRecord(mode=self.mode.value, applies_to=self.applies_to.value, child=self.child.to_record())


def stack_rows(rows: Sequence[Array2D]) -> Array2D:
    """Stack single-row results into one array, one row per fraction."""
    widths = {row.shape[1] for row in rows}
    if len(widths) > 1:
        msg = f"Per-fraction results have different widths: {sorted(widths)}"
        raise ShapeMismatchError(msg)
    return np.vstack(rows)


def constant(value: float) -> ConstantNode:
    return ConstantNode(float(value))


def variable(name: str) -> VariableNode:
    return VariableNode(name)


def operation(name: str, *children: ExpressionNode, catalog: OperationCatalog | None = None) -> OperationNode:
    """Build an operation node by operation name."""
    catalog = catalog or default_catalog()
    return OperationNode(catalog.get(name), children)


def node_from_record(record: NodeRecord, catalog: OperationCatalog | None = None) -> ExpressionNode:
    """Rebuild a node (and its subtree) from its serialization record."""
    catalog = catalog or default_catalog()
    match record:
        case ConstantRecord(value=value):
            return ConstantNode(value)
        case VariableRecord(name=name):
            return VariableNode(name)
        case OperationNodeRecord(operation=name, children=children):
            return OperationNode(catalog.get(name), tuple(node_from_record(c, catalog) for c in children))
        case RootRecord(mode=mode, applies_to=applies_to, child=child):
            return ExpressionRoot(
                child=node_from_record(child, catalog),
                mode=EvaluationMode(mode),
                applies_to=FractionSet(applies_to),
            )
        case _:
            msg = f"Unknown node record: {type(record).__name__}"
            raise TypeError(msg)


def as_root(node: ExpressionNode) -> ExpressionRoot:
    """Wrap a node in a default root unless it already is one."""
    if isinstance(node, ExpressionRoot):
        return node
    return ExpressionRoot(child=node)