"""Named expressions: a source formula, its parsed tree and display flags."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._fraction import FractionSet
from ._parser import parse_formula
from ._records import ExpressionRecord
from ._tree import EvaluationMode, ExpressionRoot, as_root, node_from_record

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ._context import TaskContext
    from ._fraction import Fraction
    from ._numeric import Array2D
    from ._operations import OperationCatalog


@dataclass(frozen=True, slots=True)
class Expression:
    """A named formula evaluated by a task context.

    Expressions are immutable: editing one builds a new expression, which is
    then registered again under the same name.

    Attributes:
        name: Unique name within a registry; other formulas refer to it by name.
        source_formula: The formula as the user wrote it.
        tree: The parsed formula, rooted in an ExpressionRoot.
        is_named_constant: Whether the expression is a named constant.
        is_reference_material_value: Whether the value is reported for reference materials.
        is_parameter_value: Whether the value is a task parameter.
        notes: Free text.

    """

    name: str
    source_formula: str
    tree: ExpressionRoot
    is_named_constant: bool = False
    is_reference_material_value: bool = False
    is_parameter_value: bool = False
    notes: str = ""

    @classmethod
    def from_formula(  # noqa: PLR0913
        cls,
        name: str,
        formula: str,
        *,
        mode: EvaluationMode = EvaluationMode.PER_FRACTION,
        applies_to: FractionSet = FractionSet.ALL,
        is_named_constant: bool = False,
        is_reference_material_value: bool = False,
        is_parameter_value: bool = False,
        notes: str = "",
        catalog: OperationCatalog | None = None,
    ) -> Expression:
        """Parse ``formula`` and build an expression from it.

        Raises:
            FormulaSyntaxError: If the formula cannot be parsed.

        """
        tree = ExpressionRoot(
            child=parse_formula(formula, catalog),
            mode=EvaluationMode(mode),
            applies_to=FractionSet(applies_to),
        )
        return cls(
            name=name,
            source_formula=formula,
            tree=tree,
            is_named_constant=is_named_constant,
            is_reference_material_value=is_reference_material_value,
            is_parameter_value=is_parameter_value,
            notes=notes,
        )

    @property
    def mode(self) -> EvaluationMode:
        return self.tree.mode

    @property
    def applies_to(self) -> FractionSet:
        return self.tree.applies_to

    @property
    def is_summary(self) -> bool:
        return self.tree.is_summary

    def references(self) -> frozenset[str]:
        return self.tree.references()

    def with_formula(self, formula: str, catalog: OperationCatalog | None = None) -> Expression:
        """Return a copy with a new formula, keeping mode, target set and flags."""
        tree = dataclasses.replace(self.tree, child=parse_formula(formula, catalog))
        return dataclasses.replace(self, source_formula=formula, tree=tree)

    def with_notes(self, notes: str) -> Expression:
        return dataclasses.replace(self, notes=notes)

    def evaluate(self, fractions: Sequence[Fraction] | None = None, context: TaskContext | None = None) -> Array2D:
        """Evaluate the tree directly, without the context's cache.

        Uses the active task context when ``context`` is omitted and the
        context's target fractions when ``fractions`` is omitted.

        Raises:
            NoContextError: If no context is given and none is active.

        """
        if context is None:
            from ._context import TaskContext  # noqa: PLC0415

            context = TaskContext.current()
        if fractions is None:
            fractions = context.fractions_for(self.applies_to)
        return self.tree.evaluate(fractions, context)

    def to_record(self) -> ExpressionRecord:
        return ExpressionRecord(
            name=self.name,
            source_formula=self.source_formula,
            is_named_constant_toggle=self.is_named_constant,
            is_reference_material_value=self.is_reference_material_value,
            is_parameter_value=self.is_parameter_value,
            expression_tree=self.tree.to_record(),
            notes=self.notes,
        )

    @classmethod
    def from_record(
        cls,
        record: ExpressionRecord | Mapping[str, Any],
        catalog: OperationCatalog | None = None,
    ) -> Expression:
        """Rebuild an expression from its record or the record's mapping form.

        Raises:
            pydantic.ValidationError: If a mapping does not match the record contract.

        """
        if isinstance(record, Mapping):
            record = ExpressionRecord.model_validate(record)
        return cls(
            name=record.name,
            source_formula=record.source_formula,
            tree=as_root(node_from_record(record.expression_tree, catalog)),
            is_named_constant=record.is_named_constant_toggle,
            is_reference_material_value=record.is_reference_material_value,
            is_parameter_value=record.is_parameter_value,
            notes=record.notes,
        )
