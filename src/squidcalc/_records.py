"""Serialization contract exchanged with external marshallers.

Records carry field lists and types only; how they are written (XML, TOML,
JSON) is up to the marshaller. Field names are camelCase on the wire and the
fields of an expression record keep a fixed order:

    name, sourceFormula, isNamedConstantToggle, isReferenceMaterialValue,
    isParameterValue, expressionTree, notes
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ConstantRecord(_Record):
    kind: Literal["constant"] = "constant"
    value: float


class VariableRecord(_Record):
    kind: Literal["variable"] = "variable"
    name: str


class OperationNodeRecord(_Record):
    kind: Literal["operation"] = "operation"
    operation: str
    children: list[NodeRecord] = Field(default_factory=list)


class RootRecord(_Record):
    kind: Literal["root"] = "root"
    mode: Literal["per_fraction", "summary"] = "per_fraction"
    applies_to: Literal["all", "reference_materials", "unknowns"] = "all"
    child: NodeRecord


NodeRecord = Annotated[
    ConstantRecord | VariableRecord | OperationNodeRecord | RootRecord,
    Field(discriminator="kind"),
]

OperationNodeRecord.model_rebuild()
RootRecord.model_rebuild()


class ExpressionRecord(_Record):
    """Persisted form of an Expression.

    ``isReferenceMaterialValue`` and ``isParameterValue`` are absent from data
    written before those flags existed; they default to False.
    """

    name: str
    source_formula: str
    is_named_constant_toggle: bool
    is_reference_material_value: bool = False
    is_parameter_value: bool = False
    expression_tree: NodeRecord
    notes: str = ""


class OperationRecord(_Record):
    """Persisted / displayed form of an operation descriptor.

    ``rowCount`` is None when the output has one row per input row.
    """

    name: str
    argument_count: int
    row_count: int | None
    col_count: int
    labels_for_output_values: list[list[str]]
    labels_for_input_values: list[str]
    definition: str
