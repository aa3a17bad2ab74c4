"""TOML marshalling for task files, expression records and evaluation results.

A task file holds everything a task context needs:

    [parameters]
    lambda238 = 1.55125e-10

    [[fractions]]
    id = "TEM-1.1"
    reference_material = true
    [fractions.values]
    r206_238 = 0.0928

    [[expressions]]
    name = "age"
    formula = "ln(1 + r206_238) / lambda238"
    mode = "per_fraction"          # or "summary"
    applies_to = "all"             # or "reference_materials" / "unknowns"
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ._context import TaskContext
from ._errors import FormulaSyntaxError, SquidCalcError, TaskFileError
from ._expression import Expression
from ._fraction import Fraction, FractionSet
from ._registry import ExpressionRegistry
from ._tree import EvaluationMode

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ._eval_engine import EvaluationResult
    from ._operations import OperationCatalog

logger = logging.getLogger(__name__)


class _FractionEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    reference_material: bool = False
    values: dict[str, float | list[float]] = Field(default_factory=dict)


class _ExpressionEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    formula: str
    mode: EvaluationMode = EvaluationMode.PER_FRACTION
    applies_to: FractionSet = FractionSet.ALL
    is_named_constant: bool = False
    is_reference_material_value: bool = False
    is_parameter_value: bool = False
    notes: str = ""


class _TaskFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    parameters: dict[str, float | list[float]] = Field(default_factory=dict)
    fractions: list[_FractionEntry] = Field(default_factory=list)
    expressions: list[_ExpressionEntry] = Field(default_factory=list)


# =============================================================================
# Task files
# =============================================================================


def toml_to_task(
    toml_contents: Mapping[str, Any],
    catalog: OperationCatalog | None = None,
    *,
    strict: bool = False,
) -> TaskContext:
    """Build a task context from parsed task file contents.

    Raises:
        TaskFileError: If the contents do not describe a valid task, or a
            formula does not parse.

    """
    try:
        task_file = _TaskFile.model_validate(toml_contents)
    except ValidationError as e:
        msg = f"Invalid task file: {e}"
        raise TaskFileError(msg) from e

    fractions = [
        Fraction(entry.id, entry.values, is_reference_material=entry.reference_material)
        for entry in task_file.fractions
    ]
    ids = [f.fraction_id for f in fractions]
    if len(set(ids)) != len(ids):
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        msg = f"Duplicate fraction ids: {', '.join(duplicates)}"
        raise TaskFileError(msg)

    registry = ExpressionRegistry(strict=strict)
    for entry in task_file.expressions:
        try:
            expression = Expression.from_formula(
                entry.name,
                entry.formula,
                mode=entry.mode,
                applies_to=entry.applies_to,
                is_named_constant=entry.is_named_constant,
                is_reference_material_value=entry.is_reference_material_value,
                is_parameter_value=entry.is_parameter_value,
                notes=entry.notes,
                catalog=catalog,
            )
        except FormulaSyntaxError as e:
            msg = f"Expression '{entry.name}': {e}"
            raise TaskFileError(msg) from e
        try:
            registry.register(expression)
        except SquidCalcError as e:
            raise TaskFileError(str(e)) from e

    logger.debug(
        "Loaded task with %d fraction(s), %d parameter(s), %d expression(s)",
        len(fractions),
        len(task_file.parameters),
        len(registry),
    )
    return TaskContext(fractions=fractions, parameters=task_file.parameters, registry=registry)


def load_task_from_toml(
    input_path: Path | str,
    catalog: OperationCatalog | None = None,
    *,
    strict: bool = False,
) -> TaskContext:
    """Load a task context from a TOML task file.

    Raises:
        TaskFileError: If the file is not valid TOML or not a valid task.
        FileNotFoundError: If the file does not exist.

    """
    input_path = Path(input_path)
    with input_path.open("rb") as f:
        try:
            toml_contents = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"{input_path}: {e}"
            raise TaskFileError(msg) from e

    logger.debug("Loaded task file %s", input_path)
    return toml_to_task(toml_contents, catalog, strict=strict)


# =============================================================================
# Expression records
# =============================================================================


def dump_expressions(expressions: Iterable[Expression]) -> str:
    """Serialize expressions as TOML in the record contract shape (camelCase fields)."""
    records = [e.to_record().model_dump(mode="python", by_alias=True) for e in expressions]
    return tomli_w.dumps({"expressions": records})


def load_expressions(text: str, catalog: OperationCatalog | None = None) -> list[Expression]:
    """Rebuild expressions from TOML written by :func:`dump_expressions`.

    Raises:
        pydantic.ValidationError: If a record does not match the contract.

    """
    contents = tomllib.loads(text)
    return [Expression.from_record(record, catalog) for record in contents.get("expressions", [])]


# =============================================================================
# Results
# =============================================================================


def results_to_dict(result: EvaluationResult) -> dict[str, Any]:
    """Convert an evaluation result to a dictionary suitable for TOML export.

    Returns:
        A dictionary with the structure:
        {
            "values": {"name": [[row0...], [row1...]]},
            "errors": {"name": "message"},
        }

    """
    toml_data: dict[str, Any] = {
        "values": {name: result.values[name].tolist() for name in result.order if name in result.values},
    }
    if result.errors:
        toml_data["errors"] = dict(result.errors)
    return toml_data


def export_results_to_toml(result: EvaluationResult, output_path: Path | str) -> None:
    """Export an evaluation result to a TOML file."""
    toml_data = results_to_dict(result)

    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump(toml_data, f)

    logger.debug("Exported results to %s", output_path)
