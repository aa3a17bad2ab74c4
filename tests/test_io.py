"""Tests for TOML task files, expression records and result export."""

import tomllib
from pathlib import Path

import numpy as np
import pytest

from squidcalc import (
    EvaluationMode,
    EvaluationResult,
    Expression,
    FractionSet,
    TaskFileError,
    dump_expressions,
    export_results_to_toml,
    load_expressions,
    load_task_from_toml,
    results_to_dict,
)

TASK_TOML = """
[parameters]
k = 2.0

[[fractions]]
id = "std-1"
reference_material = true
[fractions.values]
r = 0.5
scans = [1.0, 2.0, 3.0]

[[fractions]]
id = "unk-1"
[fractions.values]
r = 1.5
scans = [4.0, 5.0, 6.0]

[[expressions]]
name = "scaled"
formula = "r * k"

[[expressions]]
name = "std_total"
formula = "sum(scans)"
mode = "summary"
applies_to = "reference_materials"
notes = "total of standard scans"
"""


@pytest.fixture
def task_path(tmp_path: Path) -> Path:
    path = tmp_path / "task.toml"
    path.write_text(TASK_TOML)
    return path


class TestLoadTask:
    def test_contents(self, task_path: Path) -> None:
        task = load_task_from_toml(task_path)

        assert [f.fraction_id for f in task.fractions] == ["std-1", "unk-1"]
        assert [f.fraction_id for f in task.reference_materials] == ["std-1"]
        assert task.parameters == {"k": 2.0}
        assert task.registry.names() == ["scaled", "std_total"]

        std_total = task.registry.resolve("std_total")
        assert std_total.mode is EvaluationMode.SUMMARY
        assert std_total.applies_to is FractionSet.REFERENCE_MATERIALS
        assert std_total.notes == "total of standard scans"

    def test_evaluates(self, task_path: Path) -> None:
        task = load_task_from_toml(task_path)

        np.testing.assert_allclose(task.evaluate("scaled"), [[1.0], [3.0]])
        np.testing.assert_allclose(task.evaluate("std_total"), [[6.0]])

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_task_from_toml(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text("[[fractions]\n")

        with pytest.raises(TaskFileError, match="task.toml"):
            load_task_from_toml(path)

    def test_unknown_key(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text('[[expressions]]\nname = "a"\nformula = "1"\ncolour = "red"\n')

        with pytest.raises(TaskFileError, match="Invalid task file"):
            load_task_from_toml(path)

    def test_invalid_mode(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text('[[expressions]]\nname = "a"\nformula = "1"\nmode = "sometimes"\n')

        with pytest.raises(TaskFileError, match="Invalid task file"):
            load_task_from_toml(path)

    def test_duplicate_fraction_ids(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text('[[fractions]]\nid = "a"\n\n[[fractions]]\nid = "a"\n')

        with pytest.raises(TaskFileError, match="Duplicate fraction ids: a"):
            load_task_from_toml(path)

    def test_formula_syntax_error(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text('[[expressions]]\nname = "bad"\nformula = "ln("\n')

        with pytest.raises(TaskFileError, match="Expression 'bad'"):
            load_task_from_toml(path)

    def test_duplicate_expression_in_strict_mode(self, tmp_path: Path) -> None:
        path = tmp_path / "task.toml"
        path.write_text('[[expressions]]\nname = "a"\nformula = "1"\n\n[[expressions]]\nname = "a"\nformula = "2"\n')

        assert load_task_from_toml(path).registry.resolve("a").source_formula == "2"
        with pytest.raises(TaskFileError, match="already registered"):
            load_task_from_toml(path, strict=True)


class TestExpressionRecords:
    def test_dump_uses_record_field_names(self) -> None:
        text = dump_expressions([Expression.from_formula("ratio", "a / b")])
        record = tomllib.loads(text)["expressions"][0]

        assert record["name"] == "ratio"
        assert record["sourceFormula"] == "a / b"
        assert record["isNamedConstantToggle"] is False
        assert record["expressionTree"]["kind"] == "root"

    def test_dump_then_load(self) -> None:
        expressions = [
            Expression.from_formula("ratio", "a / b", notes="simple"),
            Expression.from_formula(
                "std_mean",
                "average(ratio)",
                mode=EvaluationMode.SUMMARY,
                applies_to=FractionSet.REFERENCE_MATERIALS,
                is_reference_material_value=True,
            ),
        ]

        assert load_expressions(dump_expressions(expressions)) == expressions

    def test_load_empty(self) -> None:
        assert load_expressions("") == []


class TestResults:
    def test_results_to_dict(self) -> None:
        result = EvaluationResult(
            values={"b": np.array([[1.0, 2.0]]), "a": np.array([[3.0], [4.0]])},
            order=["a", "b"],
        )

        data = results_to_dict(result)

        assert list(data["values"]) == ["a", "b"]
        assert data["values"]["a"] == [[3.0], [4.0]]
        assert "errors" not in data

    def test_errors_included(self) -> None:
        result = EvaluationResult(errors=[("a", "boom")], order=["a"])

        data = results_to_dict(result)

        assert data == {"values": {}, "errors": {"a": "boom"}}

    def test_export(self, task_path: Path, tmp_path: Path) -> None:
        result = load_task_from_toml(task_path).evaluate_all()
        output = tmp_path / "results.toml"

        export_results_to_toml(result, output)

        with output.open("rb") as f:
            data = tomllib.load(f)
        assert data["values"]["scaled"] == [[1.0], [3.0]]
        assert data["values"]["std_total"] == [[6.0]]
