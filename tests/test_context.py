"""Tests for the expression registry, task context and result cache."""

import math

import numpy as np
import pytest
from scoped_context import NoContextError

from squidcalc import (
    CyclicDependencyError,
    DuplicateNameError,
    EvaluationMode,
    Expression,
    ExpressionNotFoundError,
    ExpressionRegistry,
    Fraction,
    FractionSet,
    ResultCache,
    TaskContext,
)


def _expr(name: str, formula: str, **kwargs: object) -> Expression:
    return Expression.from_formula(name, formula, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def task() -> TaskContext:
    context = TaskContext(
        fractions=[
            Fraction("std-1", {"r": 0.1, "err": 0.01}, is_reference_material=True),
            Fraction("std-2", {"r": 0.3, "err": 0.01}, is_reference_material=True),
            Fraction("unk-1", {"r": 2.0, "err": 0.5}),
        ],
        parameters={"k": 10.0},
    )
    context.register(_expr("scaled", "r * k"))
    context.register(_expr("doubled", "scaled * 2"))
    context.register(
        _expr("std_mean", "average(r)", mode=EvaluationMode.SUMMARY, applies_to=FractionSet.REFERENCE_MATERIALS),
    )
    context.register(_expr("normalized", "r / std_mean", applies_to=FractionSet.UNKNOWNS))
    return context


class TestRegistry:
    def test_register_and_resolve(self) -> None:
        registry = ExpressionRegistry()
        expression = _expr("a", "1 + 1")
        registry.register(expression)
        assert registry.resolve("a") is expression
        assert "a" in registry
        assert len(registry) == 1

    def test_overwrite_by_default(self) -> None:
        registry = ExpressionRegistry([_expr("a", "1")])
        registry.register(_expr("a", "2"))
        assert registry.resolve("a").source_formula == "2"

    def test_strict_mode_rejects_duplicates(self) -> None:
        registry = ExpressionRegistry([_expr("a", "1")], strict=True)
        with pytest.raises(DuplicateNameError, match="'a'"):
            registry.register(_expr("a", "2"))
        assert registry.resolve("a").source_formula == "1"

    def test_strict_per_call(self) -> None:
        registry = ExpressionRegistry([_expr("a", "1")])
        with pytest.raises(DuplicateNameError):
            registry.register(_expr("a", "2"), strict=True)

    def test_not_found(self) -> None:
        with pytest.raises(ExpressionNotFoundError, match="'missing'"):
            ExpressionRegistry().resolve("missing")

    def test_not_found_is_key_error(self) -> None:
        with pytest.raises(KeyError):
            ExpressionRegistry().remove("missing")

    def test_revision_changes(self) -> None:
        registry = ExpressionRegistry()
        registry.register(_expr("a", "1"))
        revision = registry.revision
        registry.remove("a")
        assert registry.revision > revision

    def test_dependency_before_dependent(self) -> None:
        registry = ExpressionRegistry([_expr("A", "B + 1"), _expr("B", "2")])
        assert registry.evaluation_order() == ["B", "A"]

    def test_order_for_requested_names_includes_dependencies(self) -> None:
        registry = ExpressionRegistry([_expr("A", "B + 1"), _expr("B", "2"), _expr("C", "3")])
        assert registry.evaluation_order(["A"]) == ["B", "A"]

    def test_cycle(self) -> None:
        registry = ExpressionRegistry([_expr("A", "B"), _expr("B", "A"), _expr("C", "1")])
        with pytest.raises(CyclicDependencyError) as exc_info:
            registry.evaluation_order()
        assert exc_info.value.members == ("A", "B")

    def test_shadowed_names_are_not_dependencies(self) -> None:
        registry = ExpressionRegistry([_expr("r", "r * 2")])
        with pytest.raises(CyclicDependencyError):
            registry.evaluation_order()
        assert registry.evaluation_order(shadowed={"r"}) == ["r"]


class TestTaskContextData:
    def test_fraction_subsets(self, task: TaskContext) -> None:
        assert [f.fraction_id for f in task.reference_materials] == ["std-1", "std-2"]
        assert [f.fraction_id for f in task.unknowns] == ["unk-1"]
        assert task.field_names == frozenset({"r", "err"})

    def test_mutations_bump_version(self, task: TaskContext) -> None:
        version = task.version
        task.set_parameter("k", 20.0)
        task.add_fraction(Fraction("unk-2", {"r": 1.0}))
        task.remove_fraction("unk-2")
        task.remove_parameter("k")
        assert task.version == version + 4

    def test_scoped_activation(self, task: TaskContext) -> None:
        with pytest.raises(NoContextError):
            TaskContext.current()
        with task:
            assert TaskContext.current() is task
            np.testing.assert_allclose(task.registry.resolve("scaled").evaluate(), [[1.0], [3.0], [20.0]])


class TestEvaluate:
    def test_ln_of_e(self) -> None:
        task = TaskContext(parameters={"e": math.e})
        task.register(_expr("one", "ln(e)", mode=EvaluationMode.SUMMARY))
        np.testing.assert_allclose(task.evaluate("one"), [[1.0]])

    def test_division_by_zero(self) -> None:
        task = TaskContext(parameters={"num": 5, "den": 0})
        task.register(_expr("ratio", "num / den", mode=EvaluationMode.SUMMARY))
        np.testing.assert_array_equal(task.evaluate("ratio"), [[0.0]])

    def test_per_fraction_expression(self, task: TaskContext) -> None:
        np.testing.assert_allclose(task.evaluate("doubled"), [[2.0], [6.0], [40.0]])

    def test_summary_over_reference_materials(self, task: TaskContext) -> None:
        np.testing.assert_allclose(task.evaluate("std_mean"), [[0.2]])

    def test_per_fraction_uses_summary_reference(self, task: TaskContext) -> None:
        np.testing.assert_allclose(task.evaluate("normalized"), [[10.0]])

    def test_explicit_fractions(self, task: TaskContext) -> None:
        np.testing.assert_allclose(task.evaluate("scaled", task.unknowns), [[20.0]])

    def test_not_found(self, task: TaskContext) -> None:
        with pytest.raises(ExpressionNotFoundError):
            task.evaluate("missing")

    def test_cycle_checked_first(self, task: TaskContext) -> None:
        task.register(_expr("A", "B"))
        task.register(_expr("B", "A"))
        with pytest.raises(CyclicDependencyError):
            task.evaluate("A")
        assert task.cached("A") is None
        assert task.cached("B") is None

    def test_recursive_guard_without_order_check(self, task: TaskContext) -> None:
        task.register(_expr("A", "B + 1"))
        task.register(_expr("B", "A + 1"))
        with pytest.raises(CyclicDependencyError, match="A, B"):
            task.evaluate("A", check_cycles=False)


class TestCache:
    def test_result_is_cached(self, task: TaskContext) -> None:
        result = task.evaluate("scaled")
        assert task.cached("scaled") is result
        assert task.evaluate("scaled") is result

    def test_dependencies_are_cached(self, task: TaskContext) -> None:
        task.evaluate("doubled")
        assert task.cached("scaled") is not None

    def test_parameter_change_invalidates(self, task: TaskContext) -> None:
        task.evaluate("scaled")
        task.set_parameter("k", 100.0)
        assert task.cached("scaled") is None
        np.testing.assert_allclose(task.evaluate("scaled"), [[10.0], [30.0], [200.0]])

    def test_fraction_change_invalidates(self, task: TaskContext) -> None:
        task.evaluate("std_mean")
        task.add_fraction(Fraction("std-3", {"r": 0.5}, is_reference_material=True))
        np.testing.assert_allclose(task.evaluate("std_mean"), [[0.3]])

    def test_reregistering_invalidates(self, task: TaskContext) -> None:
        task.evaluate("scaled")
        task.register(_expr("scaled", "r * k * 2"))
        np.testing.assert_allclose(task.evaluate("doubled"), [[4.0], [12.0], [80.0]])

    def test_cached_unknown_expression(self, task: TaskContext) -> None:
        assert task.cached("missing") is None

    def test_results_are_read_only(self, task: TaskContext) -> None:
        result = task.evaluate("scaled")
        with pytest.raises(ValueError, match="read-only"):
            result[0, 0] = 99.0
        np.testing.assert_allclose(task.evaluate("doubled"), [[2.0], [6.0], [40.0]])

    def test_alias_does_not_share_array(self) -> None:
        task = TaskContext(parameters={"x": 4.0})
        task.register(_expr("B", "x * 2", mode=EvaluationMode.SUMMARY))
        task.register(_expr("A", "B", mode=EvaluationMode.SUMMARY))
        result = task.evaluate_all()
        assert result.values["A"] is not result.values["B"]
        with pytest.raises(ValueError, match="read-only"):
            result.values["A"][0, 0] = 99.0
        np.testing.assert_array_equal(task.evaluate("B"), [[8.0]])

    def test_array_parameter_is_copied(self) -> None:
        values = np.array([[1.0, 2.0]])
        task = TaskContext(parameters={"p": values})
        task.register(_expr("same", "p", mode=EvaluationMode.SUMMARY))
        result = task.evaluate("same")
        assert not np.shares_memory(result, values)
        values[0, 0] = 99.0
        np.testing.assert_array_equal(task.evaluate("same"), [[1.0, 2.0]])
        assert values.flags.writeable


class TestResultCache:
    def test_stale_entry_is_discarded(self) -> None:
        cache = ResultCache()
        key = ("a", ("f1",))
        cache.put(key, 1, np.zeros((1, 1)))
        assert cache.get(key, 1) is not None
        assert cache.get(key, 2) is None
        assert key not in cache

    def test_put_stores_read_only_copy(self) -> None:
        cache = ResultCache()
        value = np.ones((1, 1))
        stored = cache.put(("a", ()), 0, value)
        assert stored is not value
        assert not stored.flags.writeable
        assert value.flags.writeable
        assert cache.get(("a", ()), 0) is stored

    def test_discard_by_name(self) -> None:
        cache = ResultCache()
        cache.put(("a", ("f1",)), 0, np.zeros((1, 1)))
        cache.put(("a", ("f2",)), 0, np.zeros((1, 1)))
        cache.put(("b", ("f1",)), 0, np.zeros((1, 1)))
        assert cache.discard("a") == 2
        assert len(cache) == 1
