"""Built-in operations of the expression engine.

This module registers all built-in operations with an OperationCatalog.

Categories:
- Arithmetic: + - * / ^
- Comparison: < <= > >= = <>
- Function: ln, log, exp, sqrt, abs, max, min
- Logic: if
- Aggregate: sum, average, stdev, count, wtdMean
- Lookup: lookup

Numeric edge cases never raise: division by zero and NaN quotients give 0.0,
logarithms and square roots outside their domain give 0.0.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from squidcalc._errors import NumericFault
from squidcalc._numeric import broadcast, divide_arrays, finite_values, zeros

from ._descriptor import Notation, OperationCategory, OperationDescriptor, RowRule

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from squidcalc._numeric import Array2D

    from ._catalog import OperationCatalog

COMPARISON_PRECEDENCE = 1
ADDITIVE_PRECEDENCE = 2
MULTIPLICATIVE_PRECEDENCE = 3
POWER_PRECEDENCE = 4
FUNCTION_PRECEDENCE = 4


def register_builtin_operations(catalog: OperationCatalog) -> None:
    """Register all built-in operations with ``catalog``."""
    _register_arithmetic(catalog)
    _register_comparisons(catalog)
    _register_functions(catalog)
    _register_logic(catalog)
    _register_aggregates(catalog)
    _register_lookups(catalog)


# -----------------------------------------------------------------------------
# Rule helpers
# -----------------------------------------------------------------------------


def _elementwise(fn: Callable[..., np.ndarray]) -> Callable[[Sequence[Array2D]], Array2D]:
    def rule(args: Sequence[Array2D]) -> Array2D:
        return np.asarray(fn(*broadcast(*args)), dtype=np.float64)

    return rule


def _guarded_log(log: Callable[[np.ndarray], np.ndarray]) -> Callable[[Sequence[Array2D]], Array2D]:
    """Logarithm that yields 0.0 for non-positive and NaN arguments."""

    def rule(args: Sequence[Array2D]) -> Array2D:
        x = args[0]
        result = np.zeros_like(x, dtype=np.float64)
        positive = x > 0
        result[positive] = log(x[positive])
        return result

    return rule


def _sqrt(args: Sequence[Array2D]) -> Array2D:
    x = args[0]
    result = np.zeros_like(x, dtype=np.float64)
    valid = x >= 0
    result[valid] = np.sqrt(x[valid])
    return result


def _pow(args: Sequence[Array2D]) -> Array2D:
    base, exponent = broadcast(*args)
    result = np.power(base, exponent)
    result[np.isnan(result)] = 0.0
    return result


def _divide(args: Sequence[Array2D]) -> Array2D:
    return divide_arrays(args[0], args[1])


def _comparison(fn: Callable[[np.ndarray, np.ndarray], np.ndarray]) -> Callable[[Sequence[Array2D]], Array2D]:
    return _elementwise(lambda a, b: fn(a, b).astype(np.float64))


def _if(args: Sequence[Array2D]) -> Array2D:
    condition, when_true, when_false = broadcast(*args)
    holds = (condition != 0) & ~np.isnan(condition)
    return np.where(holds, when_true, when_false)


def _sum(args: Sequence[Array2D]) -> Array2D:
    return np.array([[finite_values(args[0]).sum()]])


def _average(args: Sequence[Array2D]) -> Array2D:
    values = finite_values(args[0])
    if values.size == 0:
        return zeros(1, 1)
    return np.array([[values.mean()]])


def _stdev(args: Sequence[Array2D]) -> Array2D:
    values = finite_values(args[0])
    if values.size < 2:  # noqa: PLR2004
        return zeros(1, 1)
    return np.array([[values.std(ddof=1)]])


def _count(args: Sequence[Array2D]) -> Array2D:
    return np.array([[float(finite_values(args[0]).size)]])


def _weighted_mean(args: Sequence[Array2D]) -> Array2D:
    """Inverse-variance weighted mean of values with one-sigma errors.

    Returns ``[[mean, sigma_mean, mswd]]``; rows with non-finite values or
    non-positive errors are ignored.
    """
    values, errors = (np.ravel(a) for a in broadcast(*args))
    valid = np.isfinite(values) & np.isfinite(errors) & (errors > 0)
    values = values[valid]
    if values.size == 0:
        return zeros(1, 3)

    weights = 1.0 / errors[valid] ** 2
    total_weight = weights.sum()
    mean = (weights * values).sum() / total_weight
    sigma = np.sqrt(1.0 / total_weight)
    dof = values.size - 1
    mswd = (weights * (values - mean) ** 2).sum() / dof if dof > 0 else 0.0
    return np.array([[mean, sigma, mswd]])


def _lookup(args: Sequence[Array2D]) -> Array2D:
    """Pick the 1-based column ``index`` of each row of ``values``."""
    values, index = args
    candidates = finite_values(index)
    if candidates.size != 1:
        msg = f"lookup index must be a single finite number, got {index.tolist()}"
        raise NumericFault(msg)
    column = round(float(candidates[0]))
    if not 1 <= column <= values.shape[1]:
        msg = f"lookup index {column} outside 1..{values.shape[1]}"
        raise NumericFault(msg)
    return np.array(values[:, column - 1 : column], dtype=np.float64)


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


def _infix(  # noqa: PLR0913
    name: str,
    symbol: str,
    precedence: int,
    rule: Callable[[Sequence[Array2D]], Array2D],
    definition: str,
    category: OperationCategory,
    math_ml_symbol: str | None = None,
) -> OperationDescriptor:
    return OperationDescriptor(
        name=name,
        argument_count=2,
        precedence=precedence,
        rule=rule,
        definition=definition,
        category=category,
        notation=Notation.INFIX,
        symbol=symbol,
        math_ml_symbol=math_ml_symbol,
        labels_for_output_values=((name,),),
        labels_for_input_values=("left", "right"),
    )


def _register_arithmetic(catalog: OperationCatalog) -> None:
    arithmetic = OperationCategory.ARITHMETIC
    catalog.register(_infix("add", "+", ADDITIVE_PRECEDENCE, _elementwise(np.add), "Adds two numbers", arithmetic))
    catalog.register(
        _infix("subtract", "-", ADDITIVE_PRECEDENCE, _elementwise(np.subtract), "Subtracts two numbers", arithmetic),
    )
    catalog.register(
        _infix(
            "multiply",
            "*",
            MULTIPLICATIVE_PRECEDENCE,
            _elementwise(np.multiply),
            "Multiplies two numbers",
            arithmetic,
            math_ml_symbol="&times;",
        ),
    )
    catalog.register(
        _infix(
            "divide",
            "/",
            MULTIPLICATIVE_PRECEDENCE,
            _divide,
            "Divides two numbers, returning 0 when the quotient is undefined",
            arithmetic,
        ),
    )
    catalog.register(
        _infix("pow", "^", POWER_PRECEDENCE, _pow, "Raises a number to a power", arithmetic),
    )


def _register_comparisons(catalog: OperationCatalog) -> None:
    comparisons = [
        ("lt", "<", "&lt;", np.less, "less than"),
        ("le", "<=", "&le;", np.less_equal, "less than or equal to"),
        ("gt", ">", "&gt;", np.greater, "greater than"),
        ("ge", ">=", "&ge;", np.greater_equal, "greater than or equal to"),
        ("eq", "=", "=", np.equal, "equal to"),
        ("ne", "<>", "&ne;", np.not_equal, "not equal to"),
    ]
    for name, symbol, math_ml_symbol, fn, text in comparisons:
        catalog.register(
            _infix(
                name,
                symbol,
                COMPARISON_PRECEDENCE,
                _comparison(fn),
                f"Returns 1 if the left value is {text} the right value, else 0",
                OperationCategory.COMPARISON,
                math_ml_symbol=math_ml_symbol,
            ),
        )


def _register_functions(catalog: OperationCatalog) -> None:
    unary = [
        ("ln", _guarded_log(np.log), "natLog", "Returns the natural logarithm of a number"),
        ("log", _guarded_log(np.log10), "log10", "Returns the base-10 logarithm of a number"),
        ("exp", _elementwise(np.exp), "exp", "Returns e raised to the power of a number"),
        ("sqrt", _sqrt, "sqrt", "Returns the square root of a number"),
        ("abs", _elementwise(np.abs), "abs", "Returns the absolute value of a number"),
    ]
    for name, rule, output_label, definition in unary:
        catalog.register(
            OperationDescriptor(
                name=name,
                argument_count=1,
                precedence=FUNCTION_PRECEDENCE,
                rule=rule,
                definition=definition,
                category=OperationCategory.FUNCTION,
                labels_for_output_values=((output_label,),),
                labels_for_input_values=("number",),
            ),
        )

    for name, fn, definition in (
        ("max", np.fmax, "Returns the larger of two numbers"),
        ("min", np.fmin, "Returns the smaller of two numbers"),
    ):
        catalog.register(
            OperationDescriptor(
                name=name,
                argument_count=2,
                precedence=FUNCTION_PRECEDENCE,
                rule=_elementwise(fn),
                definition=definition,
                category=OperationCategory.FUNCTION,
                labels_for_output_values=((name,),),
                labels_for_input_values=("number1", "number2"),
            ),
        )


def _register_logic(catalog: OperationCatalog) -> None:
    catalog.register(
        OperationDescriptor(
            name="if",
            argument_count=3,
            precedence=FUNCTION_PRECEDENCE,
            rule=_if,
            definition="Returns the second argument where the condition is nonzero, else the third",
            category=OperationCategory.LOGIC,
            labels_for_output_values=(("value",),),
            labels_for_input_values=("condition", "valueIfTrue", "valueIfFalse"),
        ),
    )


def _register_aggregates(catalog: OperationCatalog) -> None:
    single = [
        ("sum", _sum, "Returns the sum of all finite values"),
        ("average", _average, "Returns the arithmetic mean of all finite values"),
        ("stdev", _stdev, "Returns the sample standard deviation of all finite values"),
        ("count", _count, "Returns the number of finite values"),
    ]
    for name, rule, definition in single:
        catalog.register(
            OperationDescriptor(
                name=name,
                argument_count=1,
                precedence=FUNCTION_PRECEDENCE,
                rule=rule,
                definition=definition,
                category=OperationCategory.AGGREGATE,
                row_rule=RowRule.SUMMARY,
                labels_for_output_values=((name,),),
                labels_for_input_values=("values",),
            ),
        )

    catalog.register(
        OperationDescriptor(
            name="wtdMean",
            argument_count=2,
            precedence=FUNCTION_PRECEDENCE,
            rule=_weighted_mean,
            definition="Returns the inverse-variance weighted mean, its 1-sigma error and the MSWD",
            category=OperationCategory.AGGREGATE,
            row_rule=RowRule.SUMMARY,
            col_count=3,
            labels_for_output_values=(("Wtd Mean", "1-sigma abs", "MSWD"),),
            labels_for_input_values=("values", "oneSigmaAbsUnct"),
        ),
    )


def _register_lookups(catalog: OperationCatalog) -> None:
    catalog.register(
        OperationDescriptor(
            name="lookup",
            argument_count=2,
            precedence=FUNCTION_PRECEDENCE,
            rule=_lookup,
            definition="Returns the value at a 1-based column index of each row",
            category=OperationCategory.LOOKUP,
            labels_for_output_values=(("value",),),
            labels_for_input_values=("values", "index"),
        ),
    )
