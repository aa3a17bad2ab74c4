"""Guarded arithmetic helpers and the array conventions shared by the engine.

Every evaluated node yields a 2-D float64 array shaped ``(rows, cols)``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from ._errors import NumericFault, ShapeMismatchError

logger = logging.getLogger(__name__)

type Array2D = np.ndarray
type RawValue = float | int | Sequence[float]


def divide_with_zero_for_nan_result(num: float, den: float) -> float:
    """Divide ``num`` by ``den``, returning 0.0 instead of NaN or a division by zero."""
    if den == 0:
        return 0.0
    result = num / den
    if math.isnan(result):
        return 0.0
    return result


def divide_arrays(num: Array2D, den: Array2D) -> Array2D:
    """Elementwise version of :func:`divide_with_zero_for_nan_result`."""
    num, den = broadcast(num, den)
    with np.errstate(all="ignore"):
        result = np.true_divide(num, den)
    result[(den == 0) | np.isnan(result)] = 0.0
    return result


def as_array2d(value: object) -> Array2D:
    """Coerce a raw value to a 2-D float array.

    Scalars become ``[[v]]``, flat sequences a single row and 2-D data is kept.

    Raises:
        NumericFault: If the value is not numeric or has more than two dimensions.

    """
    if isinstance(value, bool):
        value = float(value)
    try:
        array = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        msg = f"Value {value!r} is not numeric"
        raise NumericFault(msg) from e
    if array.ndim == 0:
        return array.reshape(1, 1)
    if array.ndim == 1:
        return array.reshape(1, -1)
    if array.ndim == 2:  # noqa: PLR2004
        return array
    msg = f"Expected at most 2 dimensions, got {array.ndim}"
    raise NumericFault(msg)


def zeros(rows: int, cols: int) -> Array2D:
    return np.zeros((rows, cols), dtype=np.float64)


def broadcast(*arrays: Array2D) -> tuple[Array2D, ...]:
    """Broadcast operand arrays to a common shape.

    Raises:
        ShapeMismatchError: If the shapes are incompatible.

    """
    try:
        return tuple(np.array(a, dtype=np.float64) for a in np.broadcast_arrays(*arrays))
    except ValueError as e:
        shapes = ", ".join(str(a.shape) for a in arrays)
        msg = f"Cannot combine arrays of shapes {shapes}"
        raise ShapeMismatchError(msg) from e


def broadcast_rows(arrays: Sequence[Array2D], default: int) -> int:
    """Number of rows the given operands broadcast to, or ``default`` without operands."""
    if not arrays:
        return default
    rows = {a.shape[0] for a in arrays if a.shape[0] != 1}
    if len(rows) == 1:
        return rows.pop()
    if not rows:
        return 1
    return default


def finite_values(array: Array2D) -> np.ndarray:
    """Flatten an array and drop NaN and infinite entries."""
    flat = np.ravel(array)
    return flat[np.isfinite(flat)]


@dataclass(frozen=True, slots=True)
class Fault:
    """Marker standing in for a child result whose evaluation raised a numeric fault."""

    reason: str


type Outcome = Array2D | Fault


def capture(compute: Callable[[], Array2D]) -> Outcome:
    """Run ``compute`` and return its array, or a :class:`Fault` if it raised ``NumericFault``."""
    try:
        return compute()
    except NumericFault as e:
        logger.debug("Captured numeric fault: %s", e)
        return Fault(str(e))
