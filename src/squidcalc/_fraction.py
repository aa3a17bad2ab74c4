"""Measured fractions: the per-spot data points expressions are evaluated over."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum, auto
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from ._numeric import RawValue


class FractionSet(StrEnum):
    """Subset of a task's fractions an expression applies to."""

    ALL = auto()
    REFERENCE_MATERIALS = auto()
    UNKNOWNS = auto()

    def includes(self, fraction: Fraction) -> bool:
        match self:
            case FractionSet.ALL:
                return True
            case FractionSet.REFERENCE_MATERIALS:
                return fraction.is_reference_material
            case FractionSet.UNKNOWNS:
                return not fraction.is_reference_material


@dataclass(frozen=True, slots=True)
class Fraction:
    """One measured sample or standard spot.

    Attributes:
        fraction_id: Identifier unique within a task (e.g. ``"TEM-1.1"``).
        values: Named input quantities; scalars or per-scan sequences.
        is_reference_material: True for reference material (standard) spots.

    """

    fraction_id: str
    values: Mapping[str, RawValue] = field(default_factory=dict)
    is_reference_material: bool = False

    def __post_init__(self) -> None:
        frozen = {k: tuple(v) if isinstance(v, (list, tuple)) else v for k, v in self.values.items()}
        object.__setattr__(self, "values", MappingProxyType(frozen))

    def has(self, name: str) -> bool:
        return name in self.values

    def __hash__(self) -> int:
        return hash(self.fraction_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fraction):
            return NotImplemented
        return (
            self.fraction_id == other.fraction_id
            and self.is_reference_material == other.is_reference_material
            and dict(self.values) == dict(other.values)
        )


def fraction_key(fractions: Iterable[Fraction]) -> tuple[str, ...]:
    """Cache key identifying a sequence of fractions."""
    return tuple(f.fraction_id for f in fractions)


def select(fractions: Sequence[Fraction], fraction_set: FractionSet) -> list[Fraction]:
    return [f for f in fractions if fraction_set.includes(f)]
