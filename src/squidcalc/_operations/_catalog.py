"""Lookup table of operation descriptors.

Operations are registered once at start-up and shared read-only by every
expression tree. Adding an operation means registering a new descriptor.

Example:
    catalog = OperationCatalog()
    catalog.register(OperationDescriptor(name="ln", argument_count=1, ...))

    ln = catalog.get("ln")
    ln.apply([np.array([[math.e]])])  # array([[1.]])
"""

from __future__ import annotations

import logging
from functools import cache
from typing import TYPE_CHECKING, Any

from squidcalc._errors import UnknownOperationError

from ._descriptor import Notation

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ._descriptor import OperationCategory, OperationDescriptor

logger = logging.getLogger(__name__)


class OperationCatalog:
    """Registry of operation descriptors keyed by name.

    Names are matched case-insensitively so that spreadsheet style formulas
    (``LN(x)``) resolve to the same operation as ``ln(x)``.
    """

    def __init__(self, descriptors: Iterable[OperationDescriptor] = ()) -> None:
        self._operations: dict[str, OperationDescriptor] = {}
        self._by_folded_name: dict[str, str] = {}
        self._by_symbol: dict[str, str] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: OperationDescriptor) -> None:
        """Register an operation, replacing any operation of the same name."""
        if descriptor.name in self._operations:
            logger.debug("Replacing operation '%s'", descriptor.name)
        self._operations[descriptor.name] = descriptor
        self._by_folded_name[descriptor.name.casefold()] = descriptor.name
        if descriptor.notation is Notation.INFIX and descriptor.symbol is not None:
            self._by_symbol[descriptor.symbol] = descriptor.name

    def get(self, name: str) -> OperationDescriptor:
        """Get an operation by name.

        Raises:
            UnknownOperationError: If no operation has this name.

        """
        if name in self._operations:
            return self._operations[name]
        folded = self._by_folded_name.get(name.casefold())
        if folded is None:
            raise UnknownOperationError(name)
        return self._operations[folded]

    def get_infix(self, symbol: str) -> OperationDescriptor:
        """Get the infix operation written with ``symbol`` (``+``, ``<=``...)."""
        if symbol not in self._by_symbol:
            raise UnknownOperationError(symbol)
        return self._operations[self._by_symbol[symbol]]

    def is_registered(self, name: str) -> bool:
        return name.casefold() in self._by_folded_name

    def list_all(self) -> list[OperationDescriptor]:
        return list(self._operations.values())

    def list_by_category(self, category: OperationCategory) -> list[OperationDescriptor]:
        return [d for d in self._operations.values() if d.category == category]

    def export_documentation(self) -> dict[str, Any]:
        """Export every operation's record, grouped by category."""
        by_category: dict[str, list[dict[str, Any]]] = {}
        for descriptor in self._operations.values():
            by_category.setdefault(descriptor.category.value, []).append(
                descriptor.to_record().model_dump(by_alias=True),
            )
        return {
            "operations": {name: d.to_record().model_dump(by_alias=True) for name, d in self._operations.items()},
            "byCategory": by_category,
        }

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_registered(name)

    def __iter__(self) -> Iterator[OperationDescriptor]:
        return iter(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)


@cache
def default_catalog() -> OperationCatalog:
    """Process-wide catalog holding the built-in operations."""
    from ._builtins import register_builtin_operations  # noqa: PLC0415

    catalog = OperationCatalog()
    register_builtin_operations(catalog)
    logger.debug("Registered %d built-in operations", len(catalog))
    return catalog
