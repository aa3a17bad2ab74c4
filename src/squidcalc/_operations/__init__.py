"""Operation catalog of the expression engine.

This module provides:
- OperationDescriptor: Metadata and evaluation rule of one operation
- OperationCatalog: Lookup table of descriptors keyed by name
- default_catalog: The shared catalog with every built-in registered
"""

from ._builtins import register_builtin_operations
from ._catalog import OperationCatalog, default_catalog
from ._descriptor import (
    LEAF_PRECEDENCE,
    Notation,
    OperationCategory,
    OperationDescriptor,
    Renderable,
    RowRule,
)

__all__ = [
    "LEAF_PRECEDENCE",
    "Notation",
    "OperationCatalog",
    "OperationCategory",
    "OperationDescriptor",
    "Renderable",
    "RowRule",
    "default_catalog",
    "register_builtin_operations",
]
