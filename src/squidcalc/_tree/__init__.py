"""Expression tree module.

Key types:
- ExpressionNode: Base of the node variants
- ConstantNode / VariableNode / OperationNode: Leaves and operations
- ExpressionRoot: Root node carrying the evaluation mode and fraction subset
"""

from ._nodes import (
    ConstantNode,
    EvaluationMode,
    ExpressionNode,
    ExpressionRoot,
    OperationNode,
    ReferenceResolver,
    VariableNode,
    as_root,
    constant,
    format_name,
    format_number,
    node_from_record,
    operation,
    stack_rows,
    variable,
)

__all__ = [
    "ConstantNode",
    "EvaluationMode",
    "ExpressionNode",
    "ExpressionRoot",
    "OperationNode",
    "ReferenceResolver",
    "VariableNode",
    "as_root",
    "constant",
    "format_name",
    "format_number",
    "node_from_record",
    "operation",
    "stack_rows",
    "variable",
]
