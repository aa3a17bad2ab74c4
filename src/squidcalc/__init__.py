"""Expression evaluation engine for SHRIMP ion-microprobe data reduction."""

__all__ = [
    "ArityMismatchError",
    "ConstantNode",
    "CyclicDependencyError",
    "DependencyGraph",
    "DuplicateNameError",
    "EvaluationError",
    "EvaluationMode",
    "EvaluationResult",
    "Expression",
    "ExpressionNode",
    "ExpressionNotFoundError",
    "ExpressionRecord",
    "ExpressionRegistry",
    "ExpressionRoot",
    "Fault",
    "FormulaSyntaxError",
    "Fraction",
    "FractionSet",
    "NumericFault",
    "OperationCatalog",
    "OperationCategory",
    "OperationDescriptor",
    "OperationNode",
    "OperationRecord",
    "ResultCache",
    "RowRule",
    "ShapeMismatchError",
    "SquidCalcError",
    "TaskContext",
    "TaskFileError",
    "UnknownOperationError",
    "UnresolvedReferenceError",
    "VariableNode",
    "as_array2d",
    "default_catalog",
    "divide_with_zero_for_nan_result",
    "dump_expressions",
    "evaluate_expressions",
    "export_results_to_toml",
    "load_expressions",
    "load_task_from_toml",
    "parse_formula",
    "results_to_dict",
]

from ._cache import ResultCache
from ._context import TaskContext
from ._errors import (
    ArityMismatchError,
    CyclicDependencyError,
    DuplicateNameError,
    EvaluationError,
    ExpressionNotFoundError,
    FormulaSyntaxError,
    NumericFault,
    ShapeMismatchError,
    SquidCalcError,
    TaskFileError,
    UnknownOperationError,
    UnresolvedReferenceError,
)
from ._eval_engine import EvaluationResult, evaluate_expressions
from ._expression import Expression
from ._fraction import Fraction, FractionSet
from ._graph import DependencyGraph
from ._io import dump_expressions, export_results_to_toml, load_expressions, load_task_from_toml, results_to_dict
from ._numeric import Fault, as_array2d, divide_with_zero_for_nan_result
from ._operations import OperationCatalog, OperationCategory, OperationDescriptor, RowRule, default_catalog
from ._parser import parse_formula
from ._records import ExpressionRecord, OperationRecord
from ._registry import ExpressionRegistry
from ._tree import ConstantNode, EvaluationMode, ExpressionNode, ExpressionRoot, OperationNode, VariableNode
