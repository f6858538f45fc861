"""seqexpr public API."""

from .errors import (
    ElementTypeError,
    OperandConsumedError,
    OperandError,
    SeqExprError,
    SequenceIndexError,
    UnknownOperationError,
    UnsupportedLoweringError,
)
from .expression import Expression, Owned, Scalar, owned
from .operations import CATALOGUE, OPERATIONS, BinaryOperation, custom_operation, operation
from .sequence import Sequence, allocation_stats
from .values import ElementType, OperandKind, Ownership, element_type, operand_info

try:
    from .lowering import LoweredExpression, from_jax, lower_cache_stats, lower_to_jax, materialize_with_jax, to_jax
except ModuleNotFoundError as exc:
    if exc.name and exc.name.startswith("jax"):
        _jax_import_error = exc

        def lower_to_jax(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for lower_to_jax(). Install runtime deps first."
            ) from _jax_import_error

        def materialize_with_jax(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for materialize_with_jax(). Install runtime deps first."
            ) from _jax_import_error

        def to_jax(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for to_jax(). Install runtime deps first."
            ) from _jax_import_error

        def from_jax(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for from_jax(). Install runtime deps first."
            ) from _jax_import_error

        def lower_cache_stats(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for lower_cache_stats(). Install runtime deps first."
            ) from _jax_import_error

        class LoweredExpression:  # pragma: no cover - import-time fallback
            def __init__(self, *_args, **_kwargs) -> None:
                raise ModuleNotFoundError(
                    "jax is required for LoweredExpression(). Install runtime deps first."
                ) from _jax_import_error

    else:
        raise

__all__ = [
    "Sequence",
    "Expression",
    "Scalar",
    "Owned",
    "owned",
    "allocation_stats",
    "BinaryOperation",
    "CATALOGUE",
    "OPERATIONS",
    "operation",
    "custom_operation",
    "ElementType",
    "element_type",
    "OperandKind",
    "Ownership",
    "operand_info",
    "lower_to_jax",
    "materialize_with_jax",
    "to_jax",
    "from_jax",
    "lower_cache_stats",
    "LoweredExpression",
    "SeqExprError",
    "ElementTypeError",
    "OperandError",
    "UnknownOperationError",
    "SequenceIndexError",
    "OperandConsumedError",
    "UnsupportedLoweringError",
]
