"""Lazy elementwise expression nodes.

An arithmetic operator applied to a sequence does not compute anything; it returns
an `Expression` holding its two operands and the catalogue operation. Expressions
are operands themselves, so `a * a * a / b` is a three-level tree whose elements
are produced one index at a time when a `Sequence` materializes it.
"""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Callable, ClassVar, Iterator

import numpy as np

from .errors import OperandConsumedError, OperandError, SequenceIndexError
from .operations import OPERATIONS, BinaryOperation
from .values import ElementType, Ownership, infer_scalar_element_type, is_scalar, operand_info, to_python

if TYPE_CHECKING:
    from .sequence import Sequence


def is_operand(value: object) -> bool:
    return getattr(value, "_seqexpr_operand", None) is not None or is_scalar(value)


def as_operand(value: object, *, where: str = "operand") -> object:
    """Return `value` as an expression operand, wrapping bare numbers in `Scalar`."""
    if getattr(value, "_seqexpr_operand", None) is not None:
        return value
    if is_scalar(value):
        return Scalar(value)
    raise OperandError(type(value).__name__, where=where)


def _forward(name: str) -> Callable[[object, object], object]:
    def method(self, other):
        if not is_operand(other):
            return NotImplemented
        return Expression(self, OPERATIONS[name], other)

    return method


def _reflected(name: str) -> Callable[[object, object], object]:
    def method(self, other):
        if not is_operand(other):
            return NotImplemented
        return Expression(other, OPERATIONS[name], self)

    return method


class ExpressionOperators:
    """Binary operators that build expression nodes instead of computing."""

    __slots__ = ()

    # Keeps numpy scalars on the left from broadcasting over us element by element.
    __array_ufunc__ = None

    __add__ = _forward("add")
    __radd__ = _reflected("add")
    __sub__ = _forward("subtract")
    __rsub__ = _reflected("subtract")
    __mul__ = _forward("multiply")
    __rmul__ = _reflected("multiply")
    __truediv__ = _forward("divide")
    __rtruediv__ = _reflected("divide")
    __mod__ = _forward("modulo")
    __rmod__ = _reflected("modulo")
    __and__ = _forward("bitwise_and")
    __rand__ = _reflected("bitwise_and")
    __or__ = _forward("bitwise_or")
    __ror__ = _reflected("bitwise_or")
    __xor__ = _forward("bitwise_xor")
    __rxor__ = _reflected("bitwise_xor")
    __lshift__ = _forward("left_shift")
    __rlshift__ = _reflected("left_shift")
    __rshift__ = _forward("right_shift")
    __rrshift__ = _reflected("right_shift")


class Scalar(ExpressionOperators):
    """Broadcast operand: reports length 0 and yields the same value at every index."""

    __slots__ = ("value",)
    _seqexpr_operand: ClassVar[str] = "scalar"

    def __init__(self, value: object) -> None:
        self.value = value

    def __len__(self) -> int:
        return 0

    def __getitem__(self, index: int) -> object:
        return self.value

    def _raw(self, index: int) -> object:
        return self.value

    def __bool__(self) -> bool:
        return bool(self.value)

    def __repr__(self) -> str:
        return f"Scalar({self.value!r})"

    def __str__(self) -> str:
        return str(self.value)


class Owned(ExpressionOperators):
    """A sequence handed over to an expression.

    Its elements may be updated in place by the catalogue operations, and the
    sequence that materializes the expression may take over its storage. Once
    that happens the wrapper is consumed and any further read raises
    `OperandConsumedError`.
    """

    __slots__ = ("sequence", "consumed")
    _seqexpr_operand: ClassVar[str] = "owned"

    def __init__(self, sequence: "Sequence") -> None:
        if getattr(sequence, "_seqexpr_operand", None) != "sequence":
            raise OperandError(type(sequence).__name__, where="owned()")
        self.sequence = sequence
        self.consumed = False

    def _live(self) -> "Sequence":
        if self.consumed:
            raise OperandConsumedError("owned operand was donated to a materialized result")
        return self.sequence

    @property
    def element_type(self) -> ElementType:
        return self.sequence.element_type

    def __len__(self) -> int:
        return len(self._live())

    def __getitem__(self, index: int) -> object:
        return self._live()[index]

    def _raw(self, index: int) -> object:
        return self._live()._raw(index)

    def __iter__(self) -> Iterator[object]:
        return iter(self._live())

    def __repr__(self) -> str:
        if self.consumed:
            return "owned(<consumed>)"
        return f"owned({self.sequence!r})"

    def __str__(self) -> str:
        return str(self._live())


def owned(sequence: "Sequence") -> Owned:
    """Mark `sequence` as a temporary the next materialization may consume."""
    return Owned(sequence)


def _describe(value: object) -> str:
    if isinstance(value, Expression):
        return repr(value)
    if isinstance(value, Owned):
        return f"owned{_describe(value.sequence)}" if not value.consumed else "owned(<consumed>)"
    text = str(value)
    return text if text else "()"


def element_ownership(operand: object) -> Ownership:
    """Ownership of the elements `operand` yields when an expression reads it."""
    # A caller-supplied function may hand back one of its arguments unchanged, so
    # its results cannot be treated as fresh temporaries.
    if isinstance(operand, Expression) and operand.operation.update is None:
        return Ownership.BORROWED
    return operand_info(operand).element_ownership


class Expression(ExpressionOperators):
    """Unevaluated elementwise `left OP right`.

    Length is the left operand's length unless that is zero (a scalar, or an empty
    sequence), in which case the right operand's length governs. Reads past an
    operand's own length see that operand's out-of-range value, so indexing never
    fails for non-negative indices. Nothing is cached: every read recomputes from
    the live operands.
    """

    __slots__ = ("left", "operation", "right", "_left_ownership", "_right_ownership")
    _seqexpr_operand: ClassVar[str] = "expression"

    def __init__(self, left: object, operation: BinaryOperation, right: object) -> None:
        if not isinstance(operation, BinaryOperation):
            raise TypeError(f"operation must be a BinaryOperation, got {type(operation).__name__}")
        self.left = as_operand(left, where="left operand")
        self.operation = operation
        self.right = as_operand(right, where="right operand")
        self._left_ownership = element_ownership(self.left)
        self._right_ownership = element_ownership(self.right)

    def __len__(self) -> int:
        size = len(self.left)
        return size if size != 0 else len(self.right)

    def element(self, index: int) -> object:
        """Compute element `index` (non-negative) as an element-type scalar.

        Operands are read in their element type's own scalars, so fixed-width
        integers wrap on overflow and floats follow IEEE rules. Callers run this
        under `np.errstate(all="ignore")`.
        """
        return self.operation.apply(
            self.left._raw(index),
            self.right._raw(index),
            left_ownership=self._left_ownership,
            right_ownership=self._right_ownership,
        )

    _raw = element

    def __getitem__(self, index: int) -> object:
        index = operator.index(index)
        if index < 0:
            index += len(self)
            if index < 0:
                raise SequenceIndexError("expression index before the first element")
        with np.errstate(all="ignore"):
            return to_python(self.element(index))

    def __iter__(self) -> Iterator[object]:
        for i in range(len(self)):
            yield self[i]

    def __bool__(self) -> bool:
        return any(bool(value) for value in self)

    def tolist(self) -> list[object]:
        return list(self)

    def leaves(self) -> Iterator[object]:
        """Yield the leaf operands depth-first, left to right."""
        for child in (self.left, self.right):
            if isinstance(child, Expression):
                yield from child.leaves()
            else:
                yield child

    def owned_leaves(self) -> Iterator[Owned]:
        for leaf in self.leaves():
            if isinstance(leaf, Owned):
                yield leaf

    @property
    def element_type(self) -> ElementType:
        """Element type of the first sequence operand, else inferred from a scalar."""
        first_scalar = None
        for leaf in self.leaves():
            if isinstance(leaf, Scalar):
                if first_scalar is None:
                    first_scalar = leaf
                continue
            return leaf.element_type
        return infer_scalar_element_type(first_scalar.value)

    def __repr__(self) -> str:
        return f"({_describe(self.left)} {self.operation.symbol} {_describe(self.right)})"
