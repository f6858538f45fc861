"""Catalogue of elementwise binary operations with ownership-aware dispatch."""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Callable, Final

from .errors import UnknownOperationError
from .values import Ownership


ElementFunction = Callable[[object, object], object]


@dataclass(frozen=True)
class BinaryOperation:
    """A named binary element function.

    `compute` returns a new value and never touches its arguments. `update` is the
    in-place form (`operator.iadd` and friends); it is only handed an operand the
    caller owns. Every dispatch path yields the same value; the paths differ only
    in whether an owned operand is reused.
    """

    name: str
    symbol: str
    compute: ElementFunction
    update: ElementFunction | None = None
    commutative: bool = False

    def __call__(self, left: object, right: object) -> object:
        return self.compute(left, right)

    def apply(
        self,
        left: object,
        right: object,
        *,
        left_ownership: Ownership = Ownership.BORROWED,
        right_ownership: Ownership = Ownership.BORROWED,
    ) -> object:
        if self.update is None:
            return self.compute(left, right)
        if left_ownership is Ownership.OWNED:
            return self.update(left, right)
        if right_ownership is Ownership.OWNED and self.commutative:
            return self.update(right, left)
        return self.compute(left, right)

    @property
    def is_custom(self) -> bool:
        return self.name not in OPERATIONS or OPERATIONS[self.name] is not self


def _modulo(left: object, right: object) -> object:
    if not right:
        return type(left)()
    return left % right


def _modulo_update(left: object, right: object) -> object:
    if not right:
        return type(left)()
    left %= right
    return left


CATALOGUE: Final[tuple[BinaryOperation, ...]] = (
    BinaryOperation("add", "+", operator.add, operator.iadd, commutative=True),
    BinaryOperation("subtract", "-", operator.sub, operator.isub),
    BinaryOperation("multiply", "*", operator.mul, operator.imul, commutative=True),
    BinaryOperation("divide", "/", operator.truediv, operator.itruediv),
    BinaryOperation("modulo", "%", _modulo, _modulo_update),
    BinaryOperation("bitwise_and", "&", operator.and_, operator.iand, commutative=True),
    BinaryOperation("bitwise_or", "|", operator.or_, operator.ior, commutative=True),
    BinaryOperation("bitwise_xor", "^", operator.xor, operator.ixor, commutative=True),
    BinaryOperation("left_shift", "<<", operator.lshift, operator.ilshift),
    BinaryOperation("right_shift", ">>", operator.rshift, operator.irshift),
)

OPERATIONS: Final[dict[str, BinaryOperation]] = {op.name: op for op in CATALOGUE}
_BY_SYMBOL: Final[dict[str, BinaryOperation]] = {op.symbol: op for op in CATALOGUE}


def operation(key: str | BinaryOperation) -> BinaryOperation:
    """Look up a catalogue operation by name (`"add"`) or symbol (`"+"`)."""
    if isinstance(key, BinaryOperation):
        return key
    found = OPERATIONS.get(key) or _BY_SYMBOL.get(key)
    if found is None:
        raise UnknownOperationError(f"no operation named {key!r}")
    return found


def custom_operation(func: ElementFunction, *, name: str | None = None) -> BinaryOperation:
    """Wrap a caller-supplied binary function; it is always called out of place."""
    label = name or getattr(func, "__name__", None) or "custom"
    return BinaryOperation(name=label, symbol=label, compute=func)
