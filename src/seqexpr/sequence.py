"""Resizable owning sequence: the leaf operand and sole materialization point."""

from __future__ import annotations

import copy
import logging
import math
import operator
import os
from typing import Callable, ClassVar, Final, Iterator, overload

import numpy as np

from .errors import OperandError, SequenceIndexError
from .expression import Expression, ExpressionOperators, Owned, as_operand, element_ownership, is_operand
from .operations import OPERATIONS, BinaryOperation, custom_operation
from .values import (
    ElementType,
    Ownership,
    element_type as resolve_element_type,
    infer_element_type,
    infer_scalar_element_type,
    is_scalar,
    to_python,
)

_LOG = logging.getLogger(__name__)

GROWTH_FACTOR: Final[float] = max(1.0, float(os.environ.get("SEQEXPR_GROWTH_FACTOR", "2.0")))

_ALLOCATION_STATS: dict[str, int] = {"buffers": 0, "elements": 0, "donations": 0}


def allocation_stats(*, reset: bool = False) -> dict[str, int]:
    """Counts of sequence buffers allocated and storage donations taken so far."""
    stats = dict(_ALLOCATION_STATS)
    if reset:
        for key in _ALLOCATION_STATS:
            _ALLOCATION_STATS[key] = 0
    return stats


def _allocate(etype: ElementType, capacity: int) -> np.ndarray:
    # Slots past the live size are kept at the element type's zero, so growing
    # only has to move the size marker.
    if capacity > 0:
        _ALLOCATION_STATS["buffers"] += 1
        _ALLOCATION_STATS["elements"] += capacity
        _LOG.debug("allocating %d-slot %s buffer", capacity, etype.name)
    return np.full(capacity, etype.zero, dtype=etype.dtype)


def _as_source(value: object, *, where: str, element_type: ElementType | None = None) -> object:
    """Operand for apply/assign; plain iterables become a temporary Sequence.

    Without `element_type` the temporary infers its own, so `apply` sees the
    caller's values unconverted.
    """
    if is_operand(value):
        return as_operand(value, where=where)
    return Sequence(value, element_type=element_type)


def _compound(name: str) -> Callable[["Sequence", object], object]:
    def method(self, other):
        if not is_operand(other):
            return NotImplemented
        self._update(OPERATIONS[name], as_operand(other))
        return self

    return method


class Sequence(ExpressionOperators):
    """A resizable sequence of one element type, owning its storage.

    Reads are total: an index at or past the end yields the element type's zero
    without growing anything. Writes are total too: writing past the end grows
    the sequence first, zero-filling the gap. Arithmetic operators return lazy
    `Expression` trees; passing one to `Sequence(...)`, `assign` or a compound
    assignment evaluates it in a single ascending pass.

    `==` and the ordering operators compare lengths only.
    """

    __slots__ = ("_buffer", "_size", "_element_type")
    _seqexpr_operand: ClassVar[str] = "sequence"

    def __init__(self, data: object = None, *, element_type: object = None) -> None:
        etype = resolve_element_type(element_type) if element_type is not None else None

        if data is None:
            etype = etype or resolve_element_type()
            self._set_storage(etype, _allocate(etype, 0), 0)
            return

        marker = getattr(data, "_seqexpr_operand", None)
        if marker == "owned":
            self._init_moved(data, etype)
            return
        if marker == "expression":
            etype = etype or data.element_type
            size = len(data)
            self._set_storage(etype, _materialize(data, etype, size), size)
            return
        if marker == "sequence":
            self._init_copied(data, etype)
            return
        if marker == "scalar":
            data = data.value
        if marker == "scalar" or is_scalar(data):
            etype = etype or infer_scalar_element_type(data)
            buffer = _allocate(etype, 1)
            buffer[0] = data
            self._set_storage(etype, buffer, 1)
            return
        self._init_from_values(data, etype)

    def _set_storage(self, etype: ElementType, buffer: np.ndarray, size: int) -> None:
        self._element_type = etype
        self._buffer = buffer
        self._size = size

    def _init_from_values(self, data: object, etype: ElementType | None) -> None:
        if isinstance(data, (str, bytes)):
            raise OperandError(type(data).__name__, where="Sequence()")
        if isinstance(data, np.ndarray) or hasattr(data, "__array__"):
            values = np.asarray(data) if etype is None else np.asarray(data, dtype=etype.dtype)
            etype = etype or resolve_element_type(values.dtype)
        else:
            try:
                items = list(data)
            except TypeError:
                raise OperandError(type(data).__name__, where="Sequence()") from None
            if etype is None:
                values = np.asarray(items)
                etype = infer_element_type(values)
            else:
                values = np.asarray(items, dtype=etype.dtype)
        if values.ndim != 1:
            raise OperandError(f"{values.ndim}-d array", where="Sequence()")
        size = int(values.shape[0])
        buffer = _allocate(etype, size)
        buffer[:] = values
        self._set_storage(etype, buffer, size)

    def _init_copied(self, other: "Sequence", etype: ElementType | None) -> None:
        etype = etype or other._element_type
        size = other._size
        buffer = _allocate(etype, size)
        live = other._buffer[:size]
        buffer[:] = copy.deepcopy(live) if etype.is_object else live
        self._set_storage(etype, buffer, size)

    def _init_moved(self, donor: Owned, etype: ElementType | None) -> None:
        source = donor.sequence
        if etype is not None and etype != source._element_type:
            self._init_copied(source, etype)
            return
        self._set_storage(source._element_type, source._buffer, source._size)
        source._release()
        donor.consumed = True
        _ALLOCATION_STATS["donations"] += 1
        _LOG.debug("moved %d-element %s buffer out of an owned operand", self._size, self._element_type.name)

    def _release(self) -> None:
        self._buffer = _allocate(self._element_type, 0)
        self._size = 0

    # Size and capacity

    def __len__(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return int(self._buffer.shape[0])

    @property
    def element_type(self) -> ElementType:
        return self._element_type

    def _reallocate(self, capacity: int) -> None:
        buffer = _allocate(self._element_type, capacity)
        buffer[: self._size] = self._buffer[: self._size]
        self._buffer = buffer

    def _ensure_capacity(self, needed: int, *, exact: bool = False) -> None:
        capacity = self.capacity
        if needed <= capacity:
            return
        if not exact:
            needed = max(needed, math.ceil(capacity * GROWTH_FACTOR))
        self._reallocate(needed)

    def _grow(self, size: int) -> None:
        self._ensure_capacity(size)
        self._size = size

    def resize(self, size: int, value: object = None) -> "Sequence":
        """Grow or shrink to exactly `size` elements; growth fills with `value` or zero."""
        size = operator.index(size)
        if size < 0:
            raise ValueError("sequence size cannot be negative")
        if size == 0:
            self._release()
            return self
        current = self._size
        if size > current:
            self._ensure_capacity(size, exact=True)
            if value is not None:
                self._buffer[current:size] = value
        elif size < current:
            self._buffer[size:current] = self._element_type.zero
        self._size = size
        return self

    def reserve(self, capacity: int) -> "Sequence":
        self._ensure_capacity(operator.index(capacity), exact=True)
        return self

    def push_back(self, value: object) -> "Sequence":
        self[self._size] = value
        return self

    def pop_back(self) -> "Sequence":
        if self._size > 0:
            self._size -= 1
            self._buffer[self._size] = self._element_type.zero
        return self

    def insert(self, at: int, values: object) -> "Sequence":
        """Insert `values` before position `at`, growing to `at` first if it is past the end."""
        at = self._normalize_write_index(at)
        if at > self._size:
            self._grow(at)
        items = self._coerce_values(values)
        count = int(items.shape[0])
        if count == 0:
            return self
        size = self._size
        self._ensure_capacity(size + count)
        buffer = self._buffer
        buffer[at + count : size + count] = buffer[at:size]
        buffer[at : at + count] = items
        self._size = size + count
        return self

    def _coerce_values(self, values: object) -> np.ndarray:
        dtype = self._element_type.dtype
        marker = getattr(values, "_seqexpr_operand", None)
        if marker == "sequence":
            return np.array(values._buffer[: values._size], dtype=dtype)
        if marker in ("owned", "expression"):
            return np.asarray(list(values), dtype=dtype)
        if marker == "scalar":
            values = values.value
        if marker == "scalar" or is_scalar(values):
            return np.asarray([values], dtype=dtype)
        if isinstance(values, (str, bytes)):
            raise OperandError(type(values).__name__, where="insert()")
        return np.asarray(list(values), dtype=dtype)

    # Rotation

    def shift(self, steps: int) -> "Sequence":
        """Rotate toward index 0 for positive `steps` (toward the end for negative),
        zero-filling the vacated positions."""
        return self._rotate(steps, drop=True)

    def cshift(self, steps: int) -> "Sequence":
        """Circular rotate: like `shift`, but vacated positions receive the wrapped values."""
        return self._rotate(steps, drop=False)

    def _rotate(self, steps: int, *, drop: bool) -> "Sequence":
        steps = operator.index(steps)
        size = self._size
        if size == 0:
            return self
        count = abs(steps) % size
        if count == 0:
            return self
        live = self._buffer[:size]
        zero = self._element_type.zero
        if steps > 0:
            wrapped = None if drop else live[:count].copy()
            live[: size - count] = live[count:]
            live[size - count :] = zero if drop else wrapped
        else:
            wrapped = None if drop else live[size - count :].copy()
            live[count:] = live[: size - count]
            live[:count] = zero if drop else wrapped
        return self

    # Element access

    def _normalize_write_index(self, index: int) -> int:
        index = operator.index(index)
        if index < 0:
            index += self._size
            if index < 0:
                raise SequenceIndexError("sequence index before the first element")
        return index

    def __getitem__(self, index: int | slice) -> object:
        if isinstance(index, slice):
            return Sequence(self._buffer[: self._size][index], element_type=self._element_type)
        index = operator.index(index)
        if index < 0:
            index += self._size
            if index < 0:
                raise SequenceIndexError("sequence index before the first element")
        if index < self._size:
            return to_python(self._buffer[index])
        return self._element_type.zero

    def _raw(self, index: int) -> object:
        """Element `index` (non-negative) as an element-type scalar, zero past the end."""
        if index < self._size:
            return self._buffer[index]
        return self._element_type.native_zero

    def __setitem__(self, index: int, value: object) -> None:
        index = self._normalize_write_index(index)
        if index >= self._size:
            self._grow(index + 1)
        self._buffer[index] = value

    def __iter__(self) -> Iterator[object]:
        for i in range(self._size):
            yield to_python(self._buffer[i])

    def __reversed__(self) -> Iterator[object]:
        for i in range(self._size - 1, -1, -1):
            yield to_python(self._buffer[i])

    def tolist(self) -> list[object]:
        return self._buffer[: self._size].tolist()

    def view(self) -> np.ndarray:
        """Read-only numpy view of the live elements."""
        live = self._buffer[: self._size].view()
        live.flags.writeable = False
        return live

    # Eager transforms

    @overload
    def apply(self, func: Callable[[object], object]) -> "Sequence": ...

    @overload
    def apply(self, other: object, func: Callable[[object, object], object]) -> "Sequence": ...

    def apply(self, *args):
        """Transform every element in place, in ascending index order.

        `apply(func)` stores `func(self[i])`. `apply(other, func)` first grows to
        `max(len(self), len(other))` and stores `func(self[i], other[i])`.
        `func` receives element-type scalars (numpy scalars for numeric types).
        Exceptions raised by `func` propagate as-is; earlier indices keep their
        new values.
        """
        if len(args) == 1:
            (func,) = args
            buffer = self._buffer
            with np.errstate(all="ignore"):
                for i in range(self._size):
                    buffer[i] = func(buffer[i])
            return self
        if len(args) == 2:
            other, func = args
            source = _as_source(other, where="apply() operand")
            limit = max(self._size, len(source))
            if limit > self._size:
                self._grow(limit)
            buffer = self._buffer
            with np.errstate(all="ignore"):
                for i in range(limit):
                    buffer[i] = func(buffer[i], source._raw(i))
            return self
        raise TypeError(f"apply() takes 1 or 2 arguments ({len(args)} given)")

    def combine(self, other: object, func: Callable[[object, object], object], *, name: str | None = None) -> Expression:
        """Lazy counterpart of `apply(other, func)`: an expression node using `func`."""
        return Expression(self, custom_operation(func, name=name), other)

    def _unary(self, func: Callable[[object], object]) -> "Sequence":
        return Sequence(self).apply(func)

    def __neg__(self) -> "Sequence":
        return self._unary(operator.neg)

    def __pos__(self) -> "Sequence":
        return self._unary(operator.pos)

    def __invert__(self) -> "Sequence":
        return self._unary(operator.invert)

    # Materialization

    def assign(self, source: object) -> "Sequence":
        """Overwrite with the values of `source`, resized to its length.

        The length is taken before anything changes, and element `i` is computed
        before slot `i` is written, so `source` may refer to this sequence.
        """
        source = _as_source(source, where="assign() source", element_type=self._element_type)
        size = len(source)
        self.resize(size)
        buffer = self._buffer
        with np.errstate(all="ignore"):
            for i in range(size):
                buffer[i] = source._raw(i)
        return self

    def _update(self, op: BinaryOperation, source: object) -> None:
        limit = max(self._size, len(source))
        if limit > self._size:
            self._grow(limit)
        right_ownership = element_ownership(source)
        buffer = self._buffer
        with np.errstate(all="ignore"):
            for i in range(limit):
                buffer[i] = op.apply(
                    buffer[i],
                    source._raw(i),
                    left_ownership=Ownership.OWNED,
                    right_ownership=right_ownership,
                )

    __iadd__ = _compound("add")
    __isub__ = _compound("subtract")
    __imul__ = _compound("multiply")
    __itruediv__ = _compound("divide")
    __imod__ = _compound("modulo")
    __iand__ = _compound("bitwise_and")
    __ior__ = _compound("bitwise_or")
    __ixor__ = _compound("bitwise_xor")
    __ilshift__ = _compound("left_shift")
    __irshift__ = _compound("right_shift")

    # Comparison, truth, copying

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._size == other._size

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._size < other._size

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._size <= other._size

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._size > other._size

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Sequence):
            return NotImplemented
        return self._size >= other._size

    __hash__ = None  # type: ignore[assignment]

    def __bool__(self) -> bool:
        return any(bool(value) for value in self)

    def copy(self) -> "Sequence":
        return Sequence(self)

    def __copy__(self) -> "Sequence":
        return Sequence(self)

    def __deepcopy__(self, memo: dict) -> "Sequence":
        return Sequence(self)

    def swap(self, other: "Sequence") -> None:
        self._buffer, other._buffer = other._buffer, self._buffer
        self._size, other._size = other._size, self._size
        self._element_type, other._element_type = other._element_type, self._element_type

    def __str__(self) -> str:
        if self._size == 0:
            return ""
        return "(" + ",".join(str(value) for value in self) + ")"

    def __repr__(self) -> str:
        return f"Sequence({self.tolist()!r}, element_type={self._element_type.name!r})"


def _find_donor(expr: Expression, etype: ElementType) -> Owned | None:
    for leaf in expr.owned_leaves():
        if not leaf.consumed and leaf.sequence.element_type == etype:
            return leaf
    return None


def _materialize(expr: Expression, etype: ElementType, size: int) -> np.ndarray:
    """Evaluate `expr` into a buffer of `size` slots, one ascending pass.

    An owned sequence of the same element type donates its buffer: element `i`
    of every operand is read before slot `i` is written, so writing into an
    operand's own storage is safe. The donor ends up empty and every `Owned`
    wrapper around it is marked consumed.
    """
    donor = _find_donor(expr, etype)
    if donor is None:
        buffer = _allocate(etype, size)
        with np.errstate(all="ignore"):
            for i in range(size):
                buffer[i] = expr.element(i)
        return buffer

    source = donor.sequence
    source._ensure_capacity(size, exact=True)
    buffer = source._buffer
    with np.errstate(all="ignore"):
        for i in range(size):
            buffer[i] = expr.element(i)
    if source._size > size:
        buffer[size : source._size] = etype.zero
    for leaf in expr.owned_leaves():
        if leaf.sequence is source:
            leaf.consumed = True
    source._release()
    _ALLOCATION_STATS["donations"] += 1
    _LOG.debug("reused %d-slot %s buffer of an owned operand", buffer.shape[0], etype.name)
    return buffer
