"""Element types, operand classification, and scalar helpers."""

from __future__ import annotations

import numbers
import os
from dataclasses import dataclass
from enum import Enum
from typing import Final

import numpy as np

from .errors import ElementTypeError, OperandError


DEFAULT_ELEMENT_TYPE: Final[str] = os.environ.get("SEQEXPR_DEFAULT_ELEMENT_TYPE", "int64")


@dataclass(frozen=True)
class ElementType:
    """Storage dtype for a sequence plus the value returned for out-of-range reads."""

    name: str
    dtype: np.dtype
    zero: object

    @property
    def is_object(self) -> bool:
        return self.dtype == np.dtype(object)

    @property
    def native_zero(self) -> object:
        """`zero` as the dtype's own scalar, the form element arithmetic runs on."""
        if self.is_object:
            return self.zero
        return self.dtype.type(self.zero)


def _numeric(name: str) -> ElementType:
    dtype = np.dtype(name)
    return ElementType(name=name, dtype=dtype, zero=dtype.type(0).item())


_ELEMENT_TYPES: Final[dict[str, ElementType]] = {
    et.name: et
    for et in (
        _numeric("bool"),
        _numeric("int8"),
        _numeric("int16"),
        _numeric("int32"),
        _numeric("int64"),
        _numeric("uint8"),
        _numeric("uint16"),
        _numeric("uint32"),
        _numeric("uint64"),
        _numeric("float32"),
        _numeric("float64"),
        _numeric("complex64"),
        _numeric("complex128"),
        ElementType(name="object", dtype=np.dtype(object), zero=0),
    )
}

# Platform-independent names for the builtin scalar types.
_PYTHON_TYPE_NAMES: Final[dict[type, str]] = {
    bool: "bool",
    int: "int64",
    float: "float64",
    complex: "complex128",
    object: "object",
}


def element_type(spec: object = None) -> ElementType:
    """Resolve a name, dtype, builtin type, or ElementType to a registered ElementType.

    `None` resolves to the configured default (`SEQEXPR_DEFAULT_ELEMENT_TYPE`).
    """
    if spec is None:
        spec = DEFAULT_ELEMENT_TYPE
    if isinstance(spec, ElementType):
        return spec
    if isinstance(spec, type) and spec in _PYTHON_TYPE_NAMES:
        spec = _PYTHON_TYPE_NAMES[spec]
    if isinstance(spec, str) and spec in _ELEMENT_TYPES:
        return _ELEMENT_TYPES[spec]
    try:
        dtype = np.dtype(spec)
    except TypeError as exc:
        raise ElementTypeError(f"unknown element type {spec!r}") from exc
    name = "object" if dtype == np.dtype(object) else dtype.name
    found = _ELEMENT_TYPES.get(name)
    if found is None:
        raise ElementTypeError(f"element type {name!r} cannot back a sequence")
    return found


def element_type_names() -> tuple[str, ...]:
    return tuple(_ELEMENT_TYPES)


def infer_element_type(values: np.ndarray) -> ElementType:
    if values.size == 0 and values.dtype == np.dtype("float64"):
        # np.asarray([]) is float64; an empty literal carries no type information.
        return element_type()
    return element_type(values.dtype)


def infer_scalar_element_type(value: object) -> ElementType:
    if isinstance(value, bool):
        return element_type("bool")
    if isinstance(value, np.generic):
        return element_type(value.dtype)
    return infer_element_type(np.asarray(value))


class OperandKind(str, Enum):
    SEQUENCE = "sequence"
    EXPRESSION = "expression"
    SCALAR = "scalar"


class Ownership(str, Enum):
    OWNED = "owned"
    BORROWED = "borrowed"


@dataclass(frozen=True)
class OperandInfo:
    kind: OperandKind
    ownership: Ownership
    length: int

    @property
    def element_ownership(self) -> Ownership:
        """Ownership of a single element read from this operand.

        Expression nodes hand out freshly computed values and owned sequences are
        being consumed, so their elements may be updated in place. A scalar's value
        is shared by every index and a borrowed sequence must stay intact.
        """
        if self.kind is OperandKind.SCALAR:
            return Ownership.BORROWED
        return self.ownership


def is_scalar(value: object) -> bool:
    return isinstance(value, (numbers.Number, np.bool_))


def operand_info(value: object) -> OperandInfo:
    marker = getattr(value, "_seqexpr_operand", None)
    if marker == "sequence":
        return OperandInfo(kind=OperandKind.SEQUENCE, ownership=Ownership.BORROWED, length=len(value))
    if marker == "owned":
        return OperandInfo(kind=OperandKind.SEQUENCE, ownership=Ownership.OWNED, length=len(value))
    if marker == "expression":
        return OperandInfo(kind=OperandKind.EXPRESSION, ownership=Ownership.OWNED, length=len(value))
    if marker == "scalar" or is_scalar(value):
        return OperandInfo(kind=OperandKind.SCALAR, ownership=Ownership.BORROWED, length=0)
    raise OperandError(type(value).__name__)


def to_python(value: object) -> object:
    if isinstance(value, np.generic):
        return value.item()
    return value
