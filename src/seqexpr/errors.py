"""Structured error types for expression building and materialization."""

from __future__ import annotations

from dataclasses import dataclass


class SeqExprError(Exception):
    """Base class for structured seqexpr errors."""


class ElementTypeError(SeqExprError, TypeError):
    """Element type is unknown to the registry or cannot back a sequence."""


@dataclass(frozen=True)
class OperandError(SeqExprError, TypeError):
    """A value that cannot take part in an elementwise expression."""

    type_name: str
    where: str = "operand"

    def __str__(self) -> str:
        return f"{self.where} has unsupported type {self.type_name}"


class UnknownOperationError(SeqExprError, LookupError):
    """No catalogue operation is registered under the requested name or symbol."""


class SequenceIndexError(SeqExprError, IndexError):
    """Index resolves to a position before the start of the sequence."""


class OperandConsumedError(SeqExprError, RuntimeError):
    """An owned operand was read after its storage was donated to a result."""


class UnsupportedLoweringError(SeqExprError):
    """Expression tree contains something the JAX lowering cannot express."""
