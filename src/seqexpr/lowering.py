"""JAX lowering: evaluate a whole expression tree as one jitted kernel."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Final

import jax
import jax.numpy as jnp
import numpy as np

from .errors import OperandConsumedError, UnsupportedLoweringError
from .expression import Expression, Owned, Scalar
from .sequence import Sequence
from .values import ElementType, element_type as resolve_element_type

_LOG = logging.getLogger(__name__)

_LOWER_CACHE_MAX: Final[int] = max(1, int(os.environ.get("SEQEXPR_LOWER_CACHE_MAX", "256")))
_LOWERED_KERNEL_CACHE: dict[tuple[object, ...], Callable[..., jnp.ndarray]] = {}
_LOWER_CACHE_STATS: dict[str, int] = {"hits": 0, "misses": 0}


def _modulo(w: jnp.ndarray, x: jnp.ndarray) -> jnp.ndarray:
    nonzero = x != 0
    out = jnp.mod(w, jnp.where(nonzero, x, jnp.ones_like(x)))
    return jnp.where(nonzero, out, jnp.zeros_like(out))


_JAX_BINARY_OPS: Final[dict[str, Callable[[jnp.ndarray, jnp.ndarray], jnp.ndarray]]] = {
    "add": jnp.add,
    "subtract": jnp.subtract,
    "multiply": jnp.multiply,
    "divide": jnp.true_divide,
    "modulo": _modulo,
    "bitwise_and": jnp.bitwise_and,
    "bitwise_or": jnp.bitwise_or,
    "bitwise_xor": jnp.bitwise_xor,
    "left_shift": jnp.left_shift,
    "right_shift": jnp.right_shift,
}


def _signature(node: object, leaves: list[object]) -> tuple[object, ...]:
    if isinstance(node, Expression):
        if node.operation.is_custom:
            raise UnsupportedLoweringError(f"custom operation {node.operation.name!r} cannot be lowered")
        return ("op", node.operation.name, _signature(node.left, leaves), _signature(node.right, leaves))
    leaves.append(node)
    kind = "scalar" if isinstance(node, Scalar) else "sequence"
    return (kind, len(leaves) - 1)


def _build_kernel(signature: tuple[object, ...]) -> Callable[..., jnp.ndarray]:
    def evaluate(node: tuple[object, ...], args: tuple[jnp.ndarray, ...]) -> jnp.ndarray:
        if node[0] == "op":
            return _JAX_BINARY_OPS[node[1]](evaluate(node[2], args), evaluate(node[3], args))
        return args[node[1]]

    def kernel(*args: jnp.ndarray) -> jnp.ndarray:
        return evaluate(signature, args)

    return jax.jit(kernel)


def _leaf_sequence(leaf: object) -> Sequence:
    if isinstance(leaf, Owned):
        if leaf.consumed:
            raise OperandConsumedError("owned operand was donated to a materialized result")
        return leaf.sequence
    return leaf


def _padded(sequence: Sequence, length: int) -> jnp.ndarray:
    # Reads past a sequence's end see zero; padding reproduces that for the kernel.
    values = sequence.view()
    out = np.zeros(length, dtype=values.dtype)
    count = min(length, values.shape[0])
    out[:count] = values[:count]
    return jnp.asarray(out)


@dataclass(frozen=True, eq=False)
class LoweredExpression:
    """A compiled expression tree bound to its leaf operands.

    Calling it pads the sequence leaves to `length` and runs the cached kernel, so
    the result tracks the leaves' current contents.
    """

    kernel: Callable[..., jnp.ndarray]
    leaves: tuple[object, ...]
    length: int
    element_type: ElementType

    def arguments(self) -> tuple[jnp.ndarray, ...]:
        args = []
        for leaf in self.leaves:
            if isinstance(leaf, Scalar):
                args.append(jnp.asarray(leaf.value))
            else:
                args.append(_padded(_leaf_sequence(leaf), self.length))
        return tuple(args)

    def __call__(self) -> jnp.ndarray:
        dtype = jax.dtypes.canonicalize_dtype(self.element_type.dtype)
        if self.length == 0:
            return jnp.zeros((0,), dtype=dtype)
        return self.kernel(*self.arguments()).astype(dtype)


def lower_to_jax(expr: Expression, *, element_type: object = None) -> LoweredExpression:
    """Lower `expr` into a jitted kernel, reusing a cached one for the same tree shape."""
    if not isinstance(expr, Expression):
        raise UnsupportedLoweringError(f"only expressions can be lowered, got {type(expr).__name__}")
    leaves: list[object] = []
    signature = _signature(expr, leaves)
    etype = resolve_element_type(element_type) if element_type is not None else expr.element_type
    if etype.is_object:
        raise UnsupportedLoweringError("object element type cannot be lowered")
    for leaf in leaves:
        if not isinstance(leaf, Scalar) and _leaf_sequence(leaf).element_type.is_object:
            raise UnsupportedLoweringError("object element type cannot be lowered")

    kernel = _LOWERED_KERNEL_CACHE.get(signature)
    if kernel is None:
        _LOWER_CACHE_STATS["misses"] += 1
        kernel = _build_kernel(signature)
        if len(_LOWERED_KERNEL_CACHE) >= _LOWER_CACHE_MAX:
            _LOWERED_KERNEL_CACHE.pop(next(iter(_LOWERED_KERNEL_CACHE)))
        _LOWERED_KERNEL_CACHE[signature] = kernel
        _LOG.debug("compiled kernel for %r", expr)
    else:
        _LOWER_CACHE_STATS["hits"] += 1
    return LoweredExpression(kernel=kernel, leaves=tuple(leaves), length=len(expr), element_type=etype)


def materialize_with_jax(expr: Expression, *, element_type: object = None) -> Sequence:
    lowered = lower_to_jax(expr, element_type=element_type)
    return Sequence(np.asarray(lowered()), element_type=lowered.element_type)


def to_jax(value: Sequence | Expression) -> jnp.ndarray:
    if isinstance(value, Expression):
        return lower_to_jax(value)()
    return jnp.asarray(value.view())


def from_jax(array: object, *, element_type: object = None) -> Sequence:
    return Sequence(np.asarray(array), element_type=element_type)


def lower_cache_stats(*, reset: bool = False) -> dict[str, float | int]:
    hits = _LOWER_CACHE_STATS["hits"]
    misses = _LOWER_CACHE_STATS["misses"]
    total = hits + misses
    stats: dict[str, float | int] = {
        "hits": hits,
        "misses": misses,
        "size": len(_LOWERED_KERNEL_CACHE),
        "max_size": _LOWER_CACHE_MAX,
        "hit_rate": float(hits / total) if total else 0.0,
    }
    if reset:
        _LOWERED_KERNEL_CACHE.clear()
        _LOWER_CACHE_STATS["hits"] = 0
        _LOWER_CACHE_STATS["misses"] = 0
    return stats
