from __future__ import annotations

from dataclasses import dataclass
import importlib.util
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


@dataclass(frozen=True)
class LoweringCase:
    id: str
    build: object
    left: tuple[object, ...]
    right: tuple[object, ...]
    element_type: str = "int64"


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for jax lowering tests")
class JaxLoweringEquivalenceTests(unittest.TestCase):
    def setUp(self) -> None:
        from seqexpr import lower_cache_stats

        lower_cache_stats(reset=True)

    def _assert_close(self, got: list[object], want: list[object], *, places: int = 5) -> None:
        self.assertEqual(len(got), len(want))
        for g, w in zip(got, want, strict=True):
            self.assertAlmostEqual(float(g), float(w), places=places)

    def _cases(self) -> tuple[LoweringCase, ...]:
        return (
            LoweringCase("cube_over", lambda a, b: a * a * a / b, (2, 4, 6), (3, 3, 3)),
            LoweringCase("cube_over_float", lambda a, b: a * a * a / b, (2.0, 1.5, 0.5), (3.0, 2.0, 4.0), "float64"),
            LoweringCase("add_sub_mul", lambda a, b: (a + b) * (a - b), (5, 7, 9), (1, 2, 3)),
            LoweringCase("modulo_with_zero", lambda a, b: a % b, (7, 8, 9), (2, 0, 4)),
            LoweringCase("bitwise", lambda a, b: (a & b) | (a ^ 1), (12, 10, 6), (10, 6, 3)),
            LoweringCase("shifts", lambda a, b: (a << b) >> 1, (1, 2, 3), (4, 3, 2)),
            LoweringCase("scalar_broadcast", lambda a, b: 2 * a + 1 - b, (1, 2, 3), (1, 1, 1)),
            LoweringCase("short_left", lambda a, b: a + b, (1, 2), (10, 20, 30, 40)),
            LoweringCase("short_right", lambda a, b: a - b, (10, 20, 30, 40), (1, 2)),
            LoweringCase("uint8_add_wraps", lambda a, b: a + b, (200, 255), (100, 1), "uint8"),
            LoweringCase("uint8_sub_wraps", lambda a, b: a - b, (1, 0), (2, 1), "uint8"),
            LoweringCase("int32_mul_wraps", lambda a, b: a * b, (2**30, 2**31 - 1), (4, 2), "int32"),
        )

    def test_lowered_results_match_elementwise_materialization(self) -> None:
        from seqexpr import Sequence, materialize_with_jax

        for case in self._cases():
            with self.subTest(case=case.id):
                a = Sequence(list(case.left), element_type=case.element_type)
                b = Sequence(list(case.right), element_type=case.element_type)
                expr = case.build(a, b)
                lowered = materialize_with_jax(expr)
                reference = Sequence(expr)
                self.assertEqual(lowered.element_type, reference.element_type)
                self._assert_close(lowered.tolist(), reference.tolist())

    def test_empty_left_operand_takes_the_right_length(self) -> None:
        from seqexpr import Sequence, materialize_with_jax

        b = Sequence([1, 2, 3])
        self.assertEqual(materialize_with_jax(Sequence() + b).tolist(), [1, 2, 3])

    def test_kernels_are_cached_per_tree_shape(self) -> None:
        from seqexpr import Sequence, lower_cache_stats, lower_to_jax

        a = Sequence([1, 2, 3])
        b = Sequence([4, 5, 6])
        c = Sequence([7, 8])
        first = lower_to_jax(a * b + a)
        second = lower_to_jax(b * c + a)
        third = lower_to_jax(a - b)
        self.assertIs(first.kernel, second.kernel)
        self.assertIsNot(first.kernel, third.kernel)
        stats = lower_cache_stats()
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 2)
        self.assertEqual(stats["size"], 2)
        self.assertAlmostEqual(stats["hit_rate"], 1 / 3)

    def test_lowered_expression_reads_current_contents(self) -> None:
        from seqexpr import Sequence, lower_to_jax

        a = Sequence([1, 2, 3])
        lowered = lower_to_jax(a + a)
        self.assertEqual(lowered().tolist(), [2, 4, 6])
        a[0] = 100
        self.assertEqual(lowered().tolist(), [200, 4, 6])

    def test_float_division_by_zero_follows_ieee(self) -> None:
        import math

        from seqexpr import Sequence, materialize_with_jax

        out = materialize_with_jax(Sequence([1.0, 2.0]) / Sequence([0.0, 1.0]))
        self.assertTrue(math.isinf(out[0]))
        self.assertEqual(out[1], 2.0)

    def test_unsupported_trees_are_rejected(self) -> None:
        from seqexpr import Sequence, UnsupportedLoweringError, lower_to_jax

        a = Sequence([1, 2, 3])
        with self.assertRaises(UnsupportedLoweringError):
            lower_to_jax(a.combine(a, max))
        with self.assertRaises(UnsupportedLoweringError):
            lower_to_jax(Sequence([object(), object()]) + 1)
        with self.assertRaises(UnsupportedLoweringError):
            lower_to_jax(a)

    def test_consumed_owned_operand_cannot_be_reused(self) -> None:
        from seqexpr import OperandConsumedError, Sequence, lower_to_jax, owned

        temp = Sequence([1, 2, 3])
        wrapper = owned(temp)
        Sequence(wrapper)
        with self.assertRaises(OperandConsumedError):
            lower_to_jax(wrapper + 1)

    def test_array_interop(self) -> None:
        import jax.numpy as jnp

        from seqexpr import Sequence, from_jax, to_jax

        s = Sequence([1.0, 2.0, 3.0])
        array = to_jax(s)
        self.assertEqual(array.shape, (3,))
        back = from_jax(array * 2)
        self.assertEqual(back.tolist(), [2.0, 4.0, 6.0])
        self.assertEqual(back.element_type.name, "float32")
        self.assertEqual(to_jax(s + 1).tolist(), [2.0, 3.0, 4.0])
        self.assertEqual(from_jax(jnp.arange(3), element_type="int64").tolist(), [0, 1, 2])


if __name__ == "__main__":
    unittest.main()
