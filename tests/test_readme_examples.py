from __future__ import annotations

import importlib.util
import math
import unittest


NUMPY_AVAILABLE = importlib.util.find_spec("numpy") is not None
JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


@unittest.skipUnless(NUMPY_AVAILABLE, "numpy is required for README examples")
class ReadmeExamplesTests(unittest.TestCase):
    """Coverage for the README example blocks."""

    def test_readme_examples_block(self) -> None:
        from seqexpr import Sequence, owned

        a = Sequence([2.0] * 5)
        b = Sequence([3.0] * 5)
        c = Sequence(a * a * a / b)
        for value in c:
            self.assertAlmostEqual(value, 8.0 / 3.0)

        m = Sequence([1, 2, 3])
        m += Sequence([0, 1, 2, 3, 4])
        self.assertEqual(str(m), "(1,3,5,3,4)")

        self.assertEqual(m[10], 0)
        m[7] = 9
        self.assertEqual(len(m), 8)

        s = Sequence([1, 2, 3, 4, 5])
        self.assertEqual(str(s.cshift(2)), "(3,4,5,1,2)")
        self.assertEqual(str(s.shift(-1)), "(0,3,4,5,1)")

        t = Sequence([1.0] * 5)
        d = Sequence(owned(t) * a)
        self.assertEqual(d.tolist(), [2.0] * 5)
        self.assertEqual(len(t), 0)

    def test_readme_notes(self) -> None:
        from seqexpr import Sequence

        self.assertEqual(Sequence([1, 2]), Sequence([3, 4]))
        self.assertEqual(Sequence(Sequence([5, 5.0]) % 0).tolist(), [0, 0])
        wrapped = Sequence(Sequence([200], element_type="uint8") + Sequence([100], element_type="uint8"))
        self.assertEqual(wrapped.tolist(), [44])
        self.assertEqual(Sequence(Sequence([1.0]) / 0).tolist(), [math.inf])
        with self.assertRaises(ZeroDivisionError):
            Sequence(Sequence([1], element_type="object") / 0)
        self.assertEqual(Sequence(Sequence([7]) / 2).tolist(), [3])

    @unittest.skipUnless(JAX_AVAILABLE, "jax is required for the lowering example")
    def test_readme_lowering_block(self) -> None:
        from seqexpr import Sequence, lower_to_jax, materialize_with_jax

        a = Sequence([2.0] * 5)
        b = Sequence([3.0] * 5)
        for value in lower_to_jax(a * a * a / b)().tolist():
            self.assertAlmostEqual(value, 8.0 / 3.0, places=5)
        self.assertEqual(materialize_with_jax(a * a + 1).tolist(), [5.0] * 5)


if __name__ == "__main__":
    unittest.main()
