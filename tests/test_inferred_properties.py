from __future__ import annotations

import importlib.util
import unittest


NUMPY_AVAILABLE = importlib.util.find_spec("numpy") is not None


@unittest.skipUnless(NUMPY_AVAILABLE, "numpy is required for property tests")
class InferredPropertyTests(unittest.TestCase):
    def test_reads_past_both_operands_are_zero_before_and_after_materialization(self) -> None:
        from seqexpr import Sequence

        m = Sequence([1, 2, 3])
        n = Sequence([4, 5])
        expr = m + n
        for index in (3, 4, 50):
            with self.subTest(index=index):
                self.assertEqual(expr[index], 0)
                self.assertEqual(Sequence(expr)[index], 0)

    def test_rotation_round_trips(self) -> None:
        from seqexpr import Sequence

        values = [1, 2, 3, 4, 5, 6]
        for steps in (1, 2, 5, -3):
            with self.subTest(steps=steps):
                self.assertEqual(Sequence(values).cshift(steps).cshift(-steps).tolist(), values)
        self.assertEqual(Sequence(values).shift(2).shift(-2).tolist(), [0, 0, 3, 4, 5, 6])
        self.assertEqual(Sequence(values).shift(-2).shift(2).tolist(), [1, 2, 3, 4, 0, 0])

    def test_fusion_evaluates_the_chain_into_one_buffer(self) -> None:
        from seqexpr import Sequence, allocation_stats

        for type_name, expected in (("int64", 2), ("float64", 8.0 / 3.0)):
            with self.subTest(element_type=type_name):
                a = Sequence([2] * 5, element_type=type_name)
                b = Sequence([3] * 5, element_type=type_name)
                allocation_stats(reset=True)
                c = Sequence(a * a * a / b)
                stats = allocation_stats()
                self.assertEqual((stats["buffers"], stats["elements"]), (1, 5))
                for value in c:
                    self.assertAlmostEqual(value, expected)

    def test_write_past_the_end_grows(self) -> None:
        from seqexpr import Sequence

        c = Sequence(element_type="float64")
        c[999] = 5.0
        self.assertEqual(len(c), 1000)
        self.assertEqual(c.tolist()[:999], [0.0] * 999)
        self.assertEqual(c[999], 5.0)

    def test_compound_assignment_grows_to_the_longer_operand(self) -> None:
        from seqexpr import Sequence

        m = Sequence([1, 2, 3])
        n = Sequence([0, 1, 2, 3, 4])
        m += n
        self.assertEqual(len(m), 5)
        self.assertEqual(str(m), "(1,3,5,3,4)")

    def test_equal_lengths_compare_equal(self) -> None:
        from seqexpr import Sequence

        self.assertEqual(Sequence([1, 2, 3]), Sequence([4, 5, 6]))
        self.assertNotEqual(Sequence([1, 2, 3]), Sequence([1, 2, 3, 4]))

    def test_truth_value(self) -> None:
        from seqexpr import Sequence

        s = Sequence([0] * 10)
        self.assertFalse(s)
        s[7] = 1
        self.assertTrue(s)


if __name__ == "__main__":
    unittest.main()
