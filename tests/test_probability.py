import unittest

from fair_dice import Die, HelpTableGenerator, ProbabilityCalculator, ProbabilityTable

A = Die([2, 2, 4, 4, 9, 9])
B = Die([1, 1, 6, 6, 8, 8])
C = Die([3, 3, 5, 5, 7, 7])


class TestProbabilityCalculator(unittest.TestCase):
    def test_known_win_probabilities(self):
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(A, B), 5 / 9)
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(B, C), 5 / 9)
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(C, A), 5 / 9)
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(B, A), 4 / 9)
        self.assertAlmostEqual(round(ProbabilityCalculator.win_probability(A, B), 4), 0.5556)

    def test_win_win_and_tie_sum_to_one(self):
        pairs = [
            (A, B),
            (B, C),
            (Die([1, 2, 3]), Die([2, 2, 3])),
            (Die([5, 5]), Die([5, 5])),
            (Die([-3, 0, 7]), Die([0, 0, 1])),
        ]
        for a, b in pairs:
            total = (
                ProbabilityCalculator.win_probability(a, b)
                + ProbabilityCalculator.win_probability(b, a)
                + ProbabilityCalculator.tie_probability(a, b)
            )
            self.assertAlmostEqual(total, 1.0)

    def test_ties_reduce_both_win_probabilities(self):
        a, b = Die([1, 2, 3]), Die([2, 2, 3])
        self.assertAlmostEqual(ProbabilityCalculator.tie_probability(a, b), 3 / 9)
        self.assertLess(
            ProbabilityCalculator.win_probability(a, b) + ProbabilityCalculator.win_probability(b, a),
            1.0,
        )

    def test_single_sided_die(self):
        one = Die([5])
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(one, Die([4])), 1.0)
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(Die([4]), one), 0.0)
        self.assertAlmostEqual(ProbabilityCalculator.tie_probability(one, Die([4])), 0.0)
        self.assertAlmostEqual(ProbabilityCalculator.tie_probability(one, Die([5])), 1.0)
        self.assertAlmostEqual(ProbabilityCalculator.win_probability(one, B), 2 / 6)


class TestProbabilityTable(unittest.TestCase):
    def test_build_leaves_diagonal_empty(self):
        table = ProbabilityTable.build([A, B, C])
        self.assertEqual(len(table), 3)
        for i, row in enumerate(table):
            self.assertEqual(len(row), 3)
            self.assertIsNone(row[i])

    def test_build_matches_pairwise_probabilities(self):
        dice = [A, B, C]
        table = ProbabilityTable.build(dice)
        for i, a in enumerate(dice):
            for j, b in enumerate(dice):
                if i != j:
                    self.assertAlmostEqual(table[i][j], ProbabilityCalculator.win_probability(a, b))

    def test_non_transitive_cycle(self):
        table = ProbabilityTable.build([A, B, C])
        self.assertAlmostEqual(table[0][1], 5 / 9)
        self.assertAlmostEqual(table[1][2], 5 / 9)
        self.assertAlmostEqual(table[2][0], 5 / 9)
        self.assertAlmostEqual(table[0][2], 4 / 9)
        # each die beats exactly one other and loses to exactly one other
        self.assertEqual(ProbabilityTable.dominance([A, B, C]), [[1], [2], [0]])

    def test_single_sided_dice_in_table(self):
        table = ProbabilityTable.build([Die([1]), Die([2]), Die([2])])
        self.assertEqual(table[1][0], 1.0)
        self.assertEqual(table[0][1], 0.0)
        self.assertEqual(table[1][2], 0.0)
        self.assertEqual(table[2][1], 0.0)

    def test_empty_set(self):
        self.assertEqual(ProbabilityTable.build([]), [])


class TestHelpTableGenerator(unittest.TestCase):
    def test_renders_dice_and_probabilities(self):
        text = HelpTableGenerator().generate_table([A, B, C])
        self.assertIn("2,2,4,4,9,9", text)
        self.assertIn("0.5556", text)
        self.assertIn("0.4444", text)
        self.assertIn("Win Probability Table", text)

    def test_precision_and_diagonal_marker(self):
        gen = HelpTableGenerator(precision=2)
        self.assertEqual(gen.format_cell(None), "-")
        self.assertEqual(gen.format_cell(5 / 9), "0.56")


if __name__ == '__main__':
    unittest.main()
