"""
Unit tests for the logistic emission curve.
"""

import unittest
import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))

from constants import DECIMAL_PRECISION
from emission_curve import EmissionCurve, allocate_to_pools, emission_amount

D = DECIMAL_PRECISION


class TestEmissionAmount(unittest.TestCase):
    def test_peak_emission(self):
        """Test the formula at half supply and half utilization."""
        amount = emission_amount(500 * D, 1000 * D, D // 50, D // 2)
        # 1000 * 0.02 * 0.5 * 0.5 * 4 * 0.5 * 0.5
        self.assertEqual(amount, 5 * D)

    def test_no_utilization_no_emission(self):
        self.assertEqual(emission_amount(500 * D, 1000 * D, D // 50, 0), 0)
        self.assertEqual(emission_amount(500 * D, 1000 * D, D // 50, D), 0)

    def test_cap_reached(self):
        self.assertEqual(emission_amount(1000 * D, 1000 * D, D // 50, D // 2), 0)

    def test_never_exceeds_cap(self):
        supply = 1000 * D - 1
        self.assertLessEqual(emission_amount(supply, 1000 * D, D, D // 2), 1)

    def test_allocate_to_pools_remainder_to_top(self):
        allocation = allocate_to_pools(10, [("poolA", 2), ("poolB", 1)])
        self.assertEqual(allocation, {"poolA": 7, "poolB": 3})
        self.assertEqual(allocate_to_pools(10, []), {})


class TestEmissionCurve(unittest.TestCase):
    def setUp(self):
        """Set up the test environment."""
        self.curve = EmissionCurve(cap=1000 * D, initial_supply=100 * D, rate=D // 50)

    def test_bounded_catch_up(self):
        """Test that a long backlog is processed over several bounded calls."""
        processed, empty = self.curve.process(current_period=10, max_steps=4)
        self.assertEqual([p for p, _ in processed], [0, 1, 2, 3])
        self.assertFalse(empty)
        self.assertEqual(self.curve.backlog(10), 6)

        self.curve.process(current_period=10, max_steps=4)
        processed, empty = self.curve.process(current_period=10, max_steps=4)
        self.assertEqual([p for p, _ in processed], [8, 9])
        self.assertTrue(empty)

    def test_periods_compound_in_order(self):
        """Test that each period starts from the supply left by the previous one."""
        processed, _ = self.curve.process(current_period=3, max_steps=8)
        supply = 100 * D
        for period, amount in processed:
            self.assertEqual(amount, emission_amount(supply, 1000 * D, D // 50, D // 2))
            self.assertEqual(self.curve.history[period][0], supply * D // (1000 * D))
            supply += amount
        self.assertEqual(self.curve.supply, supply)

    def test_replay_returns_stored_value(self):
        processed, _ = self.curve.process(current_period=1, max_steps=1)
        supply = self.curve.supply

        self.assertEqual(self.curve.process(current_period=1, max_steps=1), ([], True))
        self.assertEqual(self.curve.emission(0), processed[0][1])
        self.assertEqual(self.curve.supply, supply)

    def test_staking_ratio_snapshot_per_period(self):
        self.curve.record_staking_ratio(1, 0)
        processed, _ = self.curve.process(current_period=3, max_steps=3)

        self.assertGreater(processed[0][1], 0)
        self.assertEqual(processed[1][1], 0)
        self.assertEqual(processed[2][1], 0)

    def test_processed_snapshots_are_dropped(self):
        """Test that processing consumes snapshots and later lookups read the stored ratio."""
        self.curve.record_staking_ratio(0, D // 4)
        self.curve.record_staking_ratio(2, D // 10)
        self.curve.record_staking_ratio(5, D // 3)
        self.assertEqual(self.curve.ratio_for(1), D // 4)
        self.assertEqual(self.curve.ratio_for(4), D // 10)

        self.curve.process(current_period=4, max_steps=8)

        self.assertEqual(self.curve.ratio_snapshots, {5: D // 3})
        self.assertEqual([self.curve.ratio_for(p) for p in range(4)], [D // 4, D // 4, D // 10, D // 10])
        self.assertEqual(self.curve.ratio_for(4), D // 10)
        self.assertEqual(self.curve.ratio_for(6), D // 3)

    def test_processed_period_ratio_is_immutable(self):
        self.curve.process(current_period=2, max_steps=2)
        with self.assertRaises(ValueError):
            self.curve.record_staking_ratio(1, D // 4)

    def test_unprocessed_emission_rejected(self):
        with self.assertRaises(ValueError):
            self.curve.emission(5)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            EmissionCurve(cap=100 * D, initial_supply=100 * D, rate=D // 50)
        with self.assertRaises(ValueError):
            self.curve.process(current_period=1, max_steps=0)
        with self.assertRaises(ValueError):
            self.curve.record_staking_ratio(0, 2 * D)

    def test_projection_is_monotonic(self):
        path = self.curve.project(52, D // 2)
        self.assertEqual(len(path), 52)
        self.assertTrue(np.all(np.diff(path) >= 0))
        self.assertLessEqual(path[-1], 1000)
        self.assertEqual(self.curve.supply, 100 * D)


if __name__ == '__main__':
    unittest.main()
