"""
Unit tests for the epoch clock and the weekly schedule.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))

from constants import DAY, HOUR, WEEK
from epoch_clock import EpochClock
from errors import InvalidTiming


class TestEpochClock(unittest.TestCase):
    def setUp(self):
        """Set up the test environment."""
        self.genesis = 1_000_000
        self.clock = EpochClock(self.genesis)

    def test_epoch_boundaries(self):
        self.assertEqual(self.clock.epoch_at(self.genesis), 0)
        self.assertEqual(self.clock.epoch_at(self.genesis + WEEK - 1), 0)
        self.assertEqual(self.clock.epoch_at(self.genesis + WEEK), 1)
        self.assertEqual(self.clock.epoch_start(2), self.genesis + 2 * WEEK)
        self.assertEqual(self.clock.epoch_end(2), self.genesis + 3 * WEEK)

    def test_before_genesis_rejected(self):
        with self.assertRaises(InvalidTiming):
            self.clock.epoch_at(self.genesis - 1)
        self.assertFalse(self.clock.in_window("deposit", self.genesis - 1))

    def test_windows(self):
        """Test every named window against its offsets."""
        start = self.clock.epoch_start(3)

        self.assertTrue(self.clock.in_rollover_buffer(start))
        self.assertFalse(self.clock.in_window("voting", start))
        self.assertTrue(self.clock.in_window("voting", start + HOUR))
        self.assertTrue(self.clock.in_window("deposit", start + 6 * DAY - 1))
        self.assertFalse(self.clock.in_window("voting", start + 6 * DAY))

        self.assertTrue(self.clock.in_window("execution", start + 6 * DAY))
        self.assertFalse(self.clock.in_window("execution", start + 6 * DAY + 12 * HOUR))
        self.assertTrue(self.clock.in_window("snapshot", start + 6 * DAY + 12 * HOUR))
        self.assertTrue(self.clock.in_window("snapshot", start + WEEK - 1))

    def test_unknown_window(self):
        with self.assertRaises(ValueError):
            self.clock.in_window("lunch", self.genesis)

    def test_require_window_raises(self):
        with self.assertRaises(InvalidTiming) as context:
            self.clock.require_window("execution", self.genesis + DAY)
        self.assertIn("outside execution window", str(context.exception))

    def test_advance_is_idempotent(self):
        """Test that rollover after a boundary is observed exactly once."""
        now = self.genesis + WEEK + 5
        self.assertTrue(self.clock.needs_rollover(now))
        self.assertEqual(self.clock.advance(now), [1])
        self.assertEqual(self.clock.advance(now), [])
        self.assertFalse(self.clock.needs_rollover(now))

    def test_advance_over_several_boundaries(self):
        self.assertEqual(self.clock.advance(self.genesis + 3 * WEEK + HOUR), [1, 2, 3])
        self.assertEqual(self.clock.current_epoch, 3)

    def test_bribe_claim_deadline(self):
        self.assertEqual(self.clock.bribe_claim_deadline(0), self.genesis + WEEK + 6 * DAY)

    def test_schedule(self):
        schedule = self.clock.schedule()
        self.assertEqual(schedule["epoch_length"], WEEK)
        self.assertEqual(schedule["execution"], (6 * DAY, 6 * DAY + 12 * HOUR))
        self.assertEqual(schedule["rollover_buffer"], (0, HOUR))


if __name__ == '__main__':
    unittest.main()
