"""Unit tests for rein detection and per-rein score tracking."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._core import ReinDirection
from equigait.analyzers import ReinDetector, ReinScoreTracker

FS = 100.0
LEFT_TURN = (0.2, -0.3)
RIGHT_TURN = (-0.2, 0.3)


def _turn(detector, start, n, turn):
    lateral, yaw = turn
    rein = None
    for i in range(n):
        rein = detector.process_sample(start + i / FS, lateral, yaw)
    return rein


class TestReinScoreTracker(unittest.TestCase):
    def test_scores_bank_on_rein_change(self):
        tracker = ReinScoreTracker()
        tracker.update_rein(ReinDirection.LEFT)
        tracker.record(80)
        tracker.record(90)
        self.assertEqual(tracker.averages(), {})
        tracker.update_rein(ReinDirection.RIGHT)
        tracker.record(60)
        tracker.finalize()
        self.assertEqual(tracker.averages(), {"left": 85.0, "right": 60.0})
        self.assertAlmostEqual(tracker.balance, 25.0)

    def test_balance_needs_both_reins(self):
        tracker = ReinScoreTracker()
        tracker.update_rein(ReinDirection.LEFT)
        tracker.record(70)
        tracker.finalize()
        self.assertEqual(tracker.balance, 0.0)
        self.assertEqual(tracker.average(ReinDirection.RIGHT), 0.0)

    def test_scores_before_a_rein_count_as_straight(self):
        tracker = ReinScoreTracker()
        tracker.record(50)
        tracker.update_rein(ReinDirection.LEFT)
        self.assertEqual(tracker.averages(), {"straight": 50.0})


class TestReinDetector(unittest.TestCase):
    def test_sustained_left_turn(self):
        d = ReinDetector()
        self.assertIs(_turn(d, 0.0, 10, LEFT_TURN), ReinDirection.STRAIGHT)
        self.assertIs(_turn(d, 0.1, 100, LEFT_TURN), ReinDirection.LEFT)

    def test_straight_line_stays_straight(self):
        d = ReinDetector()
        self.assertIs(_turn(d, 0.0, 200, (0.02, 0.05)), ReinDirection.STRAIGHT)

    def test_change_of_rein_is_debounced(self):
        d = ReinDetector()
        _turn(d, 0.0, 50, LEFT_TURN)
        self.assertIs(_turn(d, 0.5, 100, RIGHT_TURN), ReinDirection.LEFT)
        self.assertIs(_turn(d, 1.5, 100, RIGHT_TURN), ReinDirection.RIGHT)

    def test_durations_follow_current_rein(self):
        d = ReinDetector()
        _turn(d, 0.0, 300, LEFT_TURN)
        self.assertAlmostEqual(d.durations[ReinDirection.LEFT], 2.8, delta=0.02)
        self.assertAlmostEqual(d.durations[ReinDirection.STRAIGHT], 0.19, delta=0.02)
        self.assertEqual(d.durations[ReinDirection.RIGHT], 0.0)

    def test_validation(self):
        with self.assertRaises(ValueError):
            ReinDetector(window=1)
        with self.assertRaises(ValueError):
            ReinDetector(min_duration=-1)


if __name__ == "__main__":
    unittest.main()
