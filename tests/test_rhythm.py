"""Unit tests for the stride rhythm analyzer."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._core import Gait, ReinDirection
from equigait.analyzers import STRIDE_RATE_BANDS, RhythmAnalyzer

FS = 100.0


def _regular(t):
    # 0.6 s strides, crossings between samples
    return np.sin(2 * np.pi * (t - 0.003) / 0.6)


def _alternating(t):
    # Strides alternate 0.4 s and 0.8 s
    r = t % 1.2
    frac = r / 0.4 if r < 0.4 else (r - 0.4) / 0.8
    return np.sin(2 * np.pi * frac)


def _run(analyzer, fn, seconds=10.0, gait=Gait.CANTER):
    for i in range(int(seconds * FS)):
        t = i / FS
        analyzer.process_sample(t, float(fn(t)), gait)


class TestRhythmAnalyzer(unittest.TestCase):
    def test_regular_canter_scores_full_marks(self):
        a = RhythmAnalyzer()
        _run(a, _regular)
        self.assertAlmostEqual(a.stride_rate, 100.0, delta=0.5)
        self.assertGreater(a.consistency_score, 99.0)
        self.assertEqual(a.appropriateness_score, 100.0)
        self.assertGreater(a.rhythm_score, 99.0)
        self.assertGreaterEqual(a.stride_count, 4)

    def test_irregular_strides_lose_consistency(self):
        a = RhythmAnalyzer()
        _run(a, _alternating)
        self.assertEqual(a.consistency_score, 0.0)
        self.assertAlmostEqual(a.rhythm_score, 20.0, delta=1.0)

    def test_window_bounds_retained_intervals(self):
        a = RhythmAnalyzer(window_seconds=3.0)
        _run(a, _regular, seconds=20.0)
        self.assertLessEqual(a.stride_count, 6)

    def test_no_score_until_enough_strides(self):
        a = RhythmAnalyzer()
        _run(a, _regular, seconds=2.0)
        self.assertEqual(a.rhythm_score, 0.0)

    def test_stationary_ignores_and_clears(self):
        a = RhythmAnalyzer()
        _run(a, _regular, gait=Gait.STATIONARY)
        self.assertEqual(a.stride_count, 0)
        _run(a, _regular)
        self.assertGreater(a.rhythm_score, 0.0)
        a.set_gait(Gait.STATIONARY)
        self.assertEqual(a.rhythm_score, 0.0)
        self.assertEqual(a.stride_count, 0)

    def test_flat_signal_decays_score_to_zero(self):
        a = RhythmAnalyzer()
        _run(a, _regular, seconds=6.0)
        self.assertGreater(a.rhythm_score, 99.0)
        for i in range(600, 1400):
            a.process_sample(i / FS, 0.0, Gait.CANTER)
        self.assertEqual(a.stride_count, 0)
        self.assertEqual(a.rhythm_score, 0.0)
        self.assertEqual(a.stride_rate, 0.0)
        self.assertEqual(a.appropriateness_score, 0.0)
        self.assertEqual(a.confidence, 0.0)

    def test_confidence_tracks_count_and_regularity(self):
        a = RhythmAnalyzer()
        self.assertEqual(a.confidence, 0.0)
        _run(a, _regular)
        self.assertGreater(a.confidence, 0.99)
        b = RhythmAnalyzer()
        _run(b, _alternating)
        self.assertAlmostEqual(b.confidence, 0.5)
        c = RhythmAnalyzer()
        _run(c, _regular, seconds=2.9)
        self.assertEqual(c.stride_count, 4)
        self.assertAlmostEqual(c.confidence, 0.75, delta=0.01)

    def test_appropriateness(self):
        lo, hi = STRIDE_RATE_BANDS[Gait.TROT]
        self.assertEqual(RhythmAnalyzer.appropriateness((lo + hi) / 2, Gait.TROT), 100.0)
        self.assertAlmostEqual(RhythmAnalyzer.appropriateness(75.0, Gait.CANTER), 37.5)
        self.assertEqual(RhythmAnalyzer.appropriateness(0.0, Gait.CANTER), 0.0)
        self.assertEqual(RhythmAnalyzer.appropriateness(60.0, Gait.STATIONARY), 50.0)

    def test_scores_bank_per_rein(self):
        a = RhythmAnalyzer()
        a.update_rein(ReinDirection.LEFT)
        _run(a, _regular)
        a.update_rein(ReinDirection.RIGHT)
        averages = a.rein_averages()
        self.assertIn("left", averages)
        self.assertNotIn("right", averages)
        self.assertGreater(averages["left"], 90.0)

    def test_validation(self):
        with self.assertRaises(ValueError):
            RhythmAnalyzer(min_interval=0)
        with self.assertRaises(ValueError):
            RhythmAnalyzer(min_interval=1.0, max_interval=0.5)
        with self.assertRaises(ValueError):
            RhythmAnalyzer(min_strides=1)


if __name__ == "__main__":
    unittest.main()
