"""Unit tests for the canter/gallop lead analyzer."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._core import Gait, Lead
from equigait.analyzers import LeadAnalyzer

FS = 100.0
F_STRIDE = 2.34375


def _feed(analyzer, lateral_fn, yaw_fn, n=256):
    t = np.arange(n) / FS
    w = 2 * np.pi * F_STRIDE * t
    lateral, yaw = lateral_fn(w), yaw_fn(w)
    for i in range(n):
        analyzer.process_sample(float(t[i]), float(lateral[i]), float(yaw[i]), F_STRIDE)


class TestLeadAnalyzer(unittest.TestCase):
    def _cantering(self):
        a = LeadAnalyzer()
        a.set_gait(Gait.CANTER)
        return a

    def test_inactive_outside_canter_and_gallop(self):
        a = LeadAnalyzer()
        a.set_gait(Gait.TROT)
        self.assertFalse(a.is_active)
        _feed(a, np.cos, np.sin)
        self.assertIs(a.current_lead, Lead.UNKNOWN)
        self.assertEqual(a.left_duration, 0.0)

    def test_lateral_leading_yaw_is_left_lead(self):
        a = self._cantering()
        _feed(a, np.cos, np.sin)
        lead, confidence = a.analyze(F_STRIDE)
        self.assertIs(lead, Lead.LEFT)
        self.assertGreater(confidence, 0.9)
        self.assertAlmostEqual(a.phase_angle, 90.0, delta=3.0)

    def test_lateral_lagging_yaw_is_right_lead(self):
        a = self._cantering()
        _feed(a, lambda w: -np.cos(w), np.sin)
        lead, confidence = a.analyze(F_STRIDE)
        self.assertIs(lead, Lead.RIGHT)
        self.assertGreater(confidence, 0.9)

    def test_in_phase_and_antiphase_are_unknown(self):
        for lateral_fn in (np.sin, lambda w: -np.sin(w)):
            a = self._cantering()
            _feed(a, lateral_fn, np.sin)
            lead, _ = a.analyze(F_STRIDE)
            self.assertIs(lead, Lead.UNKNOWN)

    def test_no_lateral_signal_is_unknown(self):
        a = self._cantering()
        _feed(a, np.zeros_like, np.zeros_like)
        self.assertIs(a.analyze(F_STRIDE)[0], Lead.UNKNOWN)
        self.assertEqual(a.phase_confidence, 0.0)

    def test_durations_accumulate_only_with_a_reliable_lead(self):
        a = self._cantering()
        _feed(a, np.cos, np.sin)
        self.assertIs(a.current_lead, Lead.LEFT)
        self.assertGreater(a.left_duration, 0.9)
        self.assertEqual(a.right_duration, 0.0)

    def test_leaving_canter_clears_lead(self):
        a = self._cantering()
        _feed(a, np.cos, np.sin)
        a.set_gait(Gait.TROT)
        self.assertIs(a.current_lead, Lead.UNKNOWN)
        self.assertEqual(a.confidence, 0.0)
        a.set_gait(Gait.GALLOP)
        self.assertIs(a.current_lead, Lead.UNKNOWN)

    def test_canter_to_gallop_keeps_buffers(self):
        a = self._cantering()
        _feed(a, np.cos, np.sin)
        a.set_gait(Gait.GALLOP)
        self.assertIs(a.current_lead, Lead.LEFT)

    def test_asymmetry_estimator(self):
        t = np.arange(200) / FS
        x = 0.3 * np.sin(2 * np.pi * F_STRIDE * t)
        lead, conf = LeadAnalyzer.asymmetry_estimate(x - 0.2)
        self.assertIs(lead, Lead.LEFT)
        self.assertGreater(conf, 0.5)
        lead, _ = LeadAnalyzer.asymmetry_estimate(x + 0.2)
        self.assertIs(lead, Lead.RIGHT)
        self.assertEqual(LeadAnalyzer.asymmetry_estimate(x[:10]), (Lead.UNKNOWN, 0.0))

    def test_asymmetry_alone_cannot_reach_threshold_when_weak(self):
        a = self._cantering()
        rng = np.random.default_rng(5)
        for i in range(100):
            a.process_sample(i / FS, float(rng.normal(-0.04, 0.01)), 0.0)
        self.assertIs(a.current_lead, Lead.UNKNOWN)

    def test_short_window_coherence_averages_several_segments(self):
        a = LeadAnalyzer()
        self.assertEqual(a._coherence_for(128).segment_length, 64)
        self.assertEqual(a._coherence_for(200).segment_length, 100)
        self.assertEqual(a._coherence_for(256).segment_length, 128)
        rng = np.random.default_rng(11)
        x, y = rng.normal(size=128), rng.normal(size=128)
        self.assertLess(a._coherence_for(128).coherence(x, y, F_STRIDE), 0.99)

    def test_constructor_validation(self):
        with self.assertRaises(ValueError):
            LeadAnalyzer(min_samples=512, window=256)
        with self.assertRaises(ValueError):
            LeadAnalyzer(threshold=0.0)


if __name__ == "__main__":
    unittest.main()
