"""Tests for the streaming GaitAnalyzer session and its segment state machine."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._config import AnalysisConfig, HorseProfile
from equigait._core import Gait, GaitFeatureVector, Lead, LocationSample, MotionSample
from equigait._io import synthesize_recording
from equigait._session import GaitAnalyzer, GaitEventType, SessionState
from equigait.hmm import FEATURE_RANGES


def _centred(analyzer, gait, timestamp):
    lo, hi = analyzer.hmm.frequency_range(gait)
    mid = {name: (a + b) / 2.0 for name, (a, b) in FEATURE_RANGES[gait].items()}
    return GaitFeatureVector(stride_frequency=(lo + hi) / 2.0, timestamp=timestamp, **mid)


def _feed_until(analyzer, gait, start, step=0.01, limit=50):
    """Feed *gait*-centred vectors until it is committed; returns the time."""
    t = start
    for _ in range(limit):
        if analyzer.process_features(_centred(analyzer, gait, t)) is gait:
            return t
        t += step
    raise AssertionError(f"{gait} never committed")


def _ride(analyzer, recording, observe=None):
    locations = list(recording.location)
    i = 0
    for sample in recording.motion:
        while i < len(locations) and locations[i].timestamp <= sample.timestamp:
            analyzer.process_location(locations[i])
            i += 1
        analyzer.process_motion(sample)
        if observe is not None:
            observe(analyzer)


class TestSessionLifecycle(unittest.TestCase):
    def test_start_opens_one_stationary_segment(self):
        a = GaitAnalyzer()
        self.assertIs(a.state, SessionState.IDLE)
        a.start_analyzing(start_time=5.0)
        self.assertTrue(a.is_analyzing)
        self.assertIs(a.current_gait, Gait.STATIONARY)
        self.assertEqual(len(a.segments), 1)
        self.assertEqual(a.open_segment.start_time, 5.0)

    def test_double_start_and_idle_stop_are_rejected(self):
        a = GaitAnalyzer()
        with self.assertRaises(RuntimeError):
            a.stop_analyzing()
        a.start_analyzing()
        with self.assertRaises(RuntimeError):
            a.start_analyzing()

    def test_stop_finalizes_every_segment(self):
        sunk = []
        a = GaitAnalyzer(segment_sink=sunk.append)
        a.start_analyzing()
        _feed_until(a, Gait.TROT, 1.0)
        result = a.stop_analyzing(end_time=10.0)
        self.assertIs(a.state, SessionState.IDLE)
        self.assertTrue(all(not s.is_open for s in result.segments))
        self.assertEqual([s.gait for s in result.segments], [Gait.STATIONARY, Gait.TROT])
        self.assertEqual(result.segments[-1].end_time, 10.0)
        self.assertEqual(sunk, result.segments)

    def test_restart_clears_previous_session(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        _feed_until(a, Gait.WALK, 1.0)
        a.stop_analyzing()
        a.start_analyzing(profile=HorseProfile(breed="arabian"))
        self.assertEqual(len(a.segments), 1)
        self.assertEqual(a.transitions, [])
        self.assertEqual(a.profile.breed, "arabian")

    def test_samples_ignored_while_idle(self):
        a = GaitAnalyzer()
        self.assertIsNone(a.process_motion(MotionSample(0.0)))
        self.assertIsNone(a.process_features(GaitFeatureVector()))
        a.process_location(LocationSample(0.0, speed=3.0, distance=3.0))
        self.assertEqual(a.gps_speed, 0.0)


class TestSegmentGate(unittest.TestCase):
    def test_confident_change_commits_and_notifies_once(self):
        a = GaitAnalyzer()
        changes = []
        a.on_gait_change(lambda prev, new: changes.append((prev, new)))
        a.start_analyzing()
        t = _feed_until(a, Gait.CANTER, 0.5)
        for k in range(5):
            self.assertIsNone(a.process_features(_centred(a, Gait.CANTER, t + 0.25 * (k + 1))))
        self.assertEqual(changes, [(Gait.STATIONARY, Gait.CANTER)])
        self.assertEqual(a.open_segment.start_time, t)
        self.assertEqual(a.segments[0].end_time, t)
        self.assertGreaterEqual(a.confidence, a.config.confidence_threshold)

    def test_sub_threshold_proposal_does_not_mutate(self):
        a = GaitAnalyzer(AnalysisConfig(confidence_threshold=0.99))
        seen = []
        a.add_listener(seen.append)
        a.start_analyzing()
        seen.clear()
        fv = GaitFeatureVector(
            stride_frequency=2.06, spectral_entropy=0.2, normalized_vertical_rms=0.354,
            gps_speed=4.0, gps_accuracy=5.0, timestamp=1.27,
        )
        self.assertIsNone(a.process_features(fv))
        self.assertIs(a.hmm.current_state, Gait.CANTER)
        self.assertLess(a.confidence, 0.99)
        self.assertIs(a.current_gait, Gait.STATIONARY)
        self.assertEqual(len(a.segments), 1)
        self.assertEqual(seen, [])

    def test_event_order_on_commit(self):
        a = GaitAnalyzer()
        kinds = []
        a.add_listener(lambda ev: kinds.append(ev.kind))
        a.start_analyzing()
        _feed_until(a, Gait.WALK, 1.0)
        self.assertEqual(kinds, [
            GaitEventType.SESSION_STARTED,
            GaitEventType.SEGMENT_OPENED,
            GaitEventType.SEGMENT_CLOSED,
            GaitEventType.SEGMENT_OPENED,
            GaitEventType.GAIT_CHANGED,
            GaitEventType.TRANSITION_RECORDED,
        ])

    def test_listener_can_read_state_during_delivery(self):
        a = GaitAnalyzer()
        seen = []
        a.on_gait_change(lambda prev, new: seen.append(a.current_gait))
        a.start_analyzing()
        _feed_until(a, Gait.TROT, 1.0)
        self.assertEqual(seen, [Gait.TROT])

    def test_quick_second_change_opens_segment_but_is_not_recorded(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        t = _feed_until(a, Gait.CANTER, 0.5)
        t2 = _feed_until(a, Gait.TROT, t + 0.01)
        self.assertLess(t2 - t, 1.0)
        self.assertEqual([s.gait for s in a.segments], [Gait.STATIONARY, Gait.CANTER, Gait.TROT])
        self.assertEqual(len(a.transitions), 1)
        self.assertEqual(sum(1 for s in a.segments if s.is_open), 1)

    def test_remove_listener(self):
        a = GaitAnalyzer()
        calls = []
        listener = a.on_gait_change(lambda prev, new: calls.append(new))
        a.remove_listener(listener)
        a.start_analyzing()
        _feed_until(a, Gait.WALK, 1.0)
        self.assertEqual(calls, [])
        with self.assertRaises(ValueError):
            a.add_listener("not callable")


class TestStreams(unittest.TestCase):
    def test_location_accumulates_distance_and_smooths_speed(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        a.process_location(LocationSample(1.0, speed=3.0, distance=3.0))
        a.process_location(LocationSample(2.0, speed=5.0, distance=5.0))
        self.assertAlmostEqual(a.open_segment.distance, 8.0)
        self.assertAlmostEqual(a.gps_speed, 4.0)

        a.process_location(LocationSample(3.0, speed=12.0, distance=2.0, horizontal_accuracy=50.0))
        a.process_location(LocationSample(4.0, speed=-1.0))
        self.assertAlmostEqual(a.open_segment.distance, 10.0)
        self.assertAlmostEqual(a.gps_speed, 4.0)

    def test_speed_window_is_bounded(self):
        a = GaitAnalyzer(AnalysisConfig(speed_smoothing=2))
        a.start_analyzing()
        for i, v in enumerate([1.0, 2.0, 6.0]):
            a.process_location(LocationSample(float(i), speed=v))
        self.assertAlmostEqual(a.gps_speed, 4.0)

    def test_non_finite_motion_is_dropped(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        with self.assertLogs("equigait._session", "WARNING"):
            self.assertIsNone(a.process_motion(MotionSample(0.0, acceleration=(float("nan"), 0.0, 0.0))))
        self.assertEqual(a._sample_count, 0)

    def test_wearable_validation(self):
        a = GaitAnalyzer()
        with self.assertRaises(ValueError):
            a.update_wearable(-0.1, 0.2)
        a.update_wearable(0.4, 0.2)

    def test_diagnostics_only_when_enabled(self):
        self.assertIsNone(GaitAnalyzer().diagnostics)
        a = GaitAnalyzer(AnalysisConfig(diagnostics=True))
        a.start_analyzing()
        _feed_until(a, Gait.TROT, 1.0)
        self.assertGreater(len(a.diagnostics.entries), 0)
        self.assertEqual(len(a.diagnostics.transitions), 1)
        self.assertIn("p_trot", a.diagnostics.entries[-1])


class TestEndToEnd(unittest.TestCase):
    def test_three_second_canter(self):
        sunk = []
        changes = []
        open_counts = set()
        a = GaitAnalyzer(segment_sink=sunk.append)
        a.on_gait_change(lambda prev, new: changes.append((prev, new)))
        a.start_analyzing()
        _ride(a, synthesize_recording(3.0), observe=lambda an: open_counts.add(
            sum(1 for s in an.segments if s.is_open)))

        self.assertEqual(open_counts, {1})
        self.assertIs(a.current_gait, Gait.CANTER)
        self.assertGreater(a.confidence, 0.7)
        self.assertIs(a.current_lead, Lead.UNKNOWN)
        self.assertEqual(changes, [(Gait.STATIONARY, Gait.CANTER)])
        self.assertEqual([s.gait for s in sunk], [Gait.STATIONARY])
        self.assertAlmostEqual(a.last_features.stride_frequency, 2.0, delta=0.2)

        result = a.stop_analyzing()
        self.assertEqual([s.gait for s in result.segments], [Gait.STATIONARY, Gait.CANTER])
        self.assertTrue(all(not s.is_open for s in result.segments))
        self.assertTrue(1.0 < result.segments[1].start_time < 2.0)
        self.assertAlmostEqual(result.segments[1].end_time, 2.99)
        self.assertAlmostEqual(result.segments[1].distance, 4.0)
        self.assertEqual(len(result.transitions), 1)
        self.assertIs(result.segments[1].lead, Lead.UNKNOWN)

    def test_scores_go_neutral_after_halt(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        _ride(a, synthesize_recording(5.0))
        self.assertGreater(a.symmetry.symmetry_score, 0.0)
        self.assertEqual(a.symmetry.coherence, 0.0)
        self.assertEqual(a.open_segment.symmetry_confidence, a.symmetry.confidence)

        for i in range(500, 1200):
            a.process_motion(MotionSample(i / 100.0))
        self.assertEqual(a.symmetry.impact_count, 0)
        self.assertEqual(a.open_segment.symmetry_score, 0.0)
        self.assertEqual(a.open_segment.symmetry_confidence, 0.0)
        self.assertEqual(a.open_segment.rhythm_score, 0.0)
        self.assertEqual(a.open_segment.rhythm_confidence, 0.0)

    def test_no_analysis_before_enough_samples(self):
        a = GaitAnalyzer()
        a.start_analyzing()
        _ride(a, synthesize_recording(1.0))
        self.assertIsNone(a.last_features)
        self.assertIs(a.current_gait, Gait.STATIONARY)


if __name__ == "__main__":
    unittest.main()
