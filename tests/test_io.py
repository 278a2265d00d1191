"""Unit tests for recording I/O, synthetic rides and session export."""

from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._config import AnalysisConfig, HorseProfile
from equigait._core import Gait, LocationSample, MotionSample, SessionResult
from equigait._io import (
    EXPORT_FORMATS,
    Recording,
    export_session,
    list_examples,
    load_example,
    load_recording,
    run_recording,
    save_recording,
    synthesize_recording,
)


class TestSynthesize(unittest.TestCase):
    def test_shape_and_location_fixes(self):
        rec = synthesize_recording(duration=3.0)
        self.assertEqual(len(rec.motion), 300)
        self.assertEqual([s.timestamp for s in rec.location], [1.0, 2.0, 3.0])
        self.assertAlmostEqual(rec.location[0].distance, 4.0)
        self.assertAlmostEqual(rec.duration, 2.99)

    def test_vertical_on_device_z(self):
        rec = synthesize_recording(duration=1.0, stride_frequency=2.0, vertical_amplitude=0.5)
        peak = max(s.acceleration[2] for s in rec.motion)
        self.assertAlmostEqual(peak, 0.5, places=2)
        self.assertTrue(all(s.acceleration[0] == 0.0 for s in rec.motion))

    def test_noise_is_reproducible(self):
        a = synthesize_recording(duration=1.0, noise=0.05, seed=3)
        b = synthesize_recording(duration=1.0, noise=0.05, seed=3)
        self.assertEqual(a.motion, b.motion)

    def test_validation(self):
        with self.assertRaises(ValueError):
            synthesize_recording(duration=0)
        with self.assertRaises(ValueError):
            synthesize_recording(gps_rate=0)


class TestExamples(unittest.TestCase):
    def test_list_examples(self):
        self.assertEqual(list_examples(), ["stationary", "walk", "trot", "canter", "gallop"])

    def test_aliases(self):
        self.assertEqual(load_example("lope", duration=1.0).description, "synthetic canter")
        self.assertEqual(load_example("Halt", duration=1.0).description, "synthetic stationary")

    def test_unknown_raises(self):
        with self.assertRaises(ValueError):
            load_example("tolt")
        with self.assertRaises(ValueError):
            load_example("")


class TestRecordingFiles(unittest.TestCase):
    def test_json_round_trip_keeps_horse(self):
        rec = synthesize_recording(duration=1.0)
        rec.horse = HorseProfile(breed="arabian", age=12)
        with tempfile.TemporaryDirectory() as tmp:
            path = save_recording(rec, Path(tmp) / "ride.json")
            loaded = load_recording(path)
        self.assertEqual(len(loaded.motion), len(rec.motion))
        self.assertEqual(loaded.horse.breed, "arabian")
        self.assertEqual(loaded.motion[10], rec.motion[10])

    def test_csv_round_trip_merges_location(self):
        rec = synthesize_recording(duration=2.5)
        with tempfile.TemporaryDirectory() as tmp:
            path = save_recording(rec, Path(tmp) / "ride.csv")
            header = path.read_text(encoding="utf-8").splitlines()[0]
            loaded = load_recording(path)
        self.assertTrue(header.startswith("timestamp,accel_x"))
        self.assertEqual(len(loaded.motion), 250)
        self.assertAlmostEqual(loaded.sample_rate, 100.0, places=3)
        self.assertEqual([s.timestamp for s in loaded.location], [1.0, 2.0])
        self.assertAlmostEqual(loaded.location[0].speed, 4.0)

    def test_csv_keeps_fixes_without_a_motion_row(self):
        rec = synthesize_recording(duration=3.0)
        rec.location.append(LocationSample(1.234567, speed=5.0, distance=1.0))
        with tempfile.TemporaryDirectory() as tmp:
            loaded = load_recording(save_recording(rec, Path(tmp) / "ride.csv"))
        self.assertEqual(len(loaded.motion), 300)
        stamps = sorted(s.timestamp for s in loaded.location)
        self.assertEqual(len(stamps), 4)
        for got, want in zip(stamps, [1.0, 1.234567, 2.0, 3.0]):
            self.assertAlmostEqual(got, want)
        self.assertAlmostEqual(loaded.sample_rate, 100.0, places=3)

    def test_gravity_survives_both_formats(self):
        rec = Recording(motion=[
            MotionSample(0.0, gravity=(0.1, -0.2, -0.97)),
            MotionSample(0.01),
        ])
        with tempfile.TemporaryDirectory() as tmp:
            from_json = load_recording(save_recording(rec, Path(tmp) / "g.json"))
            from_csv = load_recording(save_recording(rec, Path(tmp) / "g.csv"))
        for loaded in (from_json, from_csv):
            for got, want in zip(loaded.motion[0].gravity, (0.1, -0.2, -0.97)):
                self.assertAlmostEqual(got, want)
            self.assertEqual(loaded.motion[1].gravity, (0.0, 0.0, -1.0))

    def test_minimal_csv_defaults_missing_columns(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "min.csv"
            path.write_text("timestamp,accel_z,speed\n0.0,0.1,\n0.01,0.2,3.0\n", encoding="utf-8")
            loaded = load_recording(path)
        self.assertEqual(loaded.motion[0].quaternion, (1.0, 0.0, 0.0, 0.0))
        self.assertEqual(len(loaded.location), 1)
        self.assertEqual(loaded.location[0].horizontal_accuracy, 5.0)

    def test_load_errors(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                load_recording(Path(tmp) / "missing.json")
            with self.assertRaises(ValueError):
                load_recording(Path(tmp) / "ride.txt")
            bad = Path(tmp) / "bad.json"
            bad.write_text("{oops", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_recording(bad)
            rows = Path(tmp) / "rows.json"
            rows.write_text(json.dumps({"motion": [{"acceleration": [0, 0, 1]}]}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_recording(rows)

    def test_from_dict_rejects_bad_vectors(self):
        with self.assertRaises(ValueError):
            Recording.from_dict({"motion": [{"t": 0.0, "acceleration": [0, 1]}]})
        with self.assertRaises(ValueError):
            Recording.from_dict({"sample_rate": 0})


class TestRunAndExport(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.result = run_recording(synthesize_recording(duration=3.0))

    def test_run_recording_classifies_canter(self):
        self.assertIsInstance(self.result, SessionResult)
        self.assertIs(self.result.segments[-1].gait, Gait.CANTER)
        self.assertEqual(len(self.result.transitions), 1)

    def test_run_recording_with_listener(self):
        events = []
        run_recording(synthesize_recording(duration=1.0), AnalysisConfig(), listener=events.append)
        self.assertGreaterEqual(len(events), 3)

    def test_export_all_formats(self):
        with tempfile.TemporaryDirectory() as tmp:
            written = export_session(self.result, Path(tmp) / "out" / "ride", formats=EXPORT_FORMATS)
            self.assertEqual(set(written), {"json", "segments", "transitions", "xlsx"})
            payload = json.loads(Path(written["json"]).read_text(encoding="utf-8"))
            self.assertEqual(len(payload["segments"]), 2)
            self.assertTrue(Path(written["transitions"]).exists())

            from openpyxl import load_workbook
            wb = load_workbook(written["xlsx"])
            self.assertEqual(wb.sheetnames, ["segments", "transitions"])
            self.assertEqual(wb["segments"].max_row, 3)
            self.assertEqual(wb["transitions"]["A2"].value, "stationary")

    def test_xlsx_without_openpyxl_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.dict(sys.modules, {"openpyxl": None}):
                with self.assertRaises(RuntimeError):
                    export_session(self.result, Path(tmp) / "x", formats=["xlsx"])

    def test_export_validation(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ValueError):
                export_session(self.result, Path(tmp) / "x", formats=[])
            with self.assertRaises(ValueError):
                export_session({"segments": []}, Path(tmp) / "x")


if __name__ == "__main__":
    unittest.main()
