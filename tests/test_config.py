"""Unit tests for configuration validation and horse priors."""

from __future__ import annotations

import json
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "python" / "src"))

from equigait._config import (
    DEFAULT_PRIORS,
    AnalysisConfig,
    HorseProfile,
    MountPosition,
    age_adjustment_factor,
    breed_priors,
    list_breeds,
    load_config,
)
from equigait._core import Gait


class TestBreedPriors(unittest.TestCase):
    def test_unknown_breed_falls_back_to_defaults(self):
        self.assertIs(breed_priors("unicorn"), DEFAULT_PRIORS)
        self.assertIs(breed_priors(None), DEFAULT_PRIORS)

    def test_breed_lookup_normalizes_spelling(self):
        self.assertIs(breed_priors("Irish Draught"), breed_priors("irish_draught"))
        self.assertIn("shetland", list_breeds())

    def test_ponies_stride_faster_than_warmbloods(self):
        pony = breed_priors("shetland").frequency_range(Gait.TROT)
        wb = breed_priors("hanoverian").frequency_range(Gait.TROT)
        self.assertGreater(pony[0], wb[0])

    def test_shifted_moves_every_range(self):
        shifted = DEFAULT_PRIORS.shifted(0.2)
        self.assertAlmostEqual(shifted.walk[0], DEFAULT_PRIORS.walk[0] + 0.2)
        self.assertAlmostEqual(shifted.gallop[1], DEFAULT_PRIORS.gallop[1] + 0.2)

    def test_age_factor(self):
        self.assertEqual(age_adjustment_factor(None), 1.0)
        self.assertEqual(age_adjustment_factor(3), 1.15)
        self.assertEqual(age_adjustment_factor(10), 1.0)
        self.assertEqual(age_adjustment_factor(18), 1.05)
        self.assertEqual(age_adjustment_factor(25), 1.1)


class TestHorseProfile(unittest.TestCase):
    def test_defaults_keep_classifier_defaults(self):
        p = HorseProfile()
        self.assertIsNone(p.speed_bounds())
        self.assertIsNone(p.transition_probability())
        self.assertEqual(p.body_weight, DEFAULT_PRIORS.typical_weight)

    def test_tuning_produces_speed_bounds(self):
        p = HorseProfile(speed_sensitivity=0.2, walk_trot_offset=0.5)
        bounds = p.speed_bounds()
        self.assertEqual(len(bounds), 5)
        self.assertAlmostEqual(bounds[1][1], 3.3)
        self.assertAlmostEqual(bounds[2][0], 1.5)

    def test_custom_bounds_override(self):
        custom = [(0, 1), (0, 2), (1, 4), (3, 7), (6, 15)]
        p = HorseProfile(custom_speed_bounds=custom, speed_sensitivity=0.3)
        self.assertEqual(p.speed_bounds(), [tuple(map(float, b)) for b in custom])

    def test_transition_probability_is_clamped(self):
        self.assertAlmostEqual(HorseProfile(transition_speed=0.5).transition_probability(), 0.875)
        self.assertAlmostEqual(HorseProfile(transition_speed=1.5).transition_probability(), 0.825)

    def test_validation(self):
        with self.assertRaises(ValueError):
            HorseProfile(age=-1)
        with self.assertRaises(ValueError):
            HorseProfile(weight=0)
        with self.assertRaises(ValueError):
            HorseProfile(transition_speed=2.0)
        with self.assertRaises(ValueError):
            HorseProfile(custom_speed_bounds=[(0, 1)])
        with self.assertRaises(ValueError):
            HorseProfile.from_dict({"breed": "cob", "colour": "bay"})

    def test_frequency_offset_shifts_priors(self):
        p = HorseProfile(breed="warmblood", frequency_offset=-0.1)
        self.assertAlmostEqual(p.priors().trot[0], breed_priors("warmblood").trot[0] - 0.1)


class TestAnalysisConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = AnalysisConfig()
        self.assertEqual(cfg.sample_rate, 100.0)
        self.assertEqual(cfg.confidence_threshold, 0.7)
        self.assertIs(cfg.mount, MountPosition.CHEST)
        self.assertEqual(cfg.calibration_warmup, 50)
        self.assertAlmostEqual(cfg.drift_threshold, 0.35)

    def test_thigh_mount_waits_longer(self):
        cfg = AnalysisConfig(mount="Thigh")
        self.assertIs(cfg.mount, MountPosition.THIGH)
        self.assertEqual(cfg.calibration_warmup, 100)
        self.assertAlmostEqual(cfg.drift_threshold, 0.5)

    def test_validation(self):
        with self.assertRaises(ValueError):
            AnalysisConfig(sample_rate=0)
        with self.assertRaises(ValueError):
            AnalysisConfig(window_size=200)
        with self.assertRaises(ValueError):
            AnalysisConfig(min_analysis_samples=512, window_size=256)
        with self.assertRaises(ValueError):
            AnalysisConfig(confidence_threshold=1.5)
        with self.assertRaises(ValueError):
            AnalysisConfig(mount="pocket")

    def test_load_config(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / "cfg.json"
            p.write_text(json.dumps({"dressage": True, "horse": {"breed": "arabian", "age": 12}}), encoding="utf-8")
            cfg = load_config(p)
            self.assertTrue(cfg.dressage)
            self.assertEqual(cfg.horse.breed, "arabian")

    def test_load_config_errors(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                load_config(Path(tmp) / "missing.json")
            bad = Path(tmp) / "bad.json"
            bad.write_text("{nope", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(bad)
            unknown = Path(tmp) / "unknown.json"
            unknown.write_text(json.dumps({"fft_size": 512}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config(unknown)


if __name__ == "__main__":
    unittest.main()
