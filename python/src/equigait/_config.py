"""
Session configuration and per-horse biomechanical priors.

Everything here is resolved once when a session starts; the pipeline
never re-reads configuration while analysing.

Breed priors
------------
Stride frequency ranges (Hz) per breed group.  Small animals move their
legs faster, heavy and warmblood types slower.  Unknown breeds fall back
to the default (thoroughbred-like) ranges.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ._core import Gait

logger = logging.getLogger(__name__)

FrequencyRange = Tuple[float, float]
SpeedBounds = List[Tuple[float, float]]


class MountPosition(Enum):
    """Where the phone is carried on the rider."""

    THIGH = "thigh"
    CHEST = "chest"


# ── Breed priors ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class BreedPriors:
    walk: FrequencyRange = (1.0, 2.2)
    trot: FrequencyRange = (2.0, 3.8)
    canter: FrequencyRange = (1.8, 3.0)
    gallop: FrequencyRange = (3.0, 6.0)
    typical_weight: float = 500.0

    def frequency_range(self, gait: Gait) -> FrequencyRange:
        if gait is Gait.STATIONARY:
            return (0.0, 0.5)
        return getattr(self, gait.value)

    def shifted(self, offset: float) -> "BreedPriors":
        def shift(r):
            return (r[0] + offset, r[1] + offset)
        return BreedPriors(
            walk=shift(self.walk), trot=shift(self.trot),
            canter=shift(self.canter), gallop=shift(self.gallop),
            typical_weight=self.typical_weight,
        )


DEFAULT_PRIORS = BreedPriors()

_SMALL_PONY = BreedPriors((1.3, 2.5), (2.8, 4.5), (2.2, 3.5), (3.5, 6.5), 200.0)
_MEDIUM_PONY = BreedPriors((1.2, 2.4), (2.4, 4.2), (2.0, 3.3), (3.2, 6.0), 350.0)
_LARGE_PONY = BreedPriors((1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 5.8), 450.0)
_WARMBLOOD = BreedPriors((0.9, 2.0), (1.8, 3.5), (1.6, 2.8), (2.8, 5.5), 550.0)
_HEAVY = BreedPriors((0.9, 2.0), (1.8, 3.2), (1.5, 2.7), (2.6, 5.0), 600.0)
_IBERIAN = BreedPriors((1.0, 2.2), (2.0, 3.6), (1.7, 2.9), (2.8, 5.5), 500.0)

BREED_PRIORS: Dict[str, BreedPriors] = {
    "shetland": _SMALL_PONY,
    "welsh_a": _SMALL_PONY,
    "dartmoor": _SMALL_PONY,
    "exmoor": _SMALL_PONY,
    "welsh_b": _MEDIUM_PONY,
    "welsh_c": _MEDIUM_PONY,
    "new_forest": _MEDIUM_PONY,
    "connemara": _MEDIUM_PONY,
    "welsh_d": _LARGE_PONY,
    "highland": _LARGE_PONY,
    "fell": _LARGE_PONY,
    "dales": _LARGE_PONY,
    "warmblood": _WARMBLOOD,
    "hanoverian": _WARMBLOOD,
    "holsteiner": _WARMBLOOD,
    "oldenburg": _WARMBLOOD,
    "trakehner": _WARMBLOOD,
    "dutch_warmblood": _WARMBLOOD,
    "selle_francais": _WARMBLOOD,
    "thoroughbred": DEFAULT_PRIORS,
    "irish_sport_horse": BreedPriors((0.95, 2.1), (1.9, 3.6), (1.7, 2.9), (2.9, 5.8), 530.0),
    "quarter_horse": BreedPriors((1.0, 2.2), (2.0, 3.8), (1.8, 3.0), (3.0, 6.2), 480.0),
    "cob": _HEAVY,
    "irish_draught": _HEAVY,
    "friesian": _HEAVY,
    "arabian": BreedPriors((1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 6.0), 450.0),
    "andalusian": _IBERIAN,
    "lusitano": _IBERIAN,
}


def _normalize_breed(name: str) -> str:
    return name.lower().strip().replace(" ", "_").replace("-", "_")


def list_breeds() -> List[str]:
    """Return breed keys with dedicated priors."""
    return sorted(BREED_PRIORS.keys())


def breed_priors(breed: Optional[str]) -> BreedPriors:
    """Look up the priors for *breed*, falling back to the defaults."""
    if not breed:
        return DEFAULT_PRIORS
    key = _normalize_breed(breed)
    if key not in BREED_PRIORS:
        logger.debug("No dedicated priors for breed %r, using defaults", breed)
    return BREED_PRIORS.get(key, DEFAULT_PRIORS)


def age_adjustment_factor(age: Optional[float]) -> float:
    """Range widening factor: young and old horses move less regularly."""
    if age is None:
        return 1.0
    if age < 4:
        return 1.15
    if age <= 15:
        return 1.0
    if age <= 20:
        return 1.05
    return 1.1


# ── Horse profile ────────────────────────────────────────────────────

@dataclass
class LearnedGaitParameters:
    """Per-horse feature centres learned from previous rides."""

    walk_frequency_center: Optional[float] = None
    trot_frequency_center: Optional[float] = None
    canter_frequency_center: Optional[float] = None
    gallop_frequency_center: Optional[float] = None
    walk_h2_mean: Optional[float] = None
    trot_h2_mean: Optional[float] = None
    canter_h3_mean: Optional[float] = None
    gallop_entropy_mean: Optional[float] = None
    ride_count: int = 0

    def frequency_center(self, gait: Gait) -> Optional[float]:
        if gait is Gait.STATIONARY:
            return None
        return getattr(self, f"{gait.value}_frequency_center")


@dataclass
class HorseProfile:
    """Optional horse context supplied at session start.

    Parameters
    ----------
    breed : str, optional
        Breed name, see :func:`list_breeds`.
    age : float, optional
        Age in years.
    weight : float, optional
        Body mass in kg; defaults to the breed's typical weight.
    speed_sensitivity : float
        -0.5..0.5, positive moves faster gaits to lower speeds.
    transition_speed : float
        0.5..1.5, higher gives a less sticky classifier.
    canter_sensitivity : float
        0.5..1.5 multiplier on the canter likelihood.
    walk_trot_offset, trot_canter_offset : float
        Speed threshold shifts in m/s (-1..1).
    frequency_offset : float
        Hz added to every stride frequency range.
    custom_speed_bounds : list of (float, float), optional
        Five (min, max) speed bounds, one per gait, overriding the rest.
    learned : LearnedGaitParameters, optional
    """

    breed: Optional[str] = None
    age: Optional[float] = None
    weight: Optional[float] = None
    speed_sensitivity: float = 0.0
    transition_speed: float = 1.0
    canter_sensitivity: float = 1.0
    walk_trot_offset: float = 0.0
    trot_canter_offset: float = 0.0
    frequency_offset: float = 0.0
    custom_speed_bounds: Optional[SpeedBounds] = None
    learned: Optional[LearnedGaitParameters] = None

    def __post_init__(self):
        if self.age is not None and self.age < 0:
            raise ValueError("age must be >= 0")
        if self.weight is not None and self.weight <= 0:
            raise ValueError("weight must be strictly positive")
        if not -0.5 <= self.speed_sensitivity <= 0.5:
            raise ValueError("speed_sensitivity must be within [-0.5, 0.5]")
        if not 0.5 <= self.transition_speed <= 1.5:
            raise ValueError("transition_speed must be within [0.5, 1.5]")
        if not 0.5 <= self.canter_sensitivity <= 1.5:
            raise ValueError("canter_sensitivity must be within [0.5, 1.5]")
        for name in ("walk_trot_offset", "trot_canter_offset"):
            if not -1.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be within [-1, 1] m/s")
        if self.custom_speed_bounds is not None:
            bounds = [tuple(map(float, b)) for b in self.custom_speed_bounds]
            if len(bounds) != len(Gait):
                raise ValueError("custom_speed_bounds must hold one (min, max) pair per gait")
            if any(lo > hi for lo, hi in bounds):
                raise ValueError("custom_speed_bounds pairs must satisfy min <= max")
            self.custom_speed_bounds = bounds

    @property
    def has_custom_tuning(self) -> bool:
        return (
            self.speed_sensitivity != 0.0
            or self.transition_speed != 1.0
            or self.walk_trot_offset != 0.0
            or self.trot_canter_offset != 0.0
            or self.frequency_offset != 0.0
        )

    @property
    def age_factor(self) -> float:
        return age_adjustment_factor(self.age)

    def priors(self) -> BreedPriors:
        base = breed_priors(self.breed)
        if self.frequency_offset:
            base = base.shifted(self.frequency_offset)
        return base

    @property
    def body_weight(self) -> float:
        return self.weight if self.weight is not None else breed_priors(self.breed).typical_weight

    def speed_bounds(self) -> Optional[SpeedBounds]:
        """Speed bounds per gait, or ``None`` to keep the classifier defaults."""
        if self.custom_speed_bounds is not None:
            return list(self.custom_speed_bounds)
        if not self.has_custom_tuning:
            return None
        s = self.speed_sensitivity
        wt = self.walk_trot_offset
        tc = self.trot_canter_offset
        return [
            (0.0, 0.8),
            (0.2, 2.8 + wt),
            (1.2 + wt - s, 5.5 + tc),
            (2.5 + tc - s, 9.0),
            (5.0 - s, 25.0),
        ]

    def transition_probability(self) -> Optional[float]:
        """Self-transition probability, or ``None`` to keep the default."""
        if self.transition_speed == 1.0:
            return None
        return max(0.75, min(0.95, 0.85 + (1.0 - self.transition_speed) * 0.05))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HorseProfile":
        if not isinstance(data, dict):
            raise ValueError("horse profile must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown horse profile key(s): {unknown}")
        kwargs = dict(data)
        if kwargs.get("learned") is not None:
            kwargs["learned"] = LearnedGaitParameters(**kwargs["learned"])
        return cls(**kwargs)


# ── Analysis configuration ───────────────────────────────────────────

@dataclass
class AnalysisConfig:
    """Pipeline tuning, validated on construction.

    Parameters
    ----------
    sample_rate : float
        Motion sample rate in Hz (default 100).
    window_size : int
        Capacity of the rolling channel windows; a power of two.
    min_analysis_samples : int
        Samples required before the first spectral analysis (power of two).
    analysis_interval : float
        Seconds between spectral analyses.
    confidence_threshold : float
        Minimum classifier confidence for committing a gait change.
    calibration_warmup : int, optional
        Samples to wait before capturing the reference orientation.
        Defaults to 100 for a thigh mount and 50 for a chest mount.
    speed_smoothing : int
        Number of GPS speeds in the moving average.
    max_gps_accuracy : float
        Fixes with a worse horizontal accuracy (m) are not used for speed.
    dressage : bool
        Use the dressage classifier profile.
    diagnostics : bool
        Record features and probabilities for offline tuning.
    mount : MountPosition
    horse : HorseProfile, optional
    """

    sample_rate: float = 100.0
    window_size: int = 256
    min_analysis_samples: int = 128
    analysis_interval: float = 0.25
    confidence_threshold: float = 0.7
    calibration_warmup: Optional[int] = None
    speed_smoothing: int = 5
    max_gps_accuracy: float = 20.0
    dressage: bool = False
    diagnostics: bool = False
    mount: MountPosition = MountPosition.CHEST
    horse: Optional[HorseProfile] = None

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")
        if not _is_power_of_two(self.window_size) or self.window_size < 128:
            raise ValueError("window_size must be a power of two >= 128")
        if not _is_power_of_two(self.min_analysis_samples) or self.min_analysis_samples < 128:
            raise ValueError("min_analysis_samples must be a power of two >= 128")
        if self.min_analysis_samples > self.window_size:
            raise ValueError("min_analysis_samples must be <= window_size")
        if self.analysis_interval <= 0:
            raise ValueError("analysis_interval must be strictly positive")
        if not 0.0 < self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within (0, 1]")
        if isinstance(self.mount, str):
            self.mount = MountPosition(self.mount.lower().strip())
        if self.calibration_warmup is None:
            self.calibration_warmup = 100 if self.mount is MountPosition.THIGH else 50
        if self.calibration_warmup < 1:
            raise ValueError("calibration_warmup must be >= 1")
        if self.speed_smoothing < 1:
            raise ValueError("speed_smoothing must be >= 1")
        if self.max_gps_accuracy <= 0:
            raise ValueError("max_gps_accuracy must be strictly positive")

    @property
    def drift_threshold(self) -> float:
        """Gravity-angle drift (rad) that triggers recalibration."""
        return 0.50 if self.mount is MountPosition.THIGH else 0.35

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        if not isinstance(data, dict):
            raise ValueError("configuration must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {unknown}")
        kwargs = dict(data)
        if kwargs.get("horse") is not None:
            kwargs["horse"] = HorseProfile.from_dict(kwargs["horse"])
        return cls(**kwargs)


def load_config(path) -> AnalysisConfig:
    """Load an :class:`AnalysisConfig` from a JSON file.

    Parameters
    ----------
    path : str or Path
        JSON object with any :class:`AnalysisConfig` field; ``horse`` is a
        nested :class:`HorseProfile` object.
    """
    if not path:
        raise ValueError("config path must be a non-empty string")
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc.msg}") from exc
    return AnalysisConfig.from_dict(payload)


def _is_power_of_two(n) -> bool:
    return isinstance(n, int) and n > 0 and (n & (n - 1)) == 0
