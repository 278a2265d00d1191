"""
Five-state gait Hidden Markov Model.

States are ordered stationary < walk < trot < canter < gallop.  Each
update runs one forward step:

    predicted = T^T . posterior
    posterior = normalize(predicted * emission(features))

Emission
--------
Every state holds one weighted Gaussian prior per feature, derived from an
expected range (mean = midpoint, sigma = width / 4).  The z-score of each
feature is clipped so that a single unreliable feature lowers a state's
likelihood without vetoing it.  GPS speed is a corroborating constraint:
a state whose speed bounds exclude the smoothed speed is scaled by 0.1,
provided the fix is accurate enough.

Transition
----------
Self-transition probability p (default 0.9) keeps the classifier from
chattering; the remaining mass goes mostly to adjacent gaits with a small
leak to the others, so a horse cantering off from halt is still
reachable within one update.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ._config import (
    DEFAULT_PRIORS,
    BreedPriors,
    HorseProfile,
    LearnedGaitParameters,
    SpeedBounds,
)
from ._core import Gait, GaitFeatureVector

logger = logging.getLogger(__name__)

STATES: List[Gait] = [Gait.STATIONARY, Gait.WALK, Gait.TROT, Gait.CANTER, Gait.GALLOP]
N_STATES = len(STATES)


# ===========================================================================
# Emission priors
# ===========================================================================

@dataclass
class GaussianPrior:
    mu: float
    sigma: float
    weight: float = 1.0

    MAX_Z = 4.0

    def log_prob(self, x: float) -> float:
        z = abs(x - self.mu) / max(self.sigma, 1e-10)
        z = min(z, self.MAX_Z)
        return self.weight * (-0.5 * z * z)

    @classmethod
    def from_range(cls, lo: float, hi: float, weight: float = 1.0) -> "GaussianPrior":
        return cls(mu=(lo + hi) / 2.0, sigma=max(hi - lo, 1e-6) / 4.0, weight=weight)


FEATURE_WEIGHTS: Dict[str, float] = {
    "stride_frequency": 1.5,
    "h2_ratio": 0.4,
    "h3_ratio": 0.4,
    "spectral_entropy": 0.4,
    "xy_coherence": 0.25,
    "z_yaw_coherence": 0.25,
    "normalized_vertical_rms": 1.5,
    "yaw_rate_rms": 0.4,
}

WEARABLE_WEIGHTS: Dict[str, float] = {
    "watch_arm_symmetry": 0.25,
    "watch_yaw_energy": 0.25,
}

# Expected ranges of the non-frequency features per gait.  Stationary ranges
# are centred on zero; its entropy is left wide because a still phone
# records broadband noise.
FEATURE_RANGES: Dict[Gait, Dict[str, Tuple[float, float]]] = {
    Gait.STATIONARY: {
        "h2_ratio": (-0.3, 0.3),
        "h3_ratio": (-0.3, 0.3),
        "spectral_entropy": (0.0, 1.0),
        "xy_coherence": (-0.3, 0.3),
        "z_yaw_coherence": (-0.3, 0.3),
        "normalized_vertical_rms": (-0.05, 0.05),
        "yaw_rate_rms": (-0.1, 0.1),
        "watch_arm_symmetry": (0.0, 0.2),
        "watch_yaw_energy": (0.0, 0.1),
    },
    Gait.WALK: {
        "h2_ratio": (0.3, 0.7),
        "h3_ratio": (0.2, 0.5),
        "spectral_entropy": (0.2, 0.5),
        "xy_coherence": (0.2, 0.5),
        "z_yaw_coherence": (0.2, 0.4),
        "normalized_vertical_rms": (0.05, 0.15),
        "yaw_rate_rms": (0.1, 0.3),
        "watch_arm_symmetry": (0.3, 0.7),
        "watch_yaw_energy": (0.1, 0.5),
    },
    Gait.TROT: {
        "h2_ratio": (1.2, 2.5),
        "h3_ratio": (0.3, 0.8),
        "spectral_entropy": (0.3, 0.6),
        "xy_coherence": (0.7, 1.0),
        "z_yaw_coherence": (0.1, 0.4),
        "normalized_vertical_rms": (0.15, 0.35),
        "yaw_rate_rms": (0.2, 0.5),
        "watch_arm_symmetry": (0.3, 0.7),
        "watch_yaw_energy": (0.1, 0.5),
    },
    Gait.CANTER: {
        "h2_ratio": (0.4, 1.0),
        "h3_ratio": (1.0, 2.0),
        "spectral_entropy": (0.4, 0.7),
        "xy_coherence": (0.2, 0.5),
        "z_yaw_coherence": (0.6, 0.9),
        "normalized_vertical_rms": (0.25, 0.45),
        "yaw_rate_rms": (0.4, 0.8),
        "watch_arm_symmetry": (0.3, 0.7),
        "watch_yaw_energy": (0.1, 0.5),
    },
    Gait.GALLOP: {
        "h2_ratio": (0.2, 0.8),
        "h3_ratio": (0.3, 0.9),
        "spectral_entropy": (0.6, 0.9),
        "xy_coherence": (0.1, 0.4),
        "z_yaw_coherence": (0.7, 1.0),
        "normalized_vertical_rms": (0.35, 0.6),
        "yaw_rate_rms": (0.6, 1.2),
        "watch_arm_symmetry": (0.3, 0.7),
        "watch_yaw_energy": (0.1, 0.5),
    },
}

STATIONARY_FREQUENCY_RANGE = (-0.5, 0.5)

DEFAULT_SPEED_BOUNDS: SpeedBounds = [
    (0.0, 0.5),
    (0.3, 2.5),
    (1.5, 5.0),
    (3.0, 8.0),
    (6.0, 20.0),
]

SPEED_PENALTY = 0.1
DEFAULT_SELF_TRANSITION = 0.9
DRESSAGE_SELF_TRANSITION = 0.95
DRESSAGE_BAND_SCALE = 0.8
DRESSAGE_GALLOP_PENALTY = 0.2
NON_ADJACENT_SHARE = 0.1


def build_transition_matrix(self_probability: float) -> np.ndarray:
    """Row-stochastic matrix biased toward staying in the current state."""
    if not 0.0 < self_probability < 1.0:
        raise ValueError("self_probability must be within (0, 1)")
    rest = 1.0 - self_probability
    T = np.zeros((N_STATES, N_STATES))
    for i in range(N_STATES):
        adjacent = [j for j in (i - 1, i + 1) if 0 <= j < N_STATES]
        others = [j for j in range(N_STATES) if j != i and j not in adjacent]
        T[i, i] = self_probability
        for j in adjacent:
            T[i, j] = rest * (1.0 - NON_ADJACENT_SHARE) / len(adjacent)
        for j in others:
            T[i, j] = rest * NON_ADJACENT_SHARE / len(others)
    return T


def _scaled(rng: Tuple[float, float], factor: float) -> Tuple[float, float]:
    centre = (rng[0] + rng[1]) / 2.0
    half = (rng[1] - rng[0]) / 2.0 * factor
    return (centre - half, centre + half)


def _recentred(rng: Tuple[float, float], centre: float) -> Tuple[float, float]:
    half = (rng[1] - rng[0]) / 2.0
    return (centre - half, centre + half)


# ===========================================================================
# Model
# ===========================================================================

class GaitHMM:
    """Gait classifier over :class:`GaitFeatureVector` updates.

    Parameters
    ----------
    priors : BreedPriors, optional
        Stride frequency ranges per gait.
    age_factor : float
        Widens every stride frequency range around its centre.
    speed_bounds : list of (float, float), optional
        Per-gait (min, max) speed in m/s.
    self_transition : float, optional
        Probability of staying in the same state between updates.
    dressage : bool
        Tighter frequency bands, stickier transitions, gallop discouraged.
    canter_multiplier : float
        Scales the canter likelihood (horse-specific sensitivity).
    learned : LearnedGaitParameters, optional
        Per-horse feature centres replacing the defaults.
    max_gps_accuracy : float
        Fixes worse than this (m) do not constrain the speed.
    """

    def __init__(self, priors: Optional[BreedPriors] = None, age_factor: float = 1.0,
                 speed_bounds: Optional[SpeedBounds] = None,
                 self_transition: Optional[float] = None, dressage: bool = False,
                 canter_multiplier: float = 1.0,
                 learned: Optional[LearnedGaitParameters] = None,
                 max_gps_accuracy: float = 20.0):
        if age_factor <= 0:
            raise ValueError("age_factor must be strictly positive")
        if canter_multiplier <= 0:
            raise ValueError("canter_multiplier must be strictly positive")
        if max_gps_accuracy <= 0:
            raise ValueError("max_gps_accuracy must be strictly positive")
        if speed_bounds is not None and len(speed_bounds) != N_STATES:
            raise ValueError("speed_bounds must hold one (min, max) pair per gait")

        self.priors = priors or DEFAULT_PRIORS
        self.age_factor = age_factor
        self.dressage = dressage
        self.speed_bounds = list(speed_bounds) if speed_bounds else list(DEFAULT_SPEED_BOUNDS)
        if self_transition is None:
            self_transition = DRESSAGE_SELF_TRANSITION if dressage else DEFAULT_SELF_TRANSITION
        self.transition_matrix = build_transition_matrix(self_transition)
        self.canter_multiplier = canter_multiplier
        self.learned = learned
        self.max_gps_accuracy = max_gps_accuracy

        self._emission = self._build_emission()
        self.probabilities = np.zeros(N_STATES)
        self.previous_probabilities = np.zeros(N_STATES)
        self.update_count = 0
        self.reset()

    @classmethod
    def from_profile(cls, profile: Optional[HorseProfile], dressage: bool = False,
                     max_gps_accuracy: float = 20.0) -> "GaitHMM":
        if profile is None:
            return cls(dressage=dressage, max_gps_accuracy=max_gps_accuracy)
        return cls(
            priors=profile.priors(),
            age_factor=profile.age_factor,
            speed_bounds=profile.speed_bounds(),
            self_transition=profile.transition_probability(),
            dressage=dressage,
            canter_multiplier=profile.canter_sensitivity,
            learned=profile.learned,
            max_gps_accuracy=max_gps_accuracy,
        )

    # ── emission model ────────────────────────────────────────────

    def frequency_range(self, gait: Gait) -> Tuple[float, float]:
        """Effective stride frequency range after all adjustments."""
        if gait is Gait.STATIONARY:
            return STATIONARY_FREQUENCY_RANGE
        rng = self.priors.frequency_range(gait)
        if self.learned is not None:
            centre = self.learned.frequency_center(gait)
            if centre is not None:
                rng = _recentred(rng, centre)
        factor = self.age_factor * (DRESSAGE_BAND_SCALE if self.dressage else 1.0)
        return _scaled(rng, factor)

    def _build_emission(self) -> Dict[Gait, Dict[str, GaussianPrior]]:
        emission: Dict[Gait, Dict[str, GaussianPrior]] = {}
        for gait in STATES:
            ranges = dict(FEATURE_RANGES[gait])
            ranges["stride_frequency"] = self.frequency_range(gait)
            priors = {}
            for name, weight in {**FEATURE_WEIGHTS, **WEARABLE_WEIGHTS}.items():
                lo, hi = ranges[name]
                priors[name] = GaussianPrior.from_range(lo, hi, weight)
            emission[gait] = priors
        self._apply_learned_means(emission)
        return emission

    def _apply_learned_means(self, emission) -> None:
        learned = self.learned
        if learned is None:
            return
        for gait, feature, value in (
            (Gait.WALK, "h2_ratio", learned.walk_h2_mean),
            (Gait.TROT, "h2_ratio", learned.trot_h2_mean),
            (Gait.CANTER, "h3_ratio", learned.canter_h3_mean),
            (Gait.GALLOP, "spectral_entropy", learned.gallop_entropy_mean),
        ):
            if value is not None:
                emission[gait][feature].mu = value

    def prior_for(self, gait: Gait, feature: str) -> GaussianPrior:
        return self._emission[gait][feature]

    def emission_log_likelihoods(self, features: GaitFeatureVector) -> np.ndarray:
        """Log-likelihood of *features* under each state."""
        out = np.zeros(N_STATES)
        use_speed = 0.0 <= features.gps_speed and features.gps_accuracy <= self.max_gps_accuracy
        for i, gait in enumerate(STATES):
            priors = self._emission[gait]
            ll = 0.0
            for name in FEATURE_WEIGHTS:
                ll += priors[name].log_prob(getattr(features, name))
            for name in WEARABLE_WEIGHTS:
                value = getattr(features, name)
                if value > 0:
                    ll += priors[name].log_prob(value)
            if use_speed:
                lo, hi = self.speed_bounds[i]
                if not lo <= features.gps_speed <= hi:
                    ll += math.log(SPEED_PENALTY)
            if gait is Gait.CANTER and self.canter_multiplier != 1.0:
                ll += math.log(self.canter_multiplier)
            if gait is Gait.GALLOP and self.dressage:
                ll += math.log(DRESSAGE_GALLOP_PENALTY)
            out[i] = ll
        return out

    # ── filtering ─────────────────────────────────────────────────

    def update(self, features: GaitFeatureVector) -> Gait:
        """Advance one forward step and return the most likely gait."""
        predicted = self.transition_matrix.T @ self.probabilities
        with np.errstate(divide="ignore"):
            log_post = np.log(predicted) + self.emission_log_likelihoods(features)
        if not np.any(np.isfinite(log_post)):
            logger.debug("Degenerate posterior, keeping previous distribution")
            return self.current_state
        log_post -= np.max(log_post)
        post = np.exp(log_post)
        total = post.sum()
        if not np.isfinite(total) or total < 1e-10:
            return self.current_state

        self.previous_probabilities = self.probabilities
        self.probabilities = post / total
        self.update_count += 1
        logger.debug(
            "HMM update %d: %s", self.update_count,
            ", ".join(f"{g.value}={p:.3f}" for g, p in zip(STATES, self.probabilities)),
        )
        return self.current_state

    def reset(self) -> None:
        """Back to certain stationary."""
        self.probabilities = np.zeros(N_STATES)
        self.probabilities[0] = 1.0
        self.previous_probabilities = self.probabilities.copy()
        self.update_count = 0

    @property
    def current_state(self) -> Gait:
        return STATES[int(np.argmax(self.probabilities))]

    @property
    def confidence(self) -> float:
        return float(np.max(self.probabilities))

    def state_probability(self, gait: Gait) -> float:
        return float(self.probabilities[STATES.index(gait)])

    def probability_dict(self) -> Dict[str, float]:
        return {g.value: float(p) for g, p in zip(STATES, self.probabilities)}
