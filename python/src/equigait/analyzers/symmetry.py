"""
Left/right movement symmetry from footfall impacts.

Impacts are local maxima of vertical acceleration above an adaptive
threshold (running mean + k * running std, both exponential moving
averages).  Each impact is assigned a side from the sign of

    lateral + 0.5 * roll

and the final score fuses four sub-scores (0-100 each):

    ==========  ======  =======================================
    magnitude   30 %    CV of impact magnitudes (0 at CV 0.5)
    timing      30 %    CV of inter-impact intervals (0 at 0.3)
    balance     25 %    left/right count and magnitude ratios
    roll        15 %    rider roll centred and steady
    ==========  ======  =======================================

Confidence blends impact count, the share of impacts with a clear side and
the forward/lateral coherence at the stride frequency (0.5 until the
orchestrator supplies one).  Fewer than ``min_impacts`` retained impacts
give a neutral zero score and confidence.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from .._core import ImpactEvent, ImpactSide, ReinDirection
from .rein import ReinScoreTracker

logger = logging.getLogger(__name__)


class SymmetryAnalyzer:
    """Adaptive footfall detection and symmetry scoring.

    Parameters
    ----------
    retention : float
        Seconds of impacts kept for scoring.
    min_impacts : int
        Impacts needed before a score is produced.
    min_threshold : float
        Floor of the adaptive impact threshold, in g.
    refractory : float
        Minimum seconds between two impacts.
    """

    ALPHA = 0.01
    INITIAL_STD = 0.1
    THRESHOLD_K = 1.0
    SIDE_DEADBAND = 0.02
    ROLL_WEIGHT = 0.5

    MAGNITUDE_CV_ZERO = 0.5
    TIMING_CV_ZERO = 0.3
    ROLL_MEAN_ZERO = 0.1
    ROLL_STD_ZERO = 0.1
    INTERVAL_RANGE = (0.1, 2.0)
    NEUTRAL_COHERENCE = 0.5

    WEIGHTS = {"magnitude": 0.30, "timing": 0.30, "balance": 0.25, "roll": 0.15}
    CONFIDENCE_WEIGHTS = {"sufficiency": 0.4, "sided": 0.4, "coherence": 0.2}

    def __init__(self, retention: float = 5.0, min_impacts: int = 4,
                 min_threshold: float = 0.3, refractory: float = 0.15):
        if retention <= 0:
            raise ValueError("retention must be strictly positive")
        if min_impacts < 2:
            raise ValueError("min_impacts must be >= 2")
        if min_threshold < 0:
            raise ValueError("min_threshold must be >= 0")
        if refractory < 0:
            raise ValueError("refractory must be >= 0")
        self.retention = retention
        self.min_impacts = min_impacts
        self.min_threshold = min_threshold
        self.refractory = refractory
        self.rein = ReinScoreTracker()
        self.reset()

    def reset(self) -> None:
        self._recent: Deque[Tuple[float, float, float, float]] = deque(maxlen=3)
        self._mean = 0.0
        self._var = self.INITIAL_STD ** 2
        self.impacts: Deque[ImpactEvent] = deque()
        self.coherence: Optional[float] = None
        self._clear_scores()
        self.rein.reset()

    def _clear_scores(self) -> None:
        self.symmetry_score = 0.0
        self.confidence = 0.0
        self.sub_scores: Dict[str, float] = {k: 0.0 for k in self.WEIGHTS}

    @property
    def threshold(self) -> float:
        return max(self.min_threshold, self._mean + self.THRESHOLD_K * math.sqrt(self._var))

    # ── ingestion ─────────────────────────────────────────────────

    def process_sample(self, timestamp: float, vertical: float, lateral: float,
                       roll: float) -> Optional[ImpactEvent]:
        """Feed one sample; returns the impact detected at the previous sample, if any."""
        threshold = self.threshold
        self._recent.append((timestamp, vertical, lateral, roll))
        self._update_stats(vertical)
        if self._trim(timestamp):
            self._score(record=False)

        if len(self._recent) < 3:
            return None
        (_, v0, _, _), (t1, v1, l1, r1), (_, v2, _, _) = self._recent
        if v1 > threshold and v1 > v0 and v1 >= v2:
            return self._record_impact(t1, v1, l1, r1)
        return None

    def _update_stats(self, x: float) -> None:
        delta = x - self._mean
        self._mean += self.ALPHA * delta
        self._var = (1 - self.ALPHA) * (self._var + self.ALPHA * delta * delta)

    def _record_impact(self, t: float, vertical: float, lateral: float,
                       roll: float) -> Optional[ImpactEvent]:
        if self.impacts and t - self.impacts[-1].timestamp < self.refractory:
            return None
        event = ImpactEvent(
            timestamp=t,
            vertical_peak=vertical,
            lateral=lateral,
            roll=roll,
            side=self.classify_side(lateral, roll),
        )
        self.impacts.append(event)
        self._score()
        return event

    @classmethod
    def classify_side(cls, lateral: float, roll: float) -> ImpactSide:
        s = lateral + cls.ROLL_WEIGHT * roll
        if s > cls.SIDE_DEADBAND:
            return ImpactSide.RIGHT
        if s < -cls.SIDE_DEADBAND:
            return ImpactSide.LEFT
        return ImpactSide.CENTER

    def _trim(self, now: float) -> bool:
        """Drop impacts older than the retention; True if any were dropped."""
        horizon = now - self.retention
        dropped = False
        while self.impacts and self.impacts[0].timestamp < horizon:
            self.impacts.popleft()
            dropped = True
        return dropped

    def update_rein(self, rein: ReinDirection) -> None:
        self.rein.update_rein(rein)

    def update_coherence(self, coherence: float) -> None:
        """Forward/lateral coherence at the current stride frequency (0-1)."""
        if not 0.0 <= coherence <= 1.0:
            raise ValueError("coherence must be within [0, 1]")
        self.coherence = float(coherence)
        if len(self.impacts) >= self.min_impacts:
            self.confidence = self._confidence(list(self.impacts))

    # ── scoring ───────────────────────────────────────────────────

    def _score(self, record: bool = True) -> None:
        impacts: List[ImpactEvent] = list(self.impacts)
        if len(impacts) < self.min_impacts:
            self._clear_scores()
            return
        magnitudes = np.array([e.vertical_peak for e in impacts])
        times = np.array([e.timestamp for e in impacts])
        rolls = np.array([e.roll for e in impacts])

        subs = {
            "magnitude": _cv_score(magnitudes, self.MAGNITUDE_CV_ZERO),
            "timing": self._timing_score(times),
            "balance": self._balance_score(impacts),
            "roll": self._roll_score(rolls),
        }
        self.sub_scores = subs
        self.symmetry_score = max(0.0, min(100.0, sum(self.WEIGHTS[k] * v for k, v in subs.items())))

        self.confidence = self._confidence(impacts)
        if record:
            self.rein.record(self.symmetry_score)

    def _confidence(self, impacts: List[ImpactEvent]) -> float:
        coherence = self.NEUTRAL_COHERENCE if self.coherence is None else self.coherence
        parts = {
            "sufficiency": min(1.0, len(impacts) / (2.0 * self.min_impacts)),
            "sided": sum(1 for e in impacts if e.side is not ImpactSide.CENTER) / len(impacts),
            "coherence": coherence,
        }
        return sum(self.CONFIDENCE_WEIGHTS[k] * v for k, v in parts.items())

    def _timing_score(self, times: np.ndarray) -> float:
        intervals = np.diff(times)
        lo, hi = self.INTERVAL_RANGE
        intervals = intervals[(intervals >= lo) & (intervals <= hi)]
        if len(intervals) < 2:
            return 0.0
        return _cv_score(intervals, self.TIMING_CV_ZERO)

    @staticmethod
    def _balance_score(impacts: List[ImpactEvent]) -> float:
        left = [e.vertical_peak for e in impacts if e.side is ImpactSide.LEFT]
        right = [e.vertical_peak for e in impacts if e.side is ImpactSide.RIGHT]
        if not left or not right:
            return 0.0
        count_ratio = min(len(left), len(right)) / max(len(left), len(right))
        mean_l, mean_r = float(np.mean(left)), float(np.mean(right))
        top = max(mean_l, mean_r)
        mag_ratio = min(mean_l, mean_r) / top if top > 0 else 0.0
        return 100.0 * (0.5 * count_ratio + 0.5 * mag_ratio)

    def _roll_score(self, rolls: np.ndarray) -> float:
        centred = max(0.0, 1.0 - abs(float(np.mean(rolls))) / self.ROLL_MEAN_ZERO)
        steady = max(0.0, 1.0 - float(np.std(rolls)) / self.ROLL_STD_ZERO)
        return 100.0 * (0.5 * centred + 0.5 * steady)

    @property
    def impact_count(self) -> int:
        return len(self.impacts)

    def rein_averages(self) -> Dict[str, float]:
        return self.rein.averages()


def _cv_score(values: np.ndarray, cv_zero: float) -> float:
    """100 at zero coefficient of variation, 0 at *cv_zero* and beyond."""
    mean = float(np.mean(values))
    if mean <= 0:
        return 0.0
    cv = float(np.std(values)) / mean
    return 100.0 * (1.0 - min(1.0, cv / cv_zero))
