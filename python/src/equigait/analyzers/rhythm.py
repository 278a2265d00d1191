"""
Stride rhythm from zero crossings of vertical acceleration.

Each negative-to-positive crossing marks one stride.  Consistency of the
inter-stride intervals (coefficient of variation) gives most of the score;
the rest rewards a stride rate that suits the current gait.

    score = 0.8 * 100 * (1 - min(1, CV / 0.2)) + 0.2 * appropriateness

Confidence grows with the number of retained intervals and with their
regularity.  Once the trailing window holds fewer than ``min_strides``
intervals every score falls back to zero.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Optional, Tuple

import numpy as np

from .._core import Gait, ReinDirection
from .rein import ReinScoreTracker

logger = logging.getLogger(__name__)

# Expected stride rate per gait, strides per minute
STRIDE_RATE_BANDS: Dict[Gait, Tuple[float, float]] = {
    Gait.WALK: (50.0, 65.0),
    Gait.TROT: (70.0, 85.0),
    Gait.CANTER: (90.0, 110.0),
    Gait.GALLOP: (110.0, 140.0),
}


class RhythmAnalyzer:
    """Score stride-interval regularity.

    Parameters
    ----------
    min_interval, max_interval : float
        Accepted stride interval range in seconds.
    window_seconds : float
        Only crossings within this trailing window are kept.
    min_strides : int
        Intervals needed before a score is produced.
    """

    CONSISTENCY_WEIGHT = 0.8
    APPROPRIATENESS_WEIGHT = 0.2
    CV_ZERO_SCORE = 0.2
    NO_BAND_APPROPRIATENESS = 50.0

    def __init__(self, min_interval: float = 0.25, max_interval: float = 2.0,
                 window_seconds: float = 6.0, min_strides: int = 4):
        if min_interval <= 0:
            raise ValueError("min_interval must be strictly positive")
        if max_interval <= min_interval:
            raise ValueError("max_interval must be > min_interval")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be strictly positive")
        if min_strides < 2:
            raise ValueError("min_strides must be >= 2")
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.window_seconds = window_seconds
        self.min_strides = min_strides
        self.rein = ReinScoreTracker()
        self.reset()

    def reset(self) -> None:
        self._prev: Optional[Tuple[float, float]] = None
        self._last_crossing: Optional[float] = None
        self._intervals: Deque[Tuple[float, float]] = deque()
        self._clear_scores()
        self.gait = Gait.STATIONARY
        self.rein.reset()

    def _clear_scores(self) -> None:
        self.rhythm_score = 0.0
        self.consistency_score = 0.0
        self.appropriateness_score = 0.0
        self.stride_rate = 0.0
        self.confidence = 0.0

    # ── ingestion ─────────────────────────────────────────────────

    def process_sample(self, timestamp: float, vertical: float,
                       gait: Optional[Gait] = None) -> float:
        """Feed one vertical acceleration sample; returns the current score."""
        if gait is not None and gait is not self.gait:
            self.set_gait(gait)
        prev = self._prev
        self._prev = (timestamp, vertical)
        if prev is None or self.gait is Gait.STATIONARY:
            return self.rhythm_score

        t0, v0 = prev
        if v0 <= 0.0 < vertical:
            # Linear interpolation of the crossing instant
            frac = -v0 / (vertical - v0)
            self._record_crossing(t0 + frac * (timestamp - t0))
        if self._trim(timestamp):
            self._score(record=False)
        return self.rhythm_score

    def set_gait(self, gait: Gait) -> None:
        self.gait = gait
        if gait is Gait.STATIONARY:
            self._intervals.clear()
            self._last_crossing = None
            self._clear_scores()

    def update_rein(self, rein: ReinDirection) -> None:
        self.rein.update_rein(rein)

    def _record_crossing(self, t: float) -> None:
        last = self._last_crossing
        if last is not None:
            interval = t - last
            if interval < self.min_interval:
                return
            if interval <= self.max_interval:
                self._intervals.append((t, interval))
        self._last_crossing = t
        self._score()

    def _trim(self, now: float) -> bool:
        horizon = now - self.window_seconds
        dropped = False
        while self._intervals and self._intervals[0][0] < horizon:
            self._intervals.popleft()
            dropped = True
        return dropped

    # ── scoring ───────────────────────────────────────────────────

    def _score(self, record: bool = True) -> None:
        if len(self._intervals) < self.min_strides:
            self._clear_scores()
            return
        intervals = np.array([iv for _, iv in self._intervals])
        mean = float(np.mean(intervals))
        cv = float(np.std(intervals)) / mean
        self.consistency_score = 100.0 * (1.0 - min(1.0, cv / self.CV_ZERO_SCORE))
        self.stride_rate = 60.0 / mean
        self.appropriateness_score = self.appropriateness(self.stride_rate, self.gait)
        self.rhythm_score = max(0.0, min(100.0,
            self.CONSISTENCY_WEIGHT * self.consistency_score
            + self.APPROPRIATENESS_WEIGHT * self.appropriateness_score
        ))
        sufficiency = min(1.0, len(intervals) / (2.0 * self.min_strides))
        self.confidence = 0.5 * sufficiency + 0.5 * self.consistency_score / 100.0
        if record:
            self.rein.record(self.rhythm_score)

    @classmethod
    def appropriateness(cls, stride_rate: float, gait: Gait) -> float:
        """100 inside the gait's band, falling off linearly from its midpoint."""
        band = STRIDE_RATE_BANDS.get(gait)
        if band is None:
            return cls.NO_BAND_APPROPRIATENESS
        lo, hi = band
        if lo <= stride_rate <= hi:
            return 100.0
        mid = (lo + hi) / 2.0
        return max(0.0, 100.0 - abs(stride_rate - mid) / (hi - lo) * 50.0)

    @property
    def stride_count(self) -> int:
        return len(self._intervals)

    def rein_averages(self) -> Dict[str, float]:
        return self.rein.averages()
