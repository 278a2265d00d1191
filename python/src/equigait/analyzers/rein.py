"""Rein direction detection and per-rein running score averages."""

from __future__ import annotations

from collections import deque
from typing import Dict, List

import numpy as np

from .._core import ReinDirection


class ReinScoreTracker:
    """Accumulate scores for the current rein and bank them on rein change.

    Scores recorded while on a rein are held in a pending list; they are
    folded into that rein's running average when :meth:`update_rein`
    switches away from it (or :meth:`finalize` is called).
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.current_rein = ReinDirection.STRAIGHT
        self._pending: List[float] = []
        self._totals: Dict[ReinDirection, float] = {r: 0.0 for r in ReinDirection}
        self._counts: Dict[ReinDirection, int] = {r: 0 for r in ReinDirection}

    def record(self, score: float) -> None:
        self._pending.append(float(score))

    def update_rein(self, rein: ReinDirection) -> None:
        if rein is self.current_rein:
            return
        self.finalize()
        self.current_rein = rein

    def finalize(self) -> None:
        """Bank pending scores into the current rein's average."""
        if not self._pending:
            return
        rein = self.current_rein
        self._totals[rein] += float(np.sum(self._pending))
        self._counts[rein] += len(self._pending)
        self._pending = []

    def average(self, rein: ReinDirection) -> float:
        if self._counts[rein] == 0:
            return 0.0
        return self._totals[rein] / self._counts[rein]

    def averages(self) -> Dict[str, float]:
        return {r.value: self.average(r) for r in ReinDirection if self._counts[r]}

    @property
    def balance(self) -> float:
        """Left minus right average; 0 until both reins have scores."""
        if not (self._counts[ReinDirection.LEFT] and self._counts[ReinDirection.RIGHT]):
            return 0.0
        return self.average(ReinDirection.LEFT) - self.average(ReinDirection.RIGHT)


class ReinDetector:
    """Infer the rein from sustained turning.

    Centripetal lateral acceleration and mean yaw rate each cast a vote in
    [-1, 1] (negative = left); a fused score beyond +/-0.3 selects a rein.
    A new rein must be held for *min_duration* seconds after the previous
    change before it is accepted.

    Parameters
    ----------
    window : int
        Samples averaged per vote.
    min_duration : float
        Seconds between accepted rein changes.
    """

    ACCEL_WEIGHT = 0.5
    GYRO_WEIGHT = 0.5
    REIN_THRESHOLD = 0.3
    LATERAL_DEADBAND = 0.05
    LATERAL_FULL_SCALE = 0.3
    YAW_DEADBAND = 0.1
    YAW_FULL_SCALE = 0.5

    def __init__(self, window: int = 100, min_duration: float = 2.0):
        if window < 2:
            raise ValueError("window must be >= 2")
        if min_duration < 0:
            raise ValueError("min_duration must be >= 0")
        self.window = window
        self.min_duration = min_duration
        self.reset()

    def reset(self) -> None:
        self._lateral = deque(maxlen=self.window)
        self._yaw = deque(maxlen=self.window)
        self.current_rein = ReinDirection.STRAIGHT
        self._last_change: float = float("-inf")
        self._last_time: float = 0.0
        self.durations: Dict[ReinDirection, float] = {r: 0.0 for r in ReinDirection}

    def process_sample(self, timestamp: float, lateral: float, yaw_rate: float) -> ReinDirection:
        if self._lateral:
            self.durations[self.current_rein] += max(0.0, timestamp - self._last_time)
        self._last_time = timestamp
        self._lateral.append(lateral)
        self._yaw.append(yaw_rate)
        if len(self._lateral) < self.window // 5:
            return self.current_rein

        score = self.ACCEL_WEIGHT * self._lateral_vote() + self.GYRO_WEIGHT * self._yaw_vote()
        if score < -self.REIN_THRESHOLD:
            proposed = ReinDirection.LEFT
        elif score > self.REIN_THRESHOLD:
            proposed = ReinDirection.RIGHT
        else:
            proposed = ReinDirection.STRAIGHT

        if proposed is not self.current_rein and timestamp - self._last_change >= self.min_duration:
            self.current_rein = proposed
            self._last_change = timestamp
        return self.current_rein

    def _lateral_vote(self) -> float:
        # The phone feels the turn as outward acceleration, so rightward
        # acceleration means a left rein.
        mean = float(np.mean(self._lateral))
        if abs(mean) <= self.LATERAL_DEADBAND:
            return 0.0
        return max(-1.0, min(1.0, -mean / self.LATERAL_FULL_SCALE))

    def _yaw_vote(self) -> float:
        mean = float(np.mean(self._yaw))
        if abs(mean) <= self.YAW_DEADBAND:
            return 0.0
        return max(-1.0, min(1.0, mean / self.YAW_FULL_SCALE))
