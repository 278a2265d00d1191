"""
Transition quality from the smoothness of the speed trace.

A well-ridden transition changes speed gradually and steadily, so the
score rewards a small mean absolute second difference of speed (jerk) and
a small spread of first differences (consistency):

    quality = 0.6 * (1 - min(1, mean|d2v| / 1.0))
            + 0.4 * (1 - min(1, std(dv) / 0.5))
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

import numpy as np

from .._core import Gait, RecordedTransition

logger = logging.getLogger(__name__)


class TransitionAnalyzer:
    """Record debounced gait transitions with a quality score.

    Parameters
    ----------
    history_size : int
        Speed samples retained.
    quality_window : int
        Trailing samples used for each quality score.
    min_gait_duration : float
        Seconds the previous gait must have been held; shorter changes
        are treated as classifier noise.
    """

    JERK_WEIGHT = 0.6
    CONSISTENCY_WEIGHT = 0.4
    JERK_ZERO_SCORE = 1.0
    STD_ZERO_SCORE = 0.5
    MIN_SAMPLES = 5
    NEUTRAL_QUALITY = 0.5

    def __init__(self, history_size: int = 20, quality_window: int = 10,
                 min_gait_duration: float = 1.0):
        if history_size < 2:
            raise ValueError("history_size must be >= 2")
        if not 2 <= quality_window <= history_size:
            raise ValueError("quality_window must be within [2, history_size]")
        if min_gait_duration < 0:
            raise ValueError("min_gait_duration must be >= 0")
        self.history_size = history_size
        self.quality_window = quality_window
        self.min_gait_duration = min_gait_duration
        self.on_transition: Optional[Callable[[RecordedTransition], None]] = None
        self.reset()

    def reset(self) -> None:
        self._speeds: Deque[Tuple[float, float]] = deque(maxlen=self.history_size)
        self.transitions: List[RecordedTransition] = []
        self._last_start: Optional[float] = None

    def update_speed(self, speed: float, timestamp: float) -> None:
        self._speeds.append((timestamp, speed))

    def process_gait_change(self, from_gait: Gait, to_gait: Gait,
                            timestamp: float) -> Optional[RecordedTransition]:
        """Record a transition unless it is a repeat or debounced.

        Returns
        -------
        RecordedTransition or None
            ``None`` when the change was discarded.
        """
        if from_gait is to_gait:
            return None
        if self._last_start is not None and timestamp - self._last_start < self.min_gait_duration:
            logger.debug(
                "Discarding %s -> %s after %.2f s in previous gait",
                from_gait.value, to_gait.value, timestamp - self._last_start,
            )
            return None

        transition = RecordedTransition(
            from_gait=from_gait,
            to_gait=to_gait,
            timestamp=timestamp,
            quality=self.quality(),
        )
        self.transitions.append(transition)
        self._last_start = timestamp
        if self.on_transition is not None:
            self.on_transition(transition)
        return transition

    def quality(self) -> float:
        """Quality of the trailing speed window, 0.5 when too short."""
        if len(self._speeds) < self.MIN_SAMPLES:
            return self.NEUTRAL_QUALITY
        speeds = np.array([s for _, s in self._speeds][-self.quality_window:])
        deltas = np.diff(speeds)
        if len(deltas) < 2:
            return self.NEUTRAL_QUALITY
        jerk = float(np.mean(np.abs(np.diff(deltas))))
        jerk_score = 1.0 - min(1.0, jerk / self.JERK_ZERO_SCORE)
        consistency = 1.0 - min(1.0, float(np.std(deltas)) / self.STD_ZERO_SCORE)
        q = self.JERK_WEIGHT * jerk_score + self.CONSISTENCY_WEIGHT * consistency
        return min(1.0, max(0.0, q))

    # ── statistics ────────────────────────────────────────────────

    @property
    def average_quality(self) -> float:
        if not self.transitions:
            return 0.0
        return float(np.mean([t.quality for t in self.transitions]))

    @property
    def upward_count(self) -> int:
        return sum(1 for t in self.transitions if t.is_upward)

    @property
    def downward_count(self) -> int:
        return sum(1 for t in self.transitions if not t.is_upward)
