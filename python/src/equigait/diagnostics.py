"""
Diagnostic recording for offline tuning.

Only constructed when ``AnalysisConfig.diagnostics`` is set; the analyzer
holds ``None`` otherwise and skips every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ._core import Gait, GaitFeatureVector, RecordedTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FalsePositive:
    """A transition reverted shortly after it was committed."""

    timestamp: float
    committed: Gait
    reverted_to: Gait
    held_for: float

    @property
    def label(self) -> str:
        return f"{self.reverted_to.value}->{self.committed.value}"


class DiagnosticRecorder:
    """Store feature vectors, state probabilities and suspect transitions.

    Parameters
    ----------
    max_entries : int
        Oldest feature snapshots are dropped beyond this count.
    revert_window : float
        A transition undone within this many seconds is flagged as a
        false positive (for example canter -> gallop -> canter).
    """

    def __init__(self, max_entries: int = 10000, revert_window: float = 2.0):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if revert_window <= 0:
            raise ValueError("revert_window must be strictly positive")
        self.max_entries = max_entries
        self.revert_window = revert_window
        self.entries: List[Dict[str, Any]] = []
        self.transitions: List[Dict[str, Any]] = []
        self.false_positives: List[FalsePositive] = []
        self._last_commit: Optional[Dict[str, Any]] = None

    def record_update(self, features: GaitFeatureVector, probabilities: Dict[str, float],
                      state: Gait, confidence: float) -> None:
        row = features.to_dict()
        row.update({f"p_{k}": v for k, v in probabilities.items()})
        row["state"] = state.value
        row["confidence"] = confidence
        self.entries.append(row)
        if len(self.entries) > self.max_entries:
            del self.entries[0]

    def record_commit(self, previous: Gait, new: Gait, timestamp: float,
                      transition: Optional[RecordedTransition] = None) -> None:
        """Log a committed gait change and flag quick reversals."""
        last = self._last_commit
        if (last is not None and last["to"] is previous and last["from"] is new
                and timestamp - last["timestamp"] < self.revert_window):
            fp = FalsePositive(
                timestamp=last["timestamp"],
                committed=previous,
                reverted_to=new,
                held_for=timestamp - last["timestamp"],
            )
            self.false_positives.append(fp)
            logger.info("Possible misclassification %s held %.2f s", fp.label, fp.held_for)
        self._last_commit = {"from": previous, "to": new, "timestamp": timestamp}
        self.transitions.append({
            "timestamp": timestamp,
            "from_gait": previous.value,
            "to_gait": new.value,
            "recorded": transition is not None,
            "quality": transition.quality if transition is not None else None,
        })

    def false_positive_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for fp in self.false_positives:
            counts[fp.label] = counts.get(fp.label, 0) + 1
        return counts

    def to_dataframe(self):
        """Feature and probability snapshots as a pandas DataFrame."""
        import pandas as pd
        return pd.DataFrame(self.entries)

    def clear(self) -> None:
        self.entries.clear()
        self.transitions.clear()
        self.false_positives.clear()
        self._last_commit = None
