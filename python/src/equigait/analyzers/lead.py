"""
Canter and gallop lead detection.

Two estimators run side by side:

1. Phase estimator.  The circular-mean Hilbert phase difference between
   lateral acceleration and yaw rate sits near +90 deg on the left lead and
   near -90 deg on the right lead.  Its confidence is the band confidence
   (1 at +/-90 deg, 0 at the 45/135 deg edges) multiplied by the coherence
   of the two channels at the stride frequency.
2. Asymmetry estimator.  The horse pushes harder to the side of the
   leading leg, which shows up as unequal RMS of positive and negative
   lateral acceleration plus a DC bias.

The estimators that produced a side are fused with weights favouring the
phase estimator whenever its confidence exceeds 0.5.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Optional, Tuple

import numpy as np

from .._core import Gait, Lead
from ..dsp.coherence import CoherenceAnalyzer
from ..dsp.hilbert import lead_from_phase, phase_difference_degrees
from ..dsp.spectral import SpectralFeatureExtractor

logger = logging.getLogger(__name__)


class LeadAnalyzer:
    """Lead leg and confidence while cantering or galloping.

    Parameters
    ----------
    sample_rate : float
        Sampling rate in Hz.
    window : int
        Lateral / yaw samples retained.
    min_samples : int
        Samples needed before the phase estimator runs.
    analysis_every : int
        Samples between two analyses.
    threshold : float
        Fused confidence below which the lead is reported unknown.
    """

    PHASE_TRUST = 0.5
    PHASE_WEIGHTS = (0.8, 0.2)
    ASYMMETRY_WEIGHTS = (0.3, 0.7)

    ASYMMETRY_MIN_SAMPLES = 50
    ASYMMETRY_DEADBAND = 0.05
    ASYMMETRY_FULL_SCALE = 0.25
    RMS_WEIGHT = 0.6
    BIAS_WEIGHT = 0.4

    def __init__(self, sample_rate: float = 100.0, window: int = 256,
                 min_samples: int = 128, analysis_every: int = 25,
                 threshold: float = 0.7):
        if sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")
        if min_samples < 8 or min_samples > window:
            raise ValueError("min_samples must be within [8, window]")
        if analysis_every < 1:
            raise ValueError("analysis_every must be >= 1")
        if not 0.0 < threshold <= 1.0:
            raise ValueError("threshold must be within (0, 1]")
        self.sample_rate = sample_rate
        self.window = window
        self.min_samples = min_samples
        self.analysis_every = analysis_every
        self.threshold = threshold
        self._coherence: Dict[int, CoherenceAnalyzer] = {}
        self._spectral = SpectralFeatureExtractor(sample_rate, min_window=min_samples)
        self.gait = Gait.STATIONARY
        self.left_duration = 0.0
        self.right_duration = 0.0
        self._clear()

    def _clear(self) -> None:
        self._lateral: Deque[float] = deque(maxlen=self.window)
        self._yaw: Deque[float] = deque(maxlen=self.window)
        self._since_analysis = 0
        self._last_time: Optional[float] = None
        self.current_lead = Lead.UNKNOWN
        self.confidence = 0.0
        self.phase_lead = Lead.UNKNOWN
        self.phase_confidence = 0.0
        self.phase_angle = 0.0
        self.asymmetry_lead = Lead.UNKNOWN
        self.asymmetry_confidence = 0.0

    def reset(self) -> None:
        self.gait = Gait.STATIONARY
        self.left_duration = 0.0
        self.right_duration = 0.0
        self._clear()

    @property
    def is_active(self) -> bool:
        return self.gait.has_lead

    def set_gait(self, gait: Gait) -> None:
        """Clear the buffers on entering or leaving canter/gallop."""
        if gait.has_lead != self.gait.has_lead:
            self._clear()
        self.gait = gait

    # ── ingestion ─────────────────────────────────────────────────

    def process_sample(self, timestamp: float, lateral: float, yaw_rate: float,
                       stride_frequency: Optional[float] = None) -> Lead:
        if not self.is_active:
            return Lead.UNKNOWN

        if self._last_time is not None and self.current_lead is not Lead.UNKNOWN:
            dt = max(0.0, timestamp - self._last_time)
            if self.current_lead is Lead.LEFT:
                self.left_duration += dt
            else:
                self.right_duration += dt
        self._last_time = timestamp

        self._lateral.append(lateral)
        self._yaw.append(yaw_rate)
        self._since_analysis += 1
        if len(self._lateral) >= self.ASYMMETRY_MIN_SAMPLES and self._since_analysis >= self.analysis_every:
            self._since_analysis = 0
            self.analyze(stride_frequency)
        return self.current_lead

    # ── estimators ────────────────────────────────────────────────

    def analyze(self, stride_frequency: Optional[float] = None) -> Tuple[Lead, float]:
        """Run both estimators on the buffered samples and fuse them."""
        lateral = np.asarray(self._lateral, dtype=float)
        yaw = np.asarray(self._yaw, dtype=float)

        if len(lateral) >= self.min_samples:
            self.phase_lead, self.phase_confidence = self._phase_estimate(
                lateral, yaw, stride_frequency,
            )
        else:
            self.phase_lead, self.phase_confidence = Lead.UNKNOWN, 0.0
        self.asymmetry_lead, self.asymmetry_confidence = self.asymmetry_estimate(lateral)

        lead, confidence = self._fuse()
        self.confidence = confidence
        self.current_lead = lead if confidence >= self.threshold else Lead.UNKNOWN
        logger.debug(
            "Lead phase=%s(%.2f, %.0f deg) asym=%s(%.2f) -> %s(%.2f)",
            self.phase_lead.value, self.phase_confidence, self.phase_angle,
            self.asymmetry_lead.value, self.asymmetry_confidence,
            self.current_lead.value, confidence,
        )
        return self.current_lead, confidence

    def _phase_estimate(self, lateral, yaw, stride_frequency) -> Tuple[Lead, float]:
        n = 1 << (len(lateral).bit_length() - 1)
        lateral, yaw = lateral[-n:], yaw[-n:]
        if np.var(lateral) < 1e-10 or np.var(yaw) < 1e-10:
            self.phase_angle = 0.0
            return Lead.UNKNOWN, 0.0
        if not stride_frequency or stride_frequency <= 0:
            stride_frequency = self._spectral.analyze(lateral).dominant_frequency
        self.phase_angle = phase_difference_degrees(lateral, yaw)
        lead, band_confidence = lead_from_phase(self.phase_angle)
        if lead is Lead.UNKNOWN:
            return lead, 0.0
        coherence = self._coherence_for(len(lateral)).coherence(lateral, yaw, stride_frequency)
        return lead, band_confidence * coherence

    def _coherence_for(self, n: int) -> CoherenceAnalyzer:
        # At least three half-overlapping segments; one segment is always coherent.
        seg = max(8, min(self.min_samples, n // 2))
        analyzer = self._coherence.get(seg)
        if analyzer is None:
            analyzer = CoherenceAnalyzer(self.sample_rate, segment_length=seg, overlap=seg // 2)
            self._coherence[seg] = analyzer
        return analyzer

    @classmethod
    def asymmetry_estimate(cls, lateral) -> Tuple[Lead, float]:
        """Lead from positive/negative lateral RMS imbalance and DC bias."""
        x = np.asarray(lateral, dtype=float)
        if len(x) < cls.ASYMMETRY_MIN_SAMPLES:
            return Lead.UNKNOWN, 0.0
        pos = x[x > 0]
        neg = x[x < 0]
        rms_pos = float(np.sqrt(np.mean(pos ** 2))) if len(pos) else 0.0
        rms_neg = float(np.sqrt(np.mean(neg ** 2))) if len(neg) else 0.0
        score = cls.RMS_WEIGHT * (rms_pos - rms_neg) + cls.BIAS_WEIGHT * float(np.mean(x))

        mag = abs(score)
        if mag < cls.ASYMMETRY_DEADBAND:
            return Lead.UNKNOWN, mag / cls.ASYMMETRY_DEADBAND * 0.5
        confidence = min(1.0, 0.5 + (mag - cls.ASYMMETRY_DEADBAND) / cls.ASYMMETRY_FULL_SCALE * 0.5)
        return (Lead.LEFT if score < 0 else Lead.RIGHT), confidence

    def _fuse(self) -> Tuple[Lead, float]:
        if self.phase_confidence > self.PHASE_TRUST:
            w_phase, w_asym = self.PHASE_WEIGHTS
        else:
            w_phase, w_asym = self.ASYMMETRY_WEIGHTS

        num = 0.0
        den = 0.0
        for lead, conf, w in (
            (self.phase_lead, self.phase_confidence, w_phase),
            (self.asymmetry_lead, self.asymmetry_confidence, w_asym),
        ):
            if lead is Lead.UNKNOWN:
                continue
            num += w * conf * (1.0 if lead is Lead.LEFT else -1.0)
            den += w
        if den == 0.0 or num == 0.0:
            return Lead.UNKNOWN, 0.0
        fused = num / den
        return (Lead.LEFT if fused > 0 else Lead.RIGHT), abs(fused)
