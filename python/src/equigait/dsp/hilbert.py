"""
Instantaneous phase via the analytic signal.

The circular mean of the phase difference between lateral acceleration
and yaw rate is the primary lead indicator: lateral leading yaw by a
quarter cycle (+90 deg) is a left lead, lagging (-90 deg) a right lead.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.signal import hilbert

from .._core import Lead

LEAD_BAND_LOW = 45.0
LEAD_BAND_HIGH = 135.0


def analytic_signal(signal) -> np.ndarray:
    """Analytic signal of the mean-removed input."""
    x = np.asarray(signal, dtype=float)
    if len(x) < 2:
        return np.zeros(len(x), dtype=complex)
    return hilbert(x - np.mean(x))


def instantaneous_phase(signal) -> np.ndarray:
    """Wrapped phase in radians, one value per sample."""
    return np.angle(analytic_signal(signal))


def unwrapped_phase(signal) -> np.ndarray:
    return np.unwrap(instantaneous_phase(signal))


def envelope(signal) -> np.ndarray:
    """Instantaneous amplitude."""
    return np.abs(analytic_signal(signal))


def instantaneous_frequency(signal, sample_rate: float) -> np.ndarray:
    """Instantaneous frequency in Hz (length N-1)."""
    if sample_rate <= 0:
        raise ValueError("sample_rate must be strictly positive")
    return np.diff(unwrapped_phase(signal)) * sample_rate / (2.0 * np.pi)


def circular_mean_phase_difference(phase_a, phase_b) -> float:
    """Circular mean of ``phase_a - phase_b`` in radians, in (-pi, pi]."""
    a = np.asarray(phase_a, dtype=float)
    b = np.asarray(phase_b, dtype=float)
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    delta = a[:n] - b[:n]
    s = np.sum(np.sin(delta))
    c = np.sum(np.cos(delta))
    if abs(s) < 1e-12 and abs(c) < 1e-12:
        return 0.0
    return float(np.arctan2(s, c))


def phase_difference_degrees(signal_a, signal_b, trim: float = 0.1) -> float:
    """Circular-mean phase of *signal_a* relative to *signal_b* in degrees.

    The first and last *trim* fraction of samples are dropped because the
    analytic signal is distorted near the window edges.
    """
    pa = instantaneous_phase(signal_a)
    pb = instantaneous_phase(signal_b)
    n = min(len(pa), len(pb))
    cut = int(n * trim)
    if n - 2 * cut < 2:
        cut = 0
    sl = slice(cut, n - cut)
    return float(np.degrees(circular_mean_phase_difference(pa[sl], pb[sl])))


def lead_from_phase(angle_deg: float) -> Tuple[Lead, float]:
    """Map a phase difference to a lead and a band confidence.

    Confidence is 1 at exactly +/-90 deg and falls linearly to 0 at the
    band edges (45 and 135 deg).
    """
    mag = abs(angle_deg)
    if not LEAD_BAND_LOW < mag < LEAD_BAND_HIGH:
        return Lead.UNKNOWN, 0.0
    half_width = (LEAD_BAND_HIGH - LEAD_BAND_LOW) / 2.0
    confidence = max(0.0, 1.0 - abs(mag - 90.0) / half_width)
    return (Lead.LEFT if angle_deg > 0 else Lead.RIGHT), confidence
