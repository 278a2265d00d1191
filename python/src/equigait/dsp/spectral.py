"""
Spectral features of the vertical-acceleration window.

Principle
---------
Each gait has a characteristic vertical oscillation: trot is a clean
two-beat signal (strong 2nd harmonic), canter a three-beat one (strong
3rd harmonic), walk and gallop are spread over more frequencies (higher
entropy).  The dominant peak inside the plausible stride band gives the
stride frequency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.fft import rfft, rfftfreq

logger = logging.getLogger(__name__)

_EPS = 1e-10


@dataclass(frozen=True)
class SpectralFeatures:
    dominant_frequency: float = 0.0
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    spectral_entropy: float = 0.0


class SpectralFeatureExtractor:
    """FFT-based stride frequency, harmonic ratios and spectral entropy.

    Parameters
    ----------
    sample_rate : float
        Sampling rate in Hz.
    min_window : int
        Shortest window analysed; shorter inputs yield zero features.
    freq_range : tuple of float
        (min_freq, max_freq) stride search band in Hz.
    """

    def __init__(self, sample_rate: float = 100.0, min_window: int = 128,
                 freq_range: Tuple[float, float] = (0.5, 6.0)):
        if sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")
        if min_window < 4:
            raise ValueError("min_window must be >= 4")
        if freq_range[0] < 0 or freq_range[1] <= freq_range[0]:
            raise ValueError("freq_range must satisfy 0 <= min < max")
        self.sample_rate = sample_rate
        self.min_window = min_window
        self.freq_range = freq_range

    def power_spectrum(self, window) -> Tuple[np.ndarray, np.ndarray]:
        """Hann-windowed one-sided power spectrum.

        Returns
        -------
        freqs : ndarray
            Bin centre frequencies in Hz.
        power : ndarray
            Power per bin, scaled by 1/N^2.
        """
        x = np.asarray(window, dtype=float)
        n = len(x)
        windowed = (x - np.mean(x)) * np.hanning(n)
        power = np.abs(rfft(windowed)) ** 2 / (n * n)
        freqs = rfftfreq(n, 1.0 / self.sample_rate)
        return freqs, power

    def analyze(self, window) -> SpectralFeatures:
        """Compute spectral features for one window.

        Parameters
        ----------
        window : array-like, shape (N,)
            Vertical acceleration; N must be a power of two.

        Returns
        -------
        SpectralFeatures
            All zeros when the window is too short or flat.
        """
        x = np.asarray(window, dtype=float)
        n = len(x)
        if n < self.min_window:
            return SpectralFeatures()
        if n & (n - 1):
            raise ValueError(f"window length must be a power of two, got {n}")
        if not np.all(np.isfinite(x)) or np.var(x) < _EPS:
            return SpectralFeatures()

        freqs, power = self.power_spectrum(x)
        resolution = freqs[1] - freqs[0]

        f0, peak_bin = self._dominant_peak(freqs, power, resolution)
        if f0 <= 0:
            return SpectralFeatures()

        fundamental = power[peak_bin]
        h2 = self._harmonic_ratio(power, f0, 2, resolution, fundamental)
        h3 = self._harmonic_ratio(power, f0, 3, resolution, fundamental)
        entropy = self._entropy(power)

        return SpectralFeatures(
            dominant_frequency=f0,
            h2_ratio=h2,
            h3_ratio=h3,
            spectral_entropy=entropy,
        )

    def analyze_with_overlap(self, signal, window_size: int = 256,
                             overlap: float = 0.8) -> SpectralFeatures:
        """Average features over overlapping windows of a longer signal."""
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be within [0, 1)")
        x = np.asarray(signal, dtype=float)
        if len(x) < window_size:
            return SpectralFeatures()
        hop = max(1, int(window_size * (1.0 - overlap)))
        results = [
            self.analyze(x[start:start + window_size])
            for start in range(0, len(x) - window_size + 1, hop)
        ]
        valid = [r for r in results if r.dominant_frequency > 0]
        if not valid:
            return SpectralFeatures()
        return SpectralFeatures(
            dominant_frequency=float(np.mean([r.dominant_frequency for r in valid])),
            h2_ratio=float(np.mean([r.h2_ratio for r in valid])),
            h3_ratio=float(np.mean([r.h3_ratio for r in valid])),
            spectral_entropy=float(np.mean([r.spectral_entropy for r in valid])),
        )

    # ── internals ─────────────────────────────────────────────────

    def _dominant_peak(self, freqs, power, resolution) -> Tuple[float, int]:
        lo = max(1, int(np.ceil(self.freq_range[0] / resolution)))
        hi = min(len(power) - 1, int(np.floor(self.freq_range[1] / resolution)))
        if lo > hi:
            return 0.0, 0
        band = power[lo:hi + 1]
        if band.max() < _EPS:
            return 0.0, 0
        k = lo + int(np.argmax(band))

        # Parabolic interpolation around the peak bin
        offset = 0.0
        if 0 < k < len(power) - 1:
            a, b, c = power[k - 1], power[k], power[k + 1]
            denom = a - 2 * b + c
            if abs(denom) > _EPS:
                offset = 0.5 * (a - c) / denom
                offset = max(-0.5, min(0.5, offset))
        return float((k + offset) * resolution), k

    @staticmethod
    def _harmonic_ratio(power, f0, order, resolution, fundamental) -> float:
        if fundamental < _EPS:
            return 0.0
        k = int(round(order * f0 / resolution))
        if k >= len(power):
            return 0.0
        return float(power[k] / fundamental)

    @staticmethod
    def _entropy(power) -> float:
        total = power.sum()
        if total < _EPS or len(power) < 2:
            return 0.0
        p = power / total
        p = p[p > 0]
        h = -np.sum(p * np.log2(p))
        return float(min(1.0, max(0.0, h / np.log2(len(power)))))
