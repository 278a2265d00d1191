"""
Welch magnitude-squared coherence between two channels.

    C_xy(f) = |P_xy(f)|^2 / (P_xx(f) * P_yy(f))

Both signals are split into overlapping Hann-windowed segments whose
cross and auto spectra are averaged before forming the ratio.  A single
segment always yields coherence 1, so averaging is what makes the value
meaningful.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.signal import csd, welch

_EPS = 1e-10


class CoherenceAnalyzer:
    """Segment-averaged coherence at a target frequency.

    Parameters
    ----------
    sample_rate : float
        Sampling rate in Hz.
    segment_length : int
        Samples per Welch segment.
    overlap : int
        Samples shared by consecutive segments.
    """

    def __init__(self, sample_rate: float = 100.0, segment_length: int = 128,
                 overlap: int = 64):
        if sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")
        if segment_length < 8:
            raise ValueError("segment_length must be >= 8")
        if not 0 <= overlap < segment_length:
            raise ValueError("overlap must be within [0, segment_length)")
        self.sample_rate = sample_rate
        self.segment_length = segment_length
        self.overlap = overlap

    @property
    def resolution(self) -> float:
        return self.sample_rate / self.segment_length

    def _spectra(self, signal1, signal2):
        x = np.asarray(signal1, dtype=float)
        y = np.asarray(signal2, dtype=float)
        if len(x) != len(y) or len(x) < self.segment_length:
            return None
        kwargs = dict(
            fs=self.sample_rate, window="hann",
            nperseg=self.segment_length, noverlap=self.overlap,
        )
        freqs, pxy = csd(x, y, **kwargs)
        _, pxx = welch(x, **kwargs)
        _, pyy = welch(y, **kwargs)
        return freqs, pxy, pxx, pyy

    def _bin(self, frequency: float, n_bins: int) -> int:
        k = int(round(frequency / self.resolution))
        if k <= 0 or k >= n_bins - 1:
            return -1
        return k

    def coherence(self, signal1, signal2, frequency: float) -> float:
        """Coherence in [0, 1] at the bin nearest *frequency*.

        Returns 0 for short or mismatched signals, frequencies outside the
        open interval (0, Nyquist), and flat channels.
        """
        spectra = self._spectra(signal1, signal2)
        if spectra is None:
            return 0.0
        freqs, pxy, pxx, pyy = spectra
        k = self._bin(frequency, len(freqs))
        if k < 0:
            return 0.0
        if pxx[k] < _EPS or pyy[k] < _EPS:
            return 0.0
        c = np.abs(pxy[k]) ** 2 / (pxx[k] * pyy[k])
        return float(min(1.0, max(0.0, c)))

    def coherence_spectrum(self, signal1, signal2) -> Tuple[np.ndarray, np.ndarray]:
        """Coherence at every bin; degenerate bins are 0."""
        spectra = self._spectra(signal1, signal2)
        if spectra is None:
            return np.zeros(0), np.zeros(0)
        freqs, pxy, pxx, pyy = spectra
        denom = pxx * pyy
        out = np.zeros_like(freqs)
        ok = (pxx >= _EPS) & (pyy >= _EPS)
        out[ok] = np.abs(pxy[ok]) ** 2 / denom[ok]
        return freqs, np.clip(out, 0.0, 1.0)

    def average_coherence(self, signal1, signal2, f_lo: float, f_hi: float) -> float:
        """Mean coherence across the bins in [f_lo, f_hi]."""
        if f_hi < f_lo:
            raise ValueError("f_hi must be >= f_lo")
        freqs, coh = self.coherence_spectrum(signal1, signal2)
        mask = (freqs >= f_lo) & (freqs <= f_hi)
        if not np.any(mask):
            return 0.0
        return float(np.mean(coh[mask]))

    def cross_spectral_phase(self, signal1, signal2, frequency: float) -> float:
        """Phase of the cross spectrum at *frequency*, in degrees."""
        spectra = self._spectra(signal1, signal2)
        if spectra is None:
            return 0.0
        freqs, pxy, _, _ = spectra
        k = self._bin(frequency, len(freqs))
        if k < 0 or np.abs(pxy[k]) < _EPS:
            return 0.0
        return float(np.degrees(np.angle(pxy[k])))
