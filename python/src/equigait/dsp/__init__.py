"""
Signal-processing building blocks.

    - frame: device to horse frame rotation with drift recalibration
    - spectral: stride frequency, harmonic ratios, spectral entropy
    - coherence: Welch magnitude-squared coherence
    - hilbert: instantaneous phase and circular phase differences
    - buffers: index-aligned rolling channel windows
"""

from .buffers import ChannelWindows, RollingWindow
from .coherence import CoherenceAnalyzer
from .frame import FrameTransformer, quaternion_from_euler
from .hilbert import (
    circular_mean_phase_difference,
    instantaneous_phase,
    lead_from_phase,
    phase_difference_degrees,
)
from .spectral import SpectralFeatureExtractor, SpectralFeatures

__all__ = [
    "ChannelWindows",
    "RollingWindow",
    "CoherenceAnalyzer",
    "FrameTransformer",
    "quaternion_from_euler",
    "circular_mean_phase_difference",
    "instantaneous_phase",
    "lead_from_phase",
    "phase_difference_degrees",
    "SpectralFeatureExtractor",
    "SpectralFeatures",
]
