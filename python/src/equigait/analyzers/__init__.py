"""
Per-gait quality analyzers fed by the horse-frame sample stream.

    - lead: canter / gallop lead from phase and lateral asymmetry
    - rhythm: stride-interval regularity
    - symmetry: footfall impact balance
    - transition: speed-smoothness quality of gait changes
    - rein: rein direction and per-rein score averages
"""

from .lead import LeadAnalyzer
from .rein import ReinDetector, ReinScoreTracker
from .rhythm import STRIDE_RATE_BANDS, RhythmAnalyzer
from .symmetry import SymmetryAnalyzer
from .transition import TransitionAnalyzer

__all__ = [
    "LeadAnalyzer",
    "ReinDetector",
    "ReinScoreTracker",
    "RhythmAnalyzer",
    "STRIDE_RATE_BANDS",
    "SymmetryAnalyzer",
    "TransitionAnalyzer",
]
