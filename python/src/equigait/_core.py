"""Core data structures shared by the equigait pipeline."""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# ── Enumerations ─────────────────────────────────────────────────────

class Gait(Enum):
    """Horse locomotion mode, ordered from slowest to fastest."""

    STATIONARY = "stationary"
    WALK = "walk"
    TROT = "trot"
    CANTER = "canter"
    GALLOP = "gallop"

    @property
    def index(self) -> int:
        return _GAIT_ORDER.index(self)

    @property
    def has_lead(self) -> bool:
        """Lead leg only exists for the asymmetric gaits."""
        return self in (Gait.CANTER, Gait.GALLOP)

    @classmethod
    def from_name(cls, name: str) -> "Gait":
        if not isinstance(name, str) or not name.strip():
            raise ValueError("gait name must be a non-empty string")
        key = name.lower().strip()
        key = _GAIT_ALIASES.get(key, key)
        for gait in cls:
            if gait.value == key:
                return gait
        raise ValueError(f"Unknown gait {name!r}. Available: {list_gaits()}")


_GAIT_ORDER = [Gait.STATIONARY, Gait.WALK, Gait.TROT, Gait.CANTER, Gait.GALLOP]

_GAIT_ALIASES = {
    "halt": "stationary",
    "stand": "stationary",
    "lope": "canter",
}


def list_gaits() -> List[str]:
    """Return the gait names in state order.

    Returns
    -------
    list of str
        Names accepted by :meth:`Gait.from_name`.
    """
    return [g.value for g in _GAIT_ORDER]


class Lead(Enum):
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


class ReinDirection(Enum):
    LEFT = "left"
    RIGHT = "right"
    STRAIGHT = "straight"


class ImpactSide(Enum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


# ── Sensor samples ───────────────────────────────────────────────────

@dataclass(frozen=True)
class MotionSample:
    """One device-motion tick.

    Attributes
    ----------
    timestamp : float
        Seconds since an arbitrary monotonic origin.
    acceleration : tuple of float
        User acceleration (gravity removed) in g, device axes (x, y, z).
    rotation_rate : tuple of float
        Gyroscope rate in rad/s, device axes.
    attitude : tuple of float
        (pitch, roll, yaw) in radians.
    quaternion : tuple of float
        Device orientation as (w, x, y, z).
    gravity : tuple of float
        Gravity direction in device axes, in g.
    """

    timestamp: float
    acceleration: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation_rate: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    attitude: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    quaternion: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)
    gravity: Tuple[float, float, float] = (0.0, 0.0, -1.0)

    @property
    def roll(self) -> float:
        return self.attitude[1]


@dataclass(frozen=True)
class LocationSample:
    """One location fix. A negative speed marks an invalid reading."""

    timestamp: float
    speed: float
    distance: float = 0.0
    horizontal_accuracy: float = 5.0


@dataclass(frozen=True)
class TransformedSample:
    """Motion sample re-expressed in horse-relative axes."""

    timestamp: float
    vertical: float
    lateral: float
    forward: float
    pitch_rate: float
    roll_rate: float
    yaw_rate: float
    roll: float = 0.0


# ── Derived values ───────────────────────────────────────────────────

@dataclass
class GaitFeatureVector:
    """Features computed at one analysis tick.

    Wearable features are 0 when no watch data is available, which the
    classifier treats as absent.
    """

    stride_frequency: float = 0.0
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    spectral_entropy: float = 0.0
    xy_coherence: float = 0.0
    z_yaw_coherence: float = 0.0
    normalized_vertical_rms: float = 0.0
    yaw_rate_rms: float = 0.0
    gps_speed: float = 0.0
    gps_accuracy: float = 100.0
    watch_arm_symmetry: float = 0.0
    watch_yaw_energy: float = 0.0
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "timestamp": self.timestamp,
            "stride_frequency": self.stride_frequency,
            "h2_ratio": self.h2_ratio,
            "h3_ratio": self.h3_ratio,
            "spectral_entropy": self.spectral_entropy,
            "xy_coherence": self.xy_coherence,
            "z_yaw_coherence": self.z_yaw_coherence,
            "normalized_vertical_rms": self.normalized_vertical_rms,
            "yaw_rate_rms": self.yaw_rate_rms,
            "gps_speed": self.gps_speed,
            "gps_accuracy": self.gps_accuracy,
            "watch_arm_symmetry": self.watch_arm_symmetry,
            "watch_yaw_energy": self.watch_yaw_energy,
        }


@dataclass
class SpectralSnapshot:
    """Spectral state captured when a segment opens or closes."""

    stride_frequency: float = 0.0
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    spectral_entropy: float = 0.0
    vertical_yaw_coherence: float = 0.0

    @classmethod
    def from_features(cls, features: Optional[GaitFeatureVector]) -> "SpectralSnapshot":
        if features is None:
            return cls()
        return cls(
            stride_frequency=features.stride_frequency,
            h2_ratio=features.h2_ratio,
            h3_ratio=features.h3_ratio,
            spectral_entropy=features.spectral_entropy,
            vertical_yaw_coherence=features.z_yaw_coherence,
        )


@dataclass
class GaitSegment:
    """Contiguous interval during which the classified gait was constant.

    Attributes
    ----------
    segment_id : int
        Sequential identifier within a session.
    gait : Gait
        Classified gait.
    start_time : float
        Timestamp of the sample that opened the segment.
    end_time : float or None
        ``None`` while the segment is open.
    distance : float
        Metres accumulated from location updates.
    average_speed : float
        distance / duration, fixed on finalisation.
    lead, lead_confidence
        Last reliable lead reported while open (canter/gallop only).
    rhythm_score, symmetry_score
        Last scores reported while open (0-100).
    rhythm_confidence, symmetry_confidence
        Confidence (0-1) of those scores.
    start_snapshot, end_snapshot : SpectralSnapshot
        Spectral features at open and close.
    """

    segment_id: int
    gait: Gait
    start_time: float
    end_time: Optional[float] = None
    distance: float = 0.0
    average_speed: float = 0.0
    lead: Lead = Lead.UNKNOWN
    lead_confidence: float = 0.0
    rhythm_score: float = 0.0
    symmetry_score: float = 0.0
    rhythm_confidence: float = 0.0
    symmetry_confidence: float = 0.0
    start_snapshot: SpectralSnapshot = field(default_factory=SpectralSnapshot)
    end_snapshot: Optional[SpectralSnapshot] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    def finalize(self, end_time: float, snapshot: Optional[SpectralSnapshot] = None) -> None:
        if self.end_time is not None:
            raise ValueError(f"segment {self.segment_id} is already finalized")
        self.end_time = max(end_time, self.start_time)
        duration = self.duration
        self.average_speed = self.distance / duration if duration > 0 else 0.0
        self.end_snapshot = snapshot if snapshot is not None else SpectralSnapshot()

    def to_dict(self) -> Dict[str, Any]:
        snap = self.end_snapshot or self.start_snapshot
        return {
            "segment_id": self.segment_id,
            "gait": self.gait.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "distance": self.distance,
            "average_speed": self.average_speed,
            "lead": self.lead.value,
            "lead_confidence": self.lead_confidence,
            "rhythm_score": self.rhythm_score,
            "symmetry_score": self.symmetry_score,
            "rhythm_confidence": self.rhythm_confidence,
            "symmetry_confidence": self.symmetry_confidence,
            "stride_frequency": snap.stride_frequency,
            "h2_ratio": snap.h2_ratio,
            "h3_ratio": snap.h3_ratio,
            "spectral_entropy": snap.spectral_entropy,
            "vertical_yaw_coherence": snap.vertical_yaw_coherence,
        }


@dataclass(frozen=True)
class ImpactEvent:
    """One detected footfall."""

    timestamp: float
    vertical_peak: float
    lateral: float
    roll: float
    side: ImpactSide


@dataclass(frozen=True)
class RecordedTransition:
    from_gait: Gait
    to_gait: Gait
    timestamp: float
    quality: float

    @property
    def is_upward(self) -> bool:
        return self.to_gait.index > self.from_gait.index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_gait": self.from_gait.value,
            "to_gait": self.to_gait.value,
            "timestamp": self.timestamp,
            "quality": self.quality,
        }


# ── SessionResult ────────────────────────────────────────────────────

@dataclass
class SessionResult:
    """Container for one finished analysis session.

    Attributes
    ----------
    segments : list of GaitSegment
        Finalized segments in chronological order.
    transitions : list of RecordedTransition
        Transitions accepted by the transition analyzer.
    rein_rhythm : dict
        Average rhythm score per rein direction name.
    rein_symmetry : dict
        Average symmetry score per rein direction name.
    lead_durations : dict
        Seconds spent on each reliable lead.
    """

    segments: List[GaitSegment] = field(default_factory=list)
    transitions: List[RecordedTransition] = field(default_factory=list)
    rein_rhythm: Dict[str, float] = field(default_factory=dict)
    rein_symmetry: Dict[str, float] = field(default_factory=dict)
    lead_durations: Dict[str, float] = field(default_factory=dict)

    # ── pandas views ──────────────────────────────────────────────

    @property
    def segments_frame(self):
        """Segments as a pandas DataFrame, one row per segment."""
        import pandas as pd
        return pd.DataFrame([s.to_dict() for s in self.segments])

    @property
    def transitions_frame(self):
        """Transitions as a pandas DataFrame."""
        import pandas as pd
        return pd.DataFrame(
            [t.to_dict() for t in self.transitions],
            columns=["from_gait", "to_gait", "timestamp", "quality"],
        )

    def gait_durations(self) -> Dict[str, float]:
        """Total seconds per gait."""
        out = {name: 0.0 for name in list_gaits()}
        for seg in self.segments:
            out[seg.gait.value] += seg.duration
        return out

    # ── export ────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "transitions": [t.to_dict() for t in self.transitions],
            "gait_durations": self.gait_durations(),
            "rein_rhythm": dict(self.rein_rhythm),
            "rein_symmetry": dict(self.rein_symmetry),
            "lead_durations": dict(self.lead_durations),
        }

    def to_csv(self, path: str) -> None:
        """Write segments to a CSV file."""
        self.segments_frame.to_csv(path, index=False)

    def plot(self, **kwargs):
        """Gait timeline.  See :func:`equigait._viz.plot_session`."""
        from ._viz import plot_session
        return plot_session(self, **kwargs)

    def summary(self) -> str:
        """Print a concise summary of the session."""
        durations = self.gait_durations()
        lines = [
            f"SessionResult  segments={len(self.segments)}  transitions={len(self.transitions)}",
        ]
        for name, secs in durations.items():
            if secs > 0:
                lines.append(f"  {name:<10s} {secs:7.1f} s")
        if self.transitions:
            q = sum(t.quality for t in self.transitions) / len(self.transitions)
            lines.append(f"  Transition quality: {q:.2f}")
        text = "\n".join(lines)
        print(text)
        return text

    def __repr__(self) -> str:
        return (
            f"SessionResult(segments={len(self.segments)}, "
            f"transitions={len(self.transitions)})"
        )
