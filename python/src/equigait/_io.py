"""I/O utilities: load and save ride recordings, synthesize example rides."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from ._config import AnalysisConfig, HorseProfile
from ._core import LocationSample, MotionSample, SessionResult

logger = logging.getLogger(__name__)

_MOTION_COLUMNS = [
    "timestamp",
    "accel_x", "accel_y", "accel_z",
    "rot_x", "rot_y", "rot_z",
    "pitch", "roll", "yaw",
    "qw", "qx", "qy", "qz",
    "grav_x", "grav_y", "grav_z",
]
_MOTION_DEFAULTS = {"qw": 1.0, "grav_z": -1.0}
_LOCATION_COLUMNS = ["speed", "distance", "horizontal_accuracy"]


@dataclass
class Recording:
    """Motion and location streams captured during one ride.

    Attributes
    ----------
    motion : list of MotionSample
    location : list of LocationSample
    sample_rate : float
        Nominal motion sample rate in Hz.
    horse : HorseProfile, optional
    description : str
    """

    motion: List[MotionSample] = field(default_factory=list)
    location: List[LocationSample] = field(default_factory=list)
    sample_rate: float = 100.0
    horse: Optional[HorseProfile] = None
    description: str = ""

    @property
    def duration(self) -> float:
        if len(self.motion) < 2:
            return 0.0
        return self.motion[-1].timestamp - self.motion[0].timestamp

    @property
    def motion_frame(self):
        """Motion samples as a pandas DataFrame in the CSV column layout."""
        import pandas as pd
        rows = [
            [s.timestamp, *s.acceleration, *s.rotation_rate, *s.attitude, *s.quaternion, *s.gravity]
            for s in self.motion
        ]
        return pd.DataFrame(rows, columns=_MOTION_COLUMNS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_rate": self.sample_rate,
            "description": self.description,
            "horse": _profile_dict(self.horse),
            "motion": [
                {
                    "t": s.timestamp,
                    "acceleration": list(s.acceleration),
                    "rotation_rate": list(s.rotation_rate),
                    "attitude": list(s.attitude),
                    "quaternion": list(s.quaternion),
                    "gravity": list(s.gravity),
                }
                for s in self.motion
            ],
            "location": [
                {
                    "t": s.timestamp,
                    "speed": s.speed,
                    "distance": s.distance,
                    "horizontal_accuracy": s.horizontal_accuracy,
                }
                for s in self.location
            ],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Recording":
        if not isinstance(payload, dict):
            raise ValueError("recording must be a JSON object")
        motion_rows = payload.get("motion", [])
        location_rows = payload.get("location", [])
        if not isinstance(motion_rows, list):
            raise ValueError("'motion' must be a JSON array")
        if not isinstance(location_rows, list):
            raise ValueError("'location' must be a JSON array")
        sample_rate = float(payload.get("sample_rate", 100.0))
        if sample_rate <= 0:
            raise ValueError("sample_rate must be strictly positive")
        horse = payload.get("horse")
        try:
            motion = [
                MotionSample(
                    timestamp=float(row["t"]),
                    acceleration=_triple(row.get("acceleration")),
                    rotation_rate=_triple(row.get("rotation_rate")),
                    attitude=_triple(row.get("attitude")),
                    quaternion=tuple(float(v) for v in row.get("quaternion", (1.0, 0.0, 0.0, 0.0))),
                    gravity=_triple(row.get("gravity"), (0.0, 0.0, -1.0)),
                )
                for row in motion_rows
            ]
            location = [
                LocationSample(
                    timestamp=float(row["t"]),
                    speed=float(row.get("speed", -1.0)),
                    distance=float(row.get("distance", 0.0)),
                    horizontal_accuracy=float(row.get("horizontal_accuracy", 5.0)),
                )
                for row in location_rows
            ]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed recording sample: {exc}") from exc
        return cls(
            motion=motion,
            location=location,
            sample_rate=sample_rate,
            horse=HorseProfile.from_dict(horse) if horse else None,
            description=str(payload.get("description", "")),
        )


def _triple(values, default=(0.0, 0.0, 0.0)) -> tuple:
    if values is None:
        return default
    values = tuple(float(v) for v in values)
    if len(values) != 3:
        raise ValueError(f"expected 3 components, got {len(values)}")
    return values


def _profile_dict(profile: Optional[HorseProfile]) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    return asdict(profile)


# ── Loading / saving ─────────────────────────────────────────────────

def load_recording(path) -> Recording:
    """Load a recording from a ``.json`` or ``.csv`` file.

    CSV files hold one motion sample per row (see ``Recording.motion_frame``
    for the columns).  Rows with a ``speed`` value also produce a
    location sample; rows with no motion columns filled are location only.

    Parameters
    ----------
    path : str or Path

    Returns
    -------
    Recording
    """
    if not isinstance(path, (str, Path)) or not str(path).strip():
        raise ValueError("path must be a non-empty string or Path")
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".csv"):
        raise ValueError(f"Unsupported file format: {suffix or '<none>'}")
    if not path.exists():
        raise FileNotFoundError(f"Recording not found: {path}")

    if suffix == ".json":
        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {path}: {exc.msg}") from exc
        return Recording.from_dict(payload)
    return _load_csv(path)


def _load_csv(path: Path) -> Recording:
    import pandas as pd

    df = pd.read_csv(path)
    if "timestamp" not in df.columns:
        raise ValueError(f"{path} has no 'timestamp' column")
    present = [c for c in _MOTION_COLUMNS[1:] if c in df.columns]
    # Location-only rows carry no motion values at all
    is_motion = df[present].notna().any(axis=1) if present else pd.Series(True, index=df.index)
    motion_df = df[is_motion].copy()
    for col in _MOTION_COLUMNS[1:]:
        default = _MOTION_DEFAULTS.get(col, 0.0)
        if col in motion_df.columns:
            motion_df[col] = motion_df[col].fillna(default)
        else:
            motion_df[col] = default

    motion = [
        MotionSample(
            timestamp=float(row.timestamp),
            acceleration=(float(row.accel_x), float(row.accel_y), float(row.accel_z)),
            rotation_rate=(float(row.rot_x), float(row.rot_y), float(row.rot_z)),
            attitude=(float(row.pitch), float(row.roll), float(row.yaw)),
            quaternion=(float(row.qw), float(row.qx), float(row.qy), float(row.qz)),
            gravity=(float(row.grav_x), float(row.grav_y), float(row.grav_z)),
        )
        for row in motion_df.itertuples(index=False)
    ]
    location: List[LocationSample] = []
    if "speed" in df.columns:
        loc = df.dropna(subset=["speed"]).copy()
        for col, default in (("distance", 0.0), ("horizontal_accuracy", 5.0)):
            loc[col] = loc[col].fillna(default) if col in loc.columns else default
        for row in loc.itertuples(index=False):
            location.append(LocationSample(
                timestamp=float(row.timestamp),
                speed=float(row.speed),
                distance=float(row.distance),
                horizontal_accuracy=float(row.horizontal_accuracy),
            ))

    ts = motion_df["timestamp"].to_numpy(dtype=float)
    sample_rate = 100.0
    if len(ts) > 1:
        dt = float(np.median(np.diff(ts)))
        if dt > 0:
            sample_rate = 1.0 / dt
    logger.debug("Loaded %d motion rows from %s (%.1f Hz)", len(motion), path, sample_rate)
    return Recording(motion=motion, location=location, sample_rate=sample_rate)


def save_recording(recording: Recording, path) -> Path:
    """Write *recording* as JSON or CSV, chosen by the file suffix."""
    if not isinstance(recording, Recording):
        raise ValueError("recording must be a Recording")
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".csv"):
        raise ValueError(f"Unsupported file format: {suffix or '<none>'}")
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".json":
        with path.open("w", encoding="utf-8") as f:
            json.dump(recording.to_dict(), f)
        return path

    import pandas as pd
    df = recording.motion_frame
    if recording.location:
        loc = pd.DataFrame(
            [[s.timestamp, s.speed, s.distance, s.horizontal_accuracy] for s in recording.location],
            columns=["timestamp"] + _LOCATION_COLUMNS,
        )
        # Fixes at a motion timestamp share its row; others get their own row
        df = pd.merge(df, loc, on="timestamp", how="outer").sort_values("timestamp", kind="stable")
    df.to_csv(path, index=False)
    return path


# ── Synthetic rides ──────────────────────────────────────────────────

def synthesize_recording(duration: float = 3.0, stride_frequency: float = 2.0,
                         vertical_amplitude: float = 0.5, lateral_amplitude: float = 0.0,
                         yaw_amplitude: float = 0.0, lateral_phase: float = math.pi / 2,
                         speed: float = 4.0, sample_rate: float = 100.0,
                         gps_rate: float = 1.0, noise: float = 0.0,
                         seed: Optional[int] = None) -> Recording:
    """Generate a sinusoidal ride with an identity device orientation.

    Vertical acceleration is ``vertical_amplitude * sin(2 pi f t)`` on the
    device z axis, lateral acceleration on x leads yaw rate on z by
    *lateral_phase* radians, and location fixes arrive at *gps_rate* Hz.
    """
    if duration <= 0:
        raise ValueError("duration must be strictly positive")
    if sample_rate <= 0:
        raise ValueError("sample_rate must be strictly positive")
    if gps_rate <= 0:
        raise ValueError("gps_rate must be strictly positive")
    if stride_frequency < 0:
        raise ValueError("stride_frequency must be >= 0")

    rng = np.random.default_rng(seed)
    n = int(round(duration * sample_rate))
    t = np.arange(n) / sample_rate
    w = 2.0 * math.pi * stride_frequency
    vertical = vertical_amplitude * np.sin(w * t)
    lateral = lateral_amplitude * np.sin(w * t + lateral_phase)
    yaw = yaw_amplitude * np.sin(w * t)
    if noise > 0:
        vertical = vertical + rng.normal(0.0, noise, n)
        lateral = lateral + rng.normal(0.0, noise, n)

    motion = [
        MotionSample(
            timestamp=float(t[i]),
            acceleration=(float(lateral[i]), 0.0, float(vertical[i])),
            rotation_rate=(0.0, 0.0, float(yaw[i])),
        )
        for i in range(n)
    ]
    step = 1.0 / gps_rate
    location = [
        LocationSample(timestamp=float(ts), speed=speed, distance=speed * step, horizontal_accuracy=5.0)
        for ts in np.arange(step, duration + 1e-9, step)
    ]
    return Recording(
        motion=motion,
        location=location,
        sample_rate=sample_rate,
        description=f"synthetic {stride_frequency:g} Hz ride",
    )


# Stride frequency, vertical amplitude, lateral amplitude, yaw amplitude, speed
_EXAMPLES = {
    "stationary": (0.0, 0.0, 0.0, 0.0, 0.0),
    "walk": (1.5, 0.1, 0.05, 0.2, 1.5),
    "trot": (2.6, 0.25, 0.1, 0.35, 3.5),
    "canter": (2.0, 0.5, 0.0, 0.0, 4.0),
    "gallop": (4.0, 0.48, 0.1, 0.9, 10.0),
}
_EXAMPLE_ALIASES = {"halt": "stationary", "lope": "canter"}


def load_example(name: str = "canter", duration: float = 10.0) -> Recording:
    """Synthetic example ride for one gait.

    Parameters
    ----------
    name : str
        One of :func:`list_examples`.  Aliases: "halt", "lope".
    duration : float
        Seconds of data.

    Examples
    --------
    >>> import equigait
    >>> ride = equigait.load_example("canter", duration=3.0)
    >>> len(ride.motion)
    300
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Example name must be a non-empty string")
    key = name.lower().strip()
    key = _EXAMPLE_ALIASES.get(key, key)
    if key not in _EXAMPLES:
        raise ValueError(f"Unknown example {name!r}. Available: {list_examples()}")
    f0, vertical, lateral, yaw, speed = _EXAMPLES[key]
    recording = synthesize_recording(
        duration=duration,
        stride_frequency=f0,
        vertical_amplitude=vertical,
        lateral_amplitude=lateral,
        yaw_amplitude=yaw,
        speed=speed,
    )
    recording.description = f"synthetic {key}"
    return recording


def list_examples() -> List[str]:
    """List available example names (without aliases)."""
    return list(_EXAMPLES)


# ── Replay ───────────────────────────────────────────────────────────

def run_recording(recording: Recording, config: Optional[AnalysisConfig] = None,
                  listener=None) -> SessionResult:
    """Replay *recording* through a fresh :class:`GaitAnalyzer`.

    Motion and location samples are merged in timestamp order; a location
    fix is delivered before motion samples with the same timestamp.
    """
    from ._session import GaitAnalyzer

    analyzer = GaitAnalyzer(config)
    if listener is not None:
        analyzer.add_listener(listener)
    start = recording.motion[0].timestamp if recording.motion else 0.0
    analyzer.start_analyzing(recording.horse, start_time=start)

    locations = sorted(recording.location, key=lambda s: s.timestamp)
    i = 0
    for sample in recording.motion:
        while i < len(locations) and locations[i].timestamp <= sample.timestamp:
            analyzer.process_location(locations[i])
            i += 1
        analyzer.process_motion(sample)
    return analyzer.stop_analyzing()


# ── Export ───────────────────────────────────────────────────────────

EXPORT_FORMATS = ("json", "csv", "xlsx")


def export_session(result: SessionResult, output_prefix, formats=("json",)) -> Dict[str, str]:
    """Write *result* to one or several formats.

    ``json`` writes ``<prefix>.json``; ``csv`` writes
    ``<prefix>_segments.csv`` and ``<prefix>_transitions.csv``; ``xlsx``
    writes ``<prefix>.xlsx`` with one sheet each for segments and
    transitions.

    Returns
    -------
    dict
        Format name (``json``, ``segments``, ``transitions``, ``xlsx``) to
        written path.
    """
    if not isinstance(result, SessionResult):
        raise ValueError("result must be a SessionResult")
    prefix = Path(output_prefix)
    if isinstance(formats, str):
        wanted = [formats.lower().strip()]
    else:
        wanted = [str(f).lower().strip() for f in formats]
    if not wanted:
        raise ValueError("formats must not be empty")
    unknown = [f for f in wanted if f not in EXPORT_FORMATS]
    if unknown:
        raise ValueError(f"Unknown export format(s): {unknown}. Allowed: {list(EXPORT_FORMATS)}")
    wanted = list(dict.fromkeys(wanted))
    prefix.parent.mkdir(parents=True, exist_ok=True)
    written: Dict[str, str] = {}

    if "json" in wanted:
        p = prefix.with_suffix(".json")
        p.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        written["json"] = str(p)

    if "csv" in wanted:
        seg_path = prefix.with_name(prefix.name + "_segments.csv")
        tr_path = prefix.with_name(prefix.name + "_transitions.csv")
        result.to_csv(str(seg_path))
        result.transitions_frame.to_csv(tr_path, index=False)
        written["segments"] = str(seg_path)
        written["transitions"] = str(tr_path)

    if "xlsx" in wanted:
        try:
            from openpyxl import Workbook
        except ImportError as exc:
            raise RuntimeError("openpyxl is required for xlsx export") from exc
        x_path = prefix.with_suffix(".xlsx")
        wb = Workbook()
        ws = wb.active
        ws.title = "segments"
        seg_rows = [s.to_dict() for s in result.segments]
        seg_cols = list(seg_rows[0]) if seg_rows else ["segment_id", "gait", "start_time", "end_time"]
        ws.append(seg_cols)
        for row in seg_rows:
            ws.append([row.get(c) for c in seg_cols])
        ws2 = wb.create_sheet("transitions")
        tr_cols = ["from_gait", "to_gait", "timestamp", "quality"]
        ws2.append(tr_cols)
        for t in result.transitions:
            row = t.to_dict()
            ws2.append([row.get(c) for c in tr_cols])
        wb.save(x_path)
        written["xlsx"] = str(x_path)
    return written
