"""
Sensor frame transformation.

Re-expresses device-frame acceleration and rotation rate in a
horse-relative frame captured at calibration time:

    lateral  = x   (positive to the right)
    forward  = y
    vertical = z

Rotation rates follow the same convention (pitch = x, roll = y, yaw = z).

Calibration stores the conjugate of a reference orientation; every later
sample is rotated by ``conj(reference) * current``.  The reference is
re-captured automatically when the averaged gravity direction drifts too
far from vertical, which happens when the phone shifts in a pocket.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from .._core import MotionSample, TransformedSample

logger = logging.getLogger(__name__)

Quaternion = Tuple[float, float, float, float]

_IDENTITY: Quaternion = (1.0, 0.0, 0.0, 0.0)


# ── Quaternion helpers ───────────────────────────────────────────────

def quaternion_conjugate(q: Sequence[float]) -> Quaternion:
    w, x, y, z = q
    return (w, -x, -y, -z)


def quaternion_multiply(a: Sequence[float], b: Sequence[float]) -> Quaternion:
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return (
        aw * bw - ax * bx - ay * by - az * bz,
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
    )


def rotate_vector(v: Sequence[float], q: Sequence[float]) -> np.ndarray:
    """Rotate 3-vector *v* by unit quaternion *q* (q v q*)."""
    vq = (0.0, float(v[0]), float(v[1]), float(v[2]))
    r = quaternion_multiply(quaternion_multiply(q, vq), quaternion_conjugate(q))
    return np.array(r[1:], dtype=float)


def quaternion_from_euler(pitch: float, roll: float, yaw: float) -> Quaternion:
    """Quaternion for intrinsic rotations about x (pitch), y (roll), z (yaw)."""
    cp, sp = math.cos(pitch / 2), math.sin(pitch / 2)
    cr, sr = math.cos(roll / 2), math.sin(roll / 2)
    cy, sy = math.cos(yaw / 2), math.sin(yaw / 2)
    qx = (cp, sp, 0.0, 0.0)
    qy = (cr, 0.0, sr, 0.0)
    qz = (cy, 0.0, 0.0, sy)
    return quaternion_multiply(quaternion_multiply(qz, qy), qx)


def _normalize(q: Sequence[float]) -> Quaternion:
    n = math.sqrt(sum(c * c for c in q))
    if n < 1e-12:
        return _IDENTITY
    return tuple(c / n for c in q)  # type: ignore[return-value]


# ── Transformer ──────────────────────────────────────────────────────

class FrameTransformer:
    """Rotate motion samples into the calibrated horse frame.

    Parameters
    ----------
    drift_threshold : float
        Angle (rad) between averaged gravity and vertical that triggers
        an automatic recalibration.
    monitor_drift : bool
        Disable to keep the reference fixed for the whole session.
    """

    GRAVITY_ALPHA = 0.01
    EARLY_GRAVITY_ALPHA = 0.05
    DRIFT_CHECK_INTERVAL = 100
    RECALIBRATION_COOLDOWN = 3000
    EARLY_RECALIBRATION_COOLDOWN = 500

    def __init__(self, drift_threshold: float = 0.35, monitor_drift: bool = True):
        if drift_threshold <= 0:
            raise ValueError("drift_threshold must be strictly positive")
        self.drift_threshold = drift_threshold
        self.monitor_drift = monitor_drift
        self._reference: Optional[Quaternion] = None
        self.recalibration_count = 0
        self._reset_drift()

    def _reset_drift(self) -> None:
        self._gravity_avg = np.array([0.0, 0.0, -1.0])
        self._since_check = 0
        self._since_recalibration = 0

    @property
    def is_calibrated(self) -> bool:
        return self._reference is not None

    def calibrate(self, reference: MotionSample) -> None:
        """Capture *reference*'s orientation; replaces any earlier reference."""
        self._reference = quaternion_conjugate(_normalize(reference.quaternion))
        self._reset_drift()
        logger.debug("Frame calibrated at t=%.3f", reference.timestamp)

    def reset(self) -> None:
        self._reference = None
        self.recalibration_count = 0
        self._reset_drift()

    def relative_orientation(self, sample: MotionSample) -> Quaternion:
        q = _normalize(sample.quaternion)
        if self._reference is None:
            return q
        return quaternion_multiply(self._reference, q)

    def transform(self, sample: MotionSample) -> TransformedSample:
        """Rotate *sample* into the horse frame.

        Uncalibrated transformers pass the device orientation through, so
        the output is expressed in the earth-aligned frame.
        """
        q = self.relative_orientation(sample)
        accel = rotate_vector(sample.acceleration, q)
        rot = rotate_vector(sample.rotation_rate, q)

        if self._reference is not None and self.monitor_drift:
            self._track_drift(rotate_vector(sample.gravity, q))

        return TransformedSample(
            timestamp=sample.timestamp,
            vertical=float(accel[2]),
            lateral=float(accel[0]),
            forward=float(accel[1]),
            pitch_rate=float(rot[0]),
            roll_rate=float(rot[1]),
            yaw_rate=float(rot[2]),
            roll=sample.roll,
        )

    # ── drift ─────────────────────────────────────────────────────

    def _track_drift(self, gravity: np.ndarray) -> None:
        alpha = self.EARLY_GRAVITY_ALPHA if self.recalibration_count == 0 else self.GRAVITY_ALPHA
        self._gravity_avg = (1 - alpha) * self._gravity_avg + alpha * gravity
        self._since_recalibration += 1
        self._since_check += 1
        if self._since_check < self.DRIFT_CHECK_INTERVAL:
            return
        self._since_check = 0

        cooldown = (
            self.EARLY_RECALIBRATION_COOLDOWN
            if self.recalibration_count == 0
            else self.RECALIBRATION_COOLDOWN
        )
        if self._since_recalibration < cooldown:
            return

        angle = self.drift_angle()
        if angle is not None and angle > self.drift_threshold:
            logger.warning(
                "Calibration drift of %.2f rad detected, recalibrating", angle,
            )
            self._recalibrate()

    def drift_angle(self) -> Optional[float]:
        """Angle (rad) between averaged gravity and straight down."""
        mag = float(np.linalg.norm(self._gravity_avg))
        if mag < 0.5:
            return None
        return math.acos(max(-1.0, min(1.0, -self._gravity_avg[2] / mag)))

    def _recalibrate(self) -> None:
        # Rotate the observed gravity direction back onto (0, 0, -1).
        g = self._gravity_avg / np.linalg.norm(self._gravity_avg)
        axis = np.cross(g, [0.0, 0.0, -1.0])
        sin_a = float(np.linalg.norm(axis))
        if sin_a < 1e-6:
            return
        half = math.atan2(sin_a, -g[2]) / 2
        s = math.sin(half) / sin_a
        correction = (math.cos(half), axis[0] * s, axis[1] * s, axis[2] * s)
        self._reference = quaternion_multiply(correction, self._reference)
        self.recalibration_count += 1
        self._reset_drift()
