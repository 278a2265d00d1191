"""
Streaming gait analysis session.

:class:`GaitAnalyzer` owns the whole pipeline for one ride: frame
transform, rolling windows, spectral and coherence features, the HMM, the
segment state machine and the lead / rhythm / symmetry / rein /
transition analyzers.

Segments are committed only when the classifier's most likely state
differs from the open segment's gait *and* its confidence reaches
``AnalysisConfig.confidence_threshold``.  Exactly one segment is open
while analyzing.

Observers
---------
State changes are pushed as :class:`GaitEvent` items onto an internal
queue and drained to the registered listeners after each mutation, so a
listener sees every event once and in order.  A *segment_sink* callable
receives each :class:`GaitSegment` as it is finalized.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

import numpy as np

from ._config import AnalysisConfig, HorseProfile
from ._core import (
    Gait,
    GaitFeatureVector,
    GaitSegment,
    Lead,
    LocationSample,
    MotionSample,
    RecordedTransition,
    ReinDirection,
    SessionResult,
    SpectralSnapshot,
    TransformedSample,
)
from .analyzers import (
    LeadAnalyzer,
    ReinDetector,
    RhythmAnalyzer,
    SymmetryAnalyzer,
    TransitionAnalyzer,
)
from .diagnostics import DiagnosticRecorder
from .dsp import ChannelWindows, CoherenceAnalyzer, FrameTransformer, SpectralFeatureExtractor
from .hmm import GaitHMM

logger = logging.getLogger(__name__)

REFERENCE_BODY_WEIGHT = 500.0


class SessionState(Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"


class GaitEventType(Enum):
    SESSION_STARTED = "session_started"
    SEGMENT_OPENED = "segment_opened"
    SEGMENT_CLOSED = "segment_closed"
    GAIT_CHANGED = "gait_changed"
    TRANSITION_RECORDED = "transition_recorded"
    REIN_CHANGED = "rein_changed"
    SESSION_STOPPED = "session_stopped"


@dataclass(frozen=True)
class GaitEvent:
    """One observable change of the analysis session."""

    kind: GaitEventType
    timestamp: float
    previous: Optional[Gait] = None
    current: Optional[Gait] = None
    segment: Optional[GaitSegment] = None
    transition: Optional[RecordedTransition] = None
    rein: Optional[ReinDirection] = None


GaitListener = Callable[[GaitEvent], None]
SegmentSink = Callable[[GaitSegment], None]


class GaitAnalyzer:
    """Real-time gait classification over motion and location streams.

    Parameters
    ----------
    config : AnalysisConfig, optional
        Pipeline tuning.  Defaults to :class:`AnalysisConfig()`.
    segment_sink : callable, optional
        Called with every finalized :class:`GaitSegment`.

    Examples
    --------
    >>> analyzer = GaitAnalyzer()
    >>> analyzer.start_analyzing()
    >>> for sample in samples:
    ...     analyzer.process_motion(sample)
    >>> result = analyzer.stop_analyzing()
    """

    def __init__(self, config: Optional[AnalysisConfig] = None,
                 segment_sink: Optional[SegmentSink] = None):
        self.config = config or AnalysisConfig()
        self.segment_sink = segment_sink
        self._lock = threading.RLock()
        self._listeners: List[GaitListener] = []
        self._events: Deque[GaitEvent] = deque()

        cfg = self.config
        self.frame = FrameTransformer(drift_threshold=cfg.drift_threshold)
        self.windows = ChannelWindows(cfg.window_size)
        self.spectral = SpectralFeatureExtractor(cfg.sample_rate, min_window=cfg.min_analysis_samples)
        self._coherence: Dict[int, CoherenceAnalyzer] = {}
        self.hmm = GaitHMM.from_profile(cfg.horse, cfg.dressage, cfg.max_gps_accuracy)

        self.lead = LeadAnalyzer(
            sample_rate=cfg.sample_rate,
            window=cfg.window_size,
            min_samples=cfg.min_analysis_samples,
            threshold=cfg.confidence_threshold,
        )
        self.rhythm = RhythmAnalyzer()
        self.symmetry = SymmetryAnalyzer()
        self.transition = TransitionAnalyzer()
        self.rein = ReinDetector()
        self.diagnostics: Optional[DiagnosticRecorder] = (
            DiagnosticRecorder() if cfg.diagnostics else None
        )

        self.state = SessionState.IDLE
        self.profile: Optional[HorseProfile] = cfg.horse
        self._segments: List[GaitSegment] = []
        self._open: Optional[GaitSegment] = None
        self._speeds: Deque[float] = deque(maxlen=cfg.speed_smoothing)
        self._reset_stream()

    # ── observers ─────────────────────────────────────────────────

    def add_listener(self, listener: GaitListener) -> None:
        if not callable(listener):
            raise ValueError("listener must be callable")
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: GaitListener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def on_gait_change(self, callback: Callable[[Gait, Gait], None]) -> GaitListener:
        """Register *callback(previous, new)* for accepted gait changes."""
        def listener(event: GaitEvent) -> None:
            if event.kind is GaitEventType.GAIT_CHANGED:
                callback(event.previous, event.current)
        self.add_listener(listener)
        return listener

    def _emit(self, event: GaitEvent) -> None:
        self._events.append(event)

    def _drain(self) -> None:
        while self._events:
            event = self._events.popleft()
            for listener in list(self._listeners):
                listener(event)

    # ── session lifecycle ─────────────────────────────────────────

    def _reset_stream(self) -> None:
        self.frame.reset()
        self.windows.clear()
        self._coherence.clear()
        self.lead.reset()
        self.rhythm.reset()
        self.symmetry.reset()
        self.transition.reset()
        self.rein.reset()
        if self.diagnostics is not None:
            self.diagnostics.clear()
        self._speeds.clear()
        self._gps_accuracy = 100.0
        self._sample_count = 0
        self._last_time: Optional[float] = None
        self._last_analysis: Optional[float] = None
        self._wearable = (0.0, 0.0)
        self._next_segment_id = 1
        self.last_features: Optional[GaitFeatureVector] = None

    @property
    def is_analyzing(self) -> bool:
        return self.state is SessionState.ANALYZING

    def start_analyzing(self, profile: Optional[HorseProfile] = None,
                        start_time: float = 0.0) -> None:
        """Reset everything and open a stationary segment at *start_time*.

        Parameters
        ----------
        profile : HorseProfile, optional
            Horse used to adjust the classifier priors; falls back to
            ``config.horse``.
        """
        with self._lock:
            if self.is_analyzing:
                raise RuntimeError("analysis already running; call stop_analyzing() first")
            self.profile = profile if profile is not None else self.config.horse
            self.hmm = GaitHMM.from_profile(
                self.profile, self.config.dressage, self.config.max_gps_accuracy,
            )
            self._reset_stream()
            self._segments = []
            self._open = None
            self.state = SessionState.ANALYZING
            self._emit(GaitEvent(GaitEventType.SESSION_STARTED, start_time))
            self._open_segment(Gait.STATIONARY, start_time, SpectralSnapshot())
            logger.info(
                "Analysis started (mount=%s, dressage=%s, breed=%s)",
                self.config.mount.value, self.config.dressage,
                self.profile.breed if self.profile else None,
            )
            self._drain()

    def stop_analyzing(self, end_time: Optional[float] = None) -> SessionResult:
        """Finalize the open segment, clear buffers and return the session."""
        with self._lock:
            if not self.is_analyzing:
                raise RuntimeError("analysis is not running")
            if end_time is None:
                end_time = self._last_time if self._last_time is not None else self._open.start_time
            self._close_segment(end_time, SpectralSnapshot.from_features(self.last_features))

            self.rhythm.rein.finalize()
            self.symmetry.rein.finalize()
            result = SessionResult(
                segments=list(self._segments),
                transitions=list(self.transition.transitions),
                rein_rhythm=self.rhythm.rein_averages(),
                rein_symmetry=self.symmetry.rein_averages(),
                lead_durations={
                    Lead.LEFT.value: self.lead.left_duration,
                    Lead.RIGHT.value: self.lead.right_duration,
                },
            )
            self.windows.clear()
            self._speeds.clear()
            self.state = SessionState.IDLE
            self._emit(GaitEvent(GaitEventType.SESSION_STOPPED, end_time))
            logger.info(
                "Analysis stopped: %d segment(s), %d transition(s)",
                len(result.segments), len(result.transitions),
            )
            self._drain()
            return result

    # ── segment state machine ─────────────────────────────────────

    def _open_segment(self, gait: Gait, timestamp: float, snapshot: SpectralSnapshot) -> None:
        segment = GaitSegment(
            segment_id=self._next_segment_id,
            gait=gait,
            start_time=timestamp,
            start_snapshot=snapshot,
        )
        self._next_segment_id += 1
        self._open = segment
        self._segments.append(segment)
        self._emit(GaitEvent(GaitEventType.SEGMENT_OPENED, timestamp, current=gait, segment=segment))

    def _close_segment(self, timestamp: float, snapshot: SpectralSnapshot) -> GaitSegment:
        segment = self._open
        segment.finalize(timestamp, snapshot)
        self._open = None
        if self.segment_sink is not None:
            self.segment_sink(segment)
        self._emit(GaitEvent(
            GaitEventType.SEGMENT_CLOSED, timestamp, current=segment.gait, segment=segment,
        ))
        return segment

    def _commit(self, new_gait: Gait, timestamp: float, features: GaitFeatureVector) -> None:
        previous = self._open.gait
        snapshot = SpectralSnapshot.from_features(features)
        self._close_segment(timestamp, snapshot)
        self._open_segment(new_gait, timestamp, snapshot)

        transition = self.transition.process_gait_change(previous, new_gait, timestamp)
        self.lead.set_gait(new_gait)
        self.rhythm.set_gait(new_gait)
        if self.diagnostics is not None:
            self.diagnostics.record_commit(previous, new_gait, timestamp, transition)

        self._emit(GaitEvent(
            GaitEventType.GAIT_CHANGED, timestamp, previous=previous, current=new_gait,
            segment=self._open,
        ))
        if transition is not None:
            self._emit(GaitEvent(
                GaitEventType.TRANSITION_RECORDED, timestamp, previous=previous,
                current=new_gait, transition=transition,
            ))
        logger.info(
            "Gait %s -> %s at %.2f s (confidence %.2f)",
            previous.value, new_gait.value, timestamp, self.hmm.confidence,
        )

    # ── motion stream ─────────────────────────────────────────────

    def process_motion(self, sample: MotionSample) -> Optional[Gait]:
        """Feed one motion sample.

        Returns
        -------
        Gait or None
            The newly committed gait when this sample caused a change.
        """
        with self._lock:
            if not self.is_analyzing:
                return None
            if not (np.all(np.isfinite(sample.acceleration))
                    and np.all(np.isfinite(sample.rotation_rate))):
                logger.warning("Dropping non-finite motion sample at t=%.3f", sample.timestamp)
                return None
            self._sample_count += 1
            if not self.frame.is_calibrated and self._sample_count >= self.config.calibration_warmup:
                self.frame.calibrate(sample)
                logger.info(
                    "Frame calibrated after %d samples (mount=%s)",
                    self._sample_count, self.config.mount.value,
                )

            transformed = self.frame.transform(sample)
            self.windows.append(transformed)
            self._last_time = sample.timestamp
            self._feed_analyzers(transformed)

            committed = None
            if (self.frame.is_calibrated
                    and self.windows.analysis_length(self.config.min_analysis_samples)
                    and (self._last_analysis is None
                         or sample.timestamp - self._last_analysis >= self.config.analysis_interval)):
                self._last_analysis = sample.timestamp
                committed = self._update_classifier(self._extract_features(sample.timestamp))
            self._drain()
            return committed

    def _feed_analyzers(self, s: TransformedSample) -> None:
        rein = self.rein.current_rein
        new_rein = self.rein.process_sample(s.timestamp, s.lateral, s.yaw_rate)
        if new_rein is not rein:
            self.rhythm.update_rein(new_rein)
            self.symmetry.update_rein(new_rein)
            self._emit(GaitEvent(GaitEventType.REIN_CHANGED, s.timestamp, rein=new_rein))

        segment = self._open
        gait = segment.gait
        segment.rhythm_score = self.rhythm.process_sample(s.timestamp, s.vertical, gait)
        segment.rhythm_confidence = self.rhythm.confidence
        self.symmetry.process_sample(s.timestamp, s.vertical, s.lateral, s.roll)
        segment.symmetry_score = self.symmetry.symmetry_score
        segment.symmetry_confidence = self.symmetry.confidence

        if gait.has_lead:
            f0 = self.last_features.stride_frequency if self.last_features else None
            lead = self.lead.process_sample(s.timestamp, s.lateral, s.yaw_rate, f0)
            if lead is not Lead.UNKNOWN:
                segment.lead = lead
                segment.lead_confidence = self.lead.confidence

    def _coherence_for(self, n: int) -> CoherenceAnalyzer:
        # Always at least three Welch segments so short windows do not
        # report trivial unit coherence.
        seg = min(self.config.min_analysis_samples, n // 2)
        analyzer = self._coherence.get(seg)
        if analyzer is None:
            analyzer = CoherenceAnalyzer(self.config.sample_rate, segment_length=seg, overlap=seg // 2)
            self._coherence[seg] = analyzer
        return analyzer

    def _extract_features(self, timestamp: float) -> GaitFeatureVector:
        n = self.windows.analysis_length(self.config.min_analysis_samples)
        vertical = self.windows.channel("vertical", n)
        lateral = self.windows.channel("lateral", n)
        forward = self.windows.channel("forward", n)
        yaw = self.windows.channel("yaw", n)

        spectrum = self.spectral.analyze(vertical)
        f0 = spectrum.dominant_frequency
        coherence = self._coherence_for(n)
        if f0 > 0:
            xy = coherence.coherence(forward, lateral, f0)
            z_yaw = coherence.coherence(vertical, yaw, f0)
            self.symmetry.update_coherence(xy)
        else:
            xy = z_yaw = 0.0

        weight = self.profile.body_weight if self.profile is not None else REFERENCE_BODY_WEIGHT
        vertical_rms = float(np.sqrt(np.mean(vertical ** 2)))
        yaw_rms = float(np.sqrt(np.mean(yaw ** 2)))
        arm_symmetry, yaw_energy = self._wearable

        features = GaitFeatureVector(
            stride_frequency=f0,
            h2_ratio=spectrum.h2_ratio,
            h3_ratio=spectrum.h3_ratio,
            spectral_entropy=spectrum.spectral_entropy,
            xy_coherence=xy,
            z_yaw_coherence=z_yaw,
            normalized_vertical_rms=vertical_rms * REFERENCE_BODY_WEIGHT / weight,
            yaw_rate_rms=yaw_rms,
            gps_speed=self.gps_speed,
            gps_accuracy=self._gps_accuracy if self._speeds else 100.0,
            watch_arm_symmetry=arm_symmetry,
            watch_yaw_energy=yaw_energy,
            timestamp=timestamp,
        )
        self.last_features = features
        return features

    def process_features(self, features: GaitFeatureVector) -> Optional[Gait]:
        """Run the classifier and segment gate on an externally built vector.

        Skips the signal path entirely; used for replaying recorded
        features and for testing the state machine.
        """
        with self._lock:
            if not self.is_analyzing:
                return None
            self.last_features = features
            self._last_time = features.timestamp
            committed = self._update_classifier(features)
            self._drain()
            return committed

    def _update_classifier(self, features: GaitFeatureVector) -> Optional[Gait]:
        proposed = self.hmm.update(features)
        confidence = self.hmm.confidence
        if self.diagnostics is not None:
            self.diagnostics.record_update(
                features, self.hmm.probability_dict(), proposed, confidence,
            )
        if proposed is not self._open.gait and confidence >= self.config.confidence_threshold:
            self._commit(proposed, features.timestamp, features)
            return proposed
        return None

    # ── location / wearable streams ───────────────────────────────

    def process_location(self, sample: LocationSample) -> None:
        """Accumulate distance and update the smoothed GPS speed."""
        with self._lock:
            if not self.is_analyzing:
                return
            if sample.distance > 0:
                self._open.distance += sample.distance
            if sample.speed >= 0 and sample.horizontal_accuracy <= self.config.max_gps_accuracy:
                self._speeds.append(sample.speed)
                self._gps_accuracy = sample.horizontal_accuracy
                self.transition.update_speed(self.gps_speed, sample.timestamp)

    def update_wearable(self, arm_symmetry: float, yaw_energy: float) -> None:
        """Latest watch-derived features; 0 marks a feature as unavailable."""
        if arm_symmetry < 0 or yaw_energy < 0:
            raise ValueError("wearable features must be >= 0")
        with self._lock:
            self._wearable = (float(arm_symmetry), float(yaw_energy))

    # ── live state ────────────────────────────────────────────────

    @property
    def gps_speed(self) -> float:
        if not self._speeds:
            return 0.0
        return float(np.mean(self._speeds))

    @property
    def current_gait(self) -> Gait:
        return self._open.gait if self._open is not None else Gait.STATIONARY

    @property
    def confidence(self) -> float:
        return self.hmm.confidence

    @property
    def probabilities(self) -> Dict[str, float]:
        return self.hmm.probability_dict()

    @property
    def current_lead(self) -> Lead:
        return self.lead.current_lead

    @property
    def current_rein(self) -> ReinDirection:
        return self.rein.current_rein

    @property
    def open_segment(self) -> Optional[GaitSegment]:
        return self._open

    @property
    def segments(self) -> List[GaitSegment]:
        return list(self._segments)

    @property
    def transitions(self) -> List[RecordedTransition]:
        return list(self.transition.transitions)

    def __repr__(self) -> str:
        return (
            f"GaitAnalyzer(state={self.state.value}, gait={self.current_gait.value}, "
            f"confidence={self.confidence:.2f})"
        )
