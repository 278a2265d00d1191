"""equigait — Real-time horse gait classification from phone motion sensors.

Quick start
-----------
>>> import equigait
>>> ride = equigait.load_example("canter", duration=5.0)
>>> result = equigait.run_recording(ride)
>>> result.summary()

Streaming use
-------------
>>> analyzer = equigait.GaitAnalyzer(equigait.AnalysisConfig(mount="thigh"))
>>> analyzer.on_gait_change(lambda old, new: print(old.value, "->", new.value))
>>> analyzer.start_analyzing(equigait.HorseProfile(breed="warmblood", age=9))
>>> analyzer.process_motion(sample)        # ~100 Hz
>>> analyzer.process_location(fix)         # ~1 Hz
>>> result = analyzer.stop_analyzing()

Gaits: stationary, walk, trot, canter, gallop.
"""

__version__ = "0.1.0"

from ._core import (
    Gait,
    GaitFeatureVector,
    GaitSegment,
    ImpactSide,
    Lead,
    LocationSample,
    MotionSample,
    RecordedTransition,
    ReinDirection,
    SessionResult,
    list_gaits,
)
from ._config import AnalysisConfig, HorseProfile, MountPosition, list_breeds, load_config
from ._session import GaitAnalyzer, GaitEvent, GaitEventType, SessionState
from ._io import (
    EXPORT_FORMATS,
    Recording,
    export_session,
    list_examples,
    load_example,
    load_recording,
    run_recording,
    save_recording,
    synthesize_recording,
)
from .hmm import GaitHMM
from ._viz import plot_session

__all__ = [
    "AnalysisConfig",
    "EXPORT_FORMATS",
    "Gait",
    "GaitAnalyzer",
    "GaitEvent",
    "GaitEventType",
    "GaitFeatureVector",
    "GaitHMM",
    "GaitSegment",
    "HorseProfile",
    "ImpactSide",
    "Lead",
    "LocationSample",
    "MotionSample",
    "MountPosition",
    "Recording",
    "RecordedTransition",
    "ReinDirection",
    "SessionResult",
    "SessionState",
    "export_session",
    "list_breeds",
    "list_examples",
    "list_gaits",
    "load_config",
    "load_example",
    "load_recording",
    "plot_session",
    "run_recording",
    "save_recording",
    "synthesize_recording",
    "__version__",
]
