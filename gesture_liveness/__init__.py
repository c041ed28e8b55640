"""
Gesture Liveness Engine
=======================
Active liveness verification from per-frame facial landmarks: the subject
performs an ordered sequence of gestures (blink, smile, head rotation)
within natural human timing, and the engine returns a scored verdict.

Typical use:

    session = GestureSession()
    session.subscribe("session_complete", on_result)
    session.start_session(["blink", "smile", "head_rotation"])
    for timestamp_ms, landmarks in stream:
        session.process_frame(landmarks, timestamp_ms)
"""

from __future__ import annotations

from .blink import BlinkDetector, BlinkResult
from .config import (
    BlinkThresholds,
    HeadRotationThresholds,
    LandmarkIndices,
    LivenessConfig,
    SmileThresholds,
    load_config,
    parse_gestures,
)
from .ear import calculate_ear, classify_phase, compute_eye_state
from .errors import ConfigurationError, InvalidStateError, LivenessError
from .head_rotation import HeadRotationResult, detect_head_rotation, estimate_yaw
from .landmarks import LandmarkPoint, LandmarkProvider, as_landmark_array
from .logger import AuditLogger, setup_logger
from .runner import LivenessRunner
from .session import (
    EVENT_GESTURE_COMPLETED,
    EVENT_PROGRESS,
    EVENT_SESSION_COMPLETE,
    GestureSession,
)
from .smile import SmileDetector, SmileResult
from .types import (
    EyePhase,
    EyeStateSample,
    GestureKind,
    GestureOutcome,
    GestureState,
    LivenessResult,
    SessionState,
)

__version__ = "0.1.0"

__all__ = [
    "GestureSession", "LivenessRunner",
    "EVENT_PROGRESS", "EVENT_GESTURE_COMPLETED", "EVENT_SESSION_COMPLETE",
    "LivenessConfig", "BlinkThresholds", "SmileThresholds",
    "HeadRotationThresholds", "LandmarkIndices", "load_config", "parse_gestures",
    "calculate_ear", "classify_phase", "compute_eye_state",
    "BlinkDetector", "BlinkResult",
    "SmileDetector", "SmileResult",
    "detect_head_rotation", "estimate_yaw", "HeadRotationResult",
    "LandmarkPoint", "LandmarkProvider", "as_landmark_array",
    "AuditLogger", "setup_logger",
    "LivenessError", "ConfigurationError", "InvalidStateError",
    "EyePhase", "EyeStateSample", "GestureKind", "GestureOutcome",
    "GestureState", "LivenessResult", "SessionState",
]
