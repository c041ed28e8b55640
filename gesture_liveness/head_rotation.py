"""
Head-rotation detector: scale-invariant yaw proxy from nose/eye distances.

    yaw = (d(nose, right_eye) - d(nose, left_eye)) / max(d(nose, right_eye), d(nose, left_eye))

Turning the head moves the nose tip toward one eye, so yaw leaves 0 with a
sign telling the direction. Not a calibrated angle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .config import HeadRotationThresholds, LandmarkIndices
from .landmarks import as_landmark_array, distance_2d, has_points

_DEFAULT_INDICES = LandmarkIndices()
_DEFAULT_THRESHOLDS = HeadRotationThresholds()


@dataclass(frozen=True)
class HeadRotationResult:
    detected: bool
    confidence: float
    naturalness: float
    yaw: float = 0.0
    direction: str = "center"


def estimate_yaw(landmarks, indices: Optional[LandmarkIndices] = None) -> float:
    indices = indices or _DEFAULT_INDICES
    lm = as_landmark_array(landmarks)
    nose = lm[indices.nose_tip]
    d_left = distance_2d(nose, lm[indices.left_eye_anchor])
    d_right = distance_2d(nose, lm[indices.right_eye_anchor])
    longest = max(d_left, d_right)
    if longest < 1e-9:
        return 0.0
    return (d_right - d_left) / longest


def detect_head_rotation(
    landmarks,
    thresholds: Union[HeadRotationThresholds, float] = _DEFAULT_THRESHOLDS,
    indices: Optional[LandmarkIndices] = None,
) -> HeadRotationResult:
    if isinstance(thresholds, (int, float)):
        thresholds = HeadRotationThresholds(threshold=float(thresholds))
    indices = indices or _DEFAULT_INDICES
    lm = as_landmark_array(landmarks)
    anchors = (indices.nose_tip, indices.left_eye_anchor, indices.right_eye_anchor)
    if len(lm) < thresholds.min_landmarks or not has_points(lm, anchors):
        return HeadRotationResult(detected=False, confidence=0.0, naturalness=0.0)

    yaw = estimate_yaw(lm, indices)
    magnitude = abs(yaw)
    detected = magnitude > thresholds.threshold

    # Positive yaw: nose closer to the image-left eye anchor
    if detected:
        direction = "left" if yaw > 0 else "right"
    else:
        direction = "center"

    return HeadRotationResult(
        detected=detected,
        confidence=max(0.7, min(1.0, magnitude / 0.3)) if detected else 0.0,
        naturalness=round(max(0.6, 1.0 - magnitude * 2.0), 4),
        yaw=yaw,
        direction=direction,
    )
