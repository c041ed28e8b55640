"""
Gesture Liveness — Eye Aspect Ratio
===================================
EAR = (|p2 - p6| + |p3 - p5|) / (2 * |p1 - p4|)

Per eye the six indices are ordered [outer, upper1, upper2, inner, lower2,
lower1]. Distances are taken in the normalized image plane; z is ignored.
The combined sample averages both eyes and is classified against three
ordered thresholds CLOSED < BLINK < OPEN.

A frame too short for the configured indices yields the neutral sample
(open, ear=1.0) instead of an error.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from .config import BlinkThresholds, LandmarkIndices
from .landmarks import as_landmark_array, distance_2d, has_points
from .types import EyePhase, EyeStateSample

NEUTRAL_EAR = 1.0
_DEFAULT_INDICES = LandmarkIndices()
_DEFAULT_THRESHOLDS = BlinkThresholds()


def _eye_indices(eye: Union[str, Sequence[int]], indices: LandmarkIndices) -> Sequence[int]:
    if isinstance(eye, str):
        if eye == "left":
            return indices.left_eye
        if eye == "right":
            return indices.right_eye
        raise ValueError(f"eye must be 'left' or 'right', got {eye!r}")
    return eye


def calculate_ear(
    landmarks,
    eye: Union[str, Sequence[int]] = "left",
    indices: Optional[LandmarkIndices] = None,
) -> float:
    """Eye Aspect Ratio for one eye.

    Args:
        landmarks: Landmark frame (any format accepted by as_landmark_array).
        eye: "left", "right" or an explicit list of 6 indices.
        indices: Mesh index layout; FaceMesh defaults if omitted.

    Returns:
        EAR value. 0.0 if the eye has no width, NEUTRAL_EAR if the frame
        does not contain the eye indices.
    """
    lm = landmarks if isinstance(landmarks, np.ndarray) and landmarks.ndim == 2 \
        else as_landmark_array(landmarks)
    idx = _eye_indices(eye, indices or _DEFAULT_INDICES)
    if not has_points(lm, idx):
        return NEUTRAL_EAR

    p1, p2, p3, p4, p5, p6 = (lm[i] for i in idx)

    v1 = distance_2d(p2, p6)
    v2 = distance_2d(p3, p5)
    h_dist = distance_2d(p1, p4)

    if h_dist < 1e-9:
        return 0.0
    return (v1 + v2) / (2.0 * h_dist)


def classify_phase(ear: float, thresholds: BlinkThresholds = _DEFAULT_THRESHOLDS) -> EyePhase:
    if ear < thresholds.closed:
        return EyePhase.CLOSED
    if ear < thresholds.blink:
        return EyePhase.CLOSING
    if ear < thresholds.open:
        return EyePhase.OPENING
    return EyePhase.OPEN


def compute_eye_state(
    landmarks,
    timestamp: int,
    thresholds: BlinkThresholds = _DEFAULT_THRESHOLDS,
    indices: Optional[LandmarkIndices] = None,
) -> EyeStateSample:
    """Combined (mean of both eyes) eye-state sample for one tick."""
    indices = indices or _DEFAULT_INDICES
    lm = as_landmark_array(landmarks)
    if not (has_points(lm, indices.left_eye) and has_points(lm, indices.right_eye)):
        return EyeStateSample(ear=NEUTRAL_EAR, timestamp=int(timestamp), phase=EyePhase.OPEN)

    left = calculate_ear(lm, indices.left_eye)
    right = calculate_ear(lm, indices.right_eye)
    ear = (left + right) / 2.0
    return EyeStateSample(ear=ear, timestamp=int(timestamp), phase=classify_phase(ear, thresholds))
