"""
Gesture Liveness — Smile Detector
=================================
Mouth-corner geometry over 20 outer-lip landmarks.

SIGN CONVENTION:
  Normalized image Y grows DOWNWARD. Smiling lifts the mouth corners above
  the lip centre, so
      curvature = centre_y - mean(left_corner_y, right_corner_y)
  is POSITIVE for a smile and compared against +threshold (default 0.07).

  asymmetry   = |left_corner_y - right_corner_y|
  confidence  = max(0.7, min(1, curvature / 0.1))     when detected
  naturalness = max(0.6, 1 - asymmetry * 10)          lopsided smiles lose

SPARSE MESH FALLBACK:
  When the provider does not emit the mouth indices, compare the available
  mouth points (or the whole frame) with the previous tick. Mean displacement
  above the motion threshold, at most once per cooldown, counts as a
  weak-confidence smile.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import LandmarkIndices, SmileThresholds
from .landmarks import as_landmark_array, has_points
from .logger import setup_logger

_log = setup_logger("SmileDetector")

FALLBACK_CONFIDENCE = 0.5
FALLBACK_NATURALNESS = 0.7


@dataclass(frozen=True)
class SmileResult:
    detected: bool
    confidence: float
    naturalness: float
    curvature: float = 0.0
    asymmetry: float = 0.0
    fallback: bool = False


class SmileDetector:
    """Smile detection with a previous-frame cache for sparse meshes."""

    def __init__(
        self,
        thresholds: Optional[SmileThresholds] = None,
        indices: Optional[LandmarkIndices] = None,
    ):
        self.thresholds = thresholds or SmileThresholds()
        self.indices = indices or LandmarkIndices()
        self._previous_points: Optional[np.ndarray] = None
        self._fallback_reference: Optional[int] = None

    def reset(self) -> None:
        self._previous_points = None
        self._fallback_reference = None

    def detect(self, landmarks, timestamp: int = 0) -> SmileResult:
        lm = as_landmark_array(landmarks)
        if len(lm) == 0:
            return SmileResult(detected=False, confidence=0.0, naturalness=0.0)

        idx = self.indices
        required = tuple(idx.mouth) + (
            idx.mouth_left_corner, idx.mouth_right_corner,
            idx.mouth_upper_center, idx.mouth_lower_center,
        )
        if not has_points(lm, required):
            return self._detect_motion(lm, timestamp)

        self._previous_points = lm[list(idx.mouth), :2].copy()

        left_y = float(lm[idx.mouth_left_corner, 1])
        right_y = float(lm[idx.mouth_right_corner, 1])
        center_y = (float(lm[idx.mouth_upper_center, 1]) + float(lm[idx.mouth_lower_center, 1])) / 2.0

        curvature = center_y - (left_y + right_y) / 2.0
        asymmetry = abs(left_y - right_y)
        detected = curvature > self.thresholds.threshold

        strength = abs(curvature) / 0.1
        if detected:
            confidence = max(0.7, min(1.0, strength))
        else:
            confidence = min(0.5, strength * 0.5)
        naturalness = max(0.6, 1.0 - asymmetry * 10.0)

        return SmileResult(
            detected=detected,
            confidence=round(confidence, 4),
            naturalness=round(naturalness, 4),
            curvature=curvature,
            asymmetry=asymmetry,
        )

    def _detect_motion(self, lm: np.ndarray, timestamp: int) -> SmileResult:
        """Temporal-difference heuristic for meshes without mouth indices."""
        available = [i for i in self.indices.mouth if i < len(lm)]
        points = lm[available, :2] if available else lm[:, :2]
        previous = self._previous_points
        self._previous_points = points.copy()

        if self._fallback_reference is None:
            self._fallback_reference = timestamp
            _log.debug("Sparse mesh (%d points): smile motion fallback engaged", len(lm))

        if previous is None or previous.shape != points.shape:
            return SmileResult(detected=False, confidence=0.0, naturalness=0.0, fallback=True)

        displacement = float(np.mean(np.linalg.norm(points - previous, axis=1)))
        cooled = timestamp - self._fallback_reference >= self.thresholds.fallback_cooldown_ms
        if displacement > self.thresholds.fallback_motion_threshold and cooled:
            self._fallback_reference = timestamp
            return SmileResult(
                detected=True,
                confidence=FALLBACK_CONFIDENCE,
                naturalness=FALLBACK_NATURALNESS,
                fallback=True,
            )
        return SmileResult(
            detected=False,
            confidence=round(min(0.3, displacement), 4),
            naturalness=0.0,
            fallback=True,
        )
