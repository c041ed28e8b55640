"""
Gesture Liveness — Landmark Frames
==================================
One face's landmark set for one video frame, as produced by an external
Face Landmark Provider (MediaPipe FaceMesh or similar).

Coordinates are normalized to the frame: x, y in [0, 1] with Y growing
downward, z a provider-defined relative depth. Indices are semantically fixed
for a given provider (index 1 is always the nose tip on FaceMesh).

Frames are normalized to an (N, 3) float64 numpy array so that the
detectors can index and measure without caring about the provider's
object model. Accepted inputs:
  - objects with .x/.y(/.z) attributes (MediaPipe NormalizedLandmark)
  - (x, y) or (x, y, z) tuples / lists
  - an (N, 2) or (N, 3+) numpy array
  - None or an empty sequence (no face this frame)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional, Sequence

import numpy as np

DENSE_MESH_POINTS = 468


class LandmarkPoint(NamedTuple):
    x: float
    y: float
    z: float = 0.0


def as_landmark_array(landmarks: Any) -> np.ndarray:
    """Convert a provider landmark frame into an (N, 3) float array.

    Raises:
        ValueError: if the input cannot be read as a list of points.
    """
    if landmarks is None:
        return np.empty((0, 3), dtype=np.float64)

    if isinstance(landmarks, np.ndarray):
        arr = landmarks.astype(np.float64, copy=False)
        if arr.size == 0:
            return np.empty((0, 3), dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] < 2:
            raise ValueError(f"Landmark array must be (N, 2) or (N, 3), got {arr.shape}")
        if arr.shape[1] == 2:
            return np.column_stack([arr, np.zeros(len(arr))])
        return arr[:, :3]

    rows = []
    for lm in landmarks:
        if hasattr(lm, "x") and hasattr(lm, "y"):
            rows.append((float(lm.x), float(lm.y), float(getattr(lm, "z", 0.0) or 0.0)))
        else:
            coords = tuple(lm)
            if len(coords) < 2:
                raise ValueError(f"Landmark needs at least x and y, got {coords!r}")
            z = float(coords[2]) if len(coords) > 2 else 0.0
            rows.append((float(coords[0]), float(coords[1]), z))
    if not rows:
        return np.empty((0, 3), dtype=np.float64)
    return np.asarray(rows, dtype=np.float64)


def has_points(landmarks: np.ndarray, indices: Sequence[int]) -> bool:
    """True if every index is addressable in the frame."""
    return len(indices) > 0 and len(landmarks) > max(indices)


def distance_2d(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance in the image plane (z ignored)."""
    return math.hypot(float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


class LandmarkProvider(ABC):
    """Source of facial landmarks for a video frame.

    Implementations wrap a mesh model; the engine only ever sees the
    returned landmark frame.
    """

    @abstractmethod
    def get_landmarks(self, frame: Any) -> Optional[Sequence]:
        """
        Return the landmark frame of the primary face in ``frame``, or
        None / an empty sequence when no face is visible.
        """

    def release(self) -> None:
        """Optional cleanup logic on shutdown."""
        pass
