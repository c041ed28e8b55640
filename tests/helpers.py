"""
Synthetic FaceMesh builders for gesture liveness tests.

Faces are 478-point arrays in normalized coordinates (Y down). Only the
points the detectors read are placed; everything else sits at the frame
centre.
"""

from __future__ import annotations

import numpy as np

from gesture_liveness.config import LandmarkIndices

IDX = LandmarkIndices()
MESH_POINTS = 478
NEUTRAL_EAR = 0.30


def _place_eye(lm: np.ndarray, indices, x0: float, y0: float, ear: float, width: float = 0.1):
    """Six eye points with EAR == ear: v/h where both verticals equal v."""
    v_half = ear * width / 2.0
    p1, p2, p3, p4, p5, p6 = indices
    lm[p1] = (x0, y0, 0.0)
    lm[p2] = (x0 + 0.35 * width, y0 - v_half, 0.0)
    lm[p3] = (x0 + 0.65 * width, y0 - v_half, 0.0)
    lm[p4] = (x0 + width, y0, 0.0)
    lm[p5] = (x0 + 0.65 * width, y0 + v_half, 0.0)
    lm[p6] = (x0 + 0.35 * width, y0 + v_half, 0.0)


def make_face(
    ear: float = NEUTRAL_EAR,
    smile: float = 0.0,
    asymmetry: float = 0.0,
    nose_shift: float = 0.0,
    n_points: int = MESH_POINTS,
) -> np.ndarray:
    """Build a frontal face.

    Args:
        ear: EAR of both eyes.
        smile: How far (normalized units) the mouth corners sit above the
            lip centre. Equals the detector's curvature.
        asymmetry: Extra lift of the left corner only.
        nose_shift: Horizontal nose-tip offset; ~0.15 gives |yaw| > 0.5.
        n_points: Mesh size; values < 478 truncate the mesh.
    """
    lm = np.full((MESH_POINTS, 3), 0.5, dtype=np.float64)
    lm[:, 2] = 0.0

    # Eyes: left spans x 0.30-0.40, right spans x 0.60-0.70, both at y=0.40.
    # Anchors 33 (left p1) and 263 (right p4) are symmetric about x=0.5.
    _place_eye(lm, IDX.left_eye, 0.30, 0.40, ear)
    _place_eye(lm, IDX.right_eye, 0.60, 0.40, ear)

    lm[IDX.nose_tip] = (0.5 + nose_shift, 0.55, -0.05)

    mouth_y = 0.70
    xs = np.linspace(0.42, 0.58, len(IDX.mouth))
    for x, i in zip(xs, IDX.mouth):
        lm[i] = (x, mouth_y, 0.0)
    lm[IDX.mouth_upper_center] = (0.5, mouth_y - 0.01, 0.0)
    lm[IDX.mouth_lower_center] = (0.5, mouth_y + 0.01, 0.0)
    lm[IDX.mouth_left_corner] = (0.40, mouth_y - smile - asymmetry, 0.0)
    lm[IDX.mouth_right_corner] = (0.60, mouth_y - smile, 0.0)

    return lm[:n_points].copy()


def ear_frames(ears, start: int = 0, step: int = 50):
    """[(timestamp, face)] for an EAR trace at a fixed cadence."""
    return [(start + i * step, make_face(ear=e)) for i, e in enumerate(ears)]


BLINK_TRACE = [0.3, 0.3, 0.1, 0.1, 0.1, 0.3, 0.3]
