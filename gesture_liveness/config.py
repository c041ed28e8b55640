"""
Gesture Liveness — Configuration
================================
Typed configuration for the gesture engine, loaded from YAML.

The packaged ``config.yaml`` mirrors the dataclass defaults below. Deployment
overrides only need to list the keys they change:

    gesture_thresholds:
      smile:
        threshold: 0.05

All numeric thresholds are camera/framing dependent and must stay tunable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, Optional

import yaml

from .errors import ConfigurationError
from .types import GestureKind

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, "config.yaml")


def load_config(path: Optional[str] = None) -> dict:
    """Load a raw configuration mapping from YAML (packaged defaults if no path)."""
    target = path or _config_path
    with open(target, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{target}: top level must be a mapping")
    return data


def parse_gestures(values: Iterable[Any]) -> tuple[GestureKind, ...]:
    """Normalize a gesture list, rejecting unknown kinds and duplicates."""
    if values is None or isinstance(values, (str, bytes)):
        raise ConfigurationError("required_gestures must be a list of gesture kinds")
    kinds: list[GestureKind] = []
    for value in values:
        try:
            kind = GestureKind.parse(value)
        except ValueError:
            raise ConfigurationError(f"Unknown gesture kind: {value!r}") from None
        if kind in kinds:
            raise ConfigurationError(f"Duplicate gesture kind: {kind.value}")
        kinds.append(kind)
    if not kinds:
        raise ConfigurationError("required_gestures must not be empty")
    return tuple(kinds)


@dataclass(frozen=True)
class LandmarkIndices:
    """Mesh indices used by the detectors (MediaPipe FaceMesh by default)."""
    left_eye: tuple[int, ...] = (33, 160, 158, 133, 153, 144)
    right_eye: tuple[int, ...] = (362, 385, 387, 263, 373, 380)
    nose_tip: int = 1
    left_eye_anchor: int = 33
    right_eye_anchor: int = 263
    mouth: tuple[int, ...] = (
        61, 146, 91, 181, 84, 17, 314, 405, 321, 375,
        291, 409, 270, 269, 267, 0, 37, 39, 40, 185,
    )
    mouth_left_corner: int = 61
    mouth_right_corner: int = 291
    mouth_upper_center: int = 0
    mouth_lower_center: int = 17


@dataclass(frozen=True)
class BlinkThresholds:
    closed: float = 0.15
    blink: float = 0.20
    open: float = 0.25
    min_closed_duration_ms: int = 80
    min_blink_duration_ms: int = 120
    max_blink_duration_ms: int = 400
    min_blink_frames: int = 3
    rapid_blink_window_ms: int = 500
    cooldown_ms: int = 300
    history_size: int = 30
    smoothing_window: int = 3
    min_landmarks: int = 400


@dataclass(frozen=True)
class SmileThresholds:
    threshold: float = 0.07
    fallback_motion_threshold: float = 0.02
    fallback_cooldown_ms: int = 1000


@dataclass(frozen=True)
class HeadRotationThresholds:
    threshold: float = 0.4
    min_landmarks: int = 468


@dataclass(frozen=True)
class LivenessConfig:
    """Everything a gesture session needs, with documented defaults."""
    required_gestures: tuple[GestureKind, ...] = (
        GestureKind.BLINK, GestureKind.SMILE, GestureKind.HEAD_ROTATION,
    )
    timeout_ms: int = 30000
    min_liveness_score: float = 0.6
    gesture_pause_ms: int = 2000
    landmarks: LandmarkIndices = field(default_factory=LandmarkIndices)
    blink: BlinkThresholds = field(default_factory=BlinkThresholds)
    smile: SmileThresholds = field(default_factory=SmileThresholds)
    head_rotation: HeadRotationThresholds = field(default_factory=HeadRotationThresholds)

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LivenessConfig":
        """Build a config from the YAML layout; missing keys keep defaults."""
        data = dict(data or {})
        unknown = set(data) - {"session", "landmarks", "gesture_thresholds"}
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")

        base = cls()
        session = dict(_section(data, "session"))
        if "required_gestures" in session:
            session["required_gestures"] = parse_gestures(session["required_gestures"])
        cfg = _override(base, session, "session", skip=_NESTED)

        thresholds = _section(data, "gesture_thresholds")
        extra = set(thresholds) - {"blink", "smile", "head_rotation"}
        if extra:
            raise ConfigurationError(f"Unknown gesture_thresholds: {sorted(extra)}")

        return replace(
            cfg,
            landmarks=_override(base.landmarks, _section(data, "landmarks"), "landmarks"),
            blink=_override(base.blink, _section(thresholds, "blink"), "blink"),
            smile=_override(base.smile, _section(thresholds, "smile"), "smile"),
            head_rotation=_override(
                base.head_rotation, _section(thresholds, "head_rotation"), "head_rotation"
            ),
        )

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> "LivenessConfig":
        return cls.from_dict(load_config(path))

    @classmethod
    def default(cls) -> "LivenessConfig":
        """Packaged defaults from config.yaml."""
        return cls.from_yaml()

    def with_gestures(self, gestures: Iterable[Any]) -> "LivenessConfig":
        return replace(self, required_gestures=parse_gestures(gestures))

    # ── Validation ────────────────────────────────────────────

    def validate(self) -> "LivenessConfig":
        """Raise ConfigurationError on any inconsistent setting."""
        parse_gestures(self.required_gestures)

        b = self.blink
        if not 0.0 < b.closed < b.blink < b.open:
            raise ConfigurationError(
                f"EAR thresholds must satisfy 0 < closed < blink < open "
                f"(got {b.closed}/{b.blink}/{b.open})"
            )
        if not 0 <= b.min_closed_duration_ms <= b.min_blink_duration_ms <= b.max_blink_duration_ms:
            raise ConfigurationError("Blink durations must satisfy "
                                     "min_closed <= min_blink <= max_blink")
        if b.history_size < 4 or b.smoothing_window < 1 or b.min_blink_frames < 1:
            raise ConfigurationError("Blink history_size >= 4, smoothing_window >= 1 "
                                     "and min_blink_frames >= 1 are required")
        if self.smile.threshold <= 0 or self.head_rotation.threshold <= 0:
            raise ConfigurationError("Smile and head rotation thresholds must be positive")
        if not 0.0 <= self.min_liveness_score <= 1.0:
            raise ConfigurationError(
                f"min_liveness_score must be in [0, 1] (got {self.min_liveness_score})"
            )
        if self.timeout_ms <= 0 or self.gesture_pause_ms < 0:
            raise ConfigurationError("timeout_ms must be > 0 and gesture_pause_ms >= 0")
        if len(self.landmarks.left_eye) != 6 or len(self.landmarks.right_eye) != 6:
            raise ConfigurationError("Each eye needs exactly 6 landmark indices")
        return self


_NESTED = {"landmarks", "blink", "smile", "head_rotation"}


def _section(data: dict, key: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Config section '{key}' must be a mapping")
    return value


def _override(obj, values: dict, section: str, skip: set = frozenset()):
    """dataclasses.replace() with unknown-key checking and list→tuple coercion."""
    allowed = {f.name for f in fields(obj)} - set(skip)
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{section}': {sorted(unknown)}")
    coerced = {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}
    return replace(obj, **coerced)
