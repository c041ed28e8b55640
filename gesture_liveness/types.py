from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


class GestureKind(str, Enum):
    """Gestures a subject can be asked to perform."""
    BLINK = "blink"
    SMILE = "smile"
    HEAD_ROTATION = "head_rotation"

    @classmethod
    def parse(cls, value) -> "GestureKind":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class EyePhase(str, Enum):
    OPEN = "open"
    OPENING = "opening"
    CLOSING = "closing"
    CLOSED = "closed"


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class GestureStatus(str, Enum):
    PENDING = "pending"
    CURRENT = "current"
    COMPLETED = "completed"


INSTRUCTIONS = {
    GestureKind.BLINK: "Blink naturally",
    GestureKind.SMILE: "Smile",
    GestureKind.HEAD_ROTATION: "Slowly turn your head to one side",
}


@dataclass(frozen=True)
class EyeStateSample:
    """Combined eye openness for one tick."""
    ear: float
    timestamp: int
    phase: EyePhase


@dataclass(frozen=True)
class GestureOutcome:
    """Per-tick verdict of the active detector."""
    type: GestureKind
    detected: bool
    confidence: float
    naturalness: float
    timestamp: int
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass
class GestureState:
    """Running snapshot for one configured gesture."""
    confidence: float = 0.0
    naturalness: float = 0.0
    last_detection_time: Optional[int] = None
    is_detected: bool = False


@dataclass
class LivenessResult:
    """Final verdict handed to registration / validation / signing flows."""
    is_live: bool
    overall_score: float
    completed_gestures: list[GestureOutcome]
    total_time_ms: int
    confidence: float
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "is_live": self.is_live,
            "overall_score": self.overall_score,
            "completed_gestures": [g.to_dict() for g in self.completed_gestures],
            "total_time_ms": self.total_time_ms,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
        }
