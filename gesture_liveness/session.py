"""
Gesture Liveness — Gesture Session State Machine
================================================
Drives one liveness attempt: the subject performs the configured gestures
in order, each within natural human timing, and the session scores them.

States:
  IDLE --start_session--> ACTIVE --last gesture--> COMPLETE
  any  --stop_session---> IDLE   (ABANDONED recorded when stopped mid-way)

Per tick (process_frame):
  1. Empty or too sparse frame     -> None, nothing changes (dropped frame)
  2. Inside the inter-gesture pause -> None (warm-up, residual motion ignored)
  3. Evaluate ONLY the detector of required_gestures[current_index]
  4. Update that gesture's running GestureState
  5. detected and not yet completed -> record, emit "gesture_completed"
  6. All done -> COMPLETE, emit "session_complete" with the LivenessResult
     otherwise advance current_index and open the pause window
  7. Emit "progress"

Only the current gesture's detector runs on a tick; later gestures cannot be
completed ahead of their turn.

Timestamps are integer milliseconds from the session clock
(time.monotonic by default). The engine never expires a session by itself:
callers check is_timed_out() and call stop_session().
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np

from .blink import BlinkDetector
from .config import LivenessConfig
from .errors import InvalidStateError
from .head_rotation import detect_head_rotation
from .landmarks import as_landmark_array
from .logger import AuditLogger, setup_logger
from .smile import SmileDetector
from .types import (
    INSTRUCTIONS,
    GestureKind,
    GestureOutcome,
    GestureState,
    GestureStatus,
    LivenessResult,
    SessionState,
)

_log = setup_logger("GestureSession")

EVENT_PROGRESS = "progress"
EVENT_GESTURE_COMPLETED = "gesture_completed"
EVENT_SESSION_COMPLETE = "session_complete"
EVENTS = (EVENT_PROGRESS, EVENT_GESTURE_COMPLETED, EVENT_SESSION_COMPLETE)

TIME_BONUS_WEIGHT = 0.2


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class GestureSession:
    """Ordered multi-gesture liveness session.

    Not thread-safe: all calls on one session must come from a single
    logical caller, one tick at a time.
    """

    def __init__(
        self,
        config: Optional[LivenessConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.config = (config or LivenessConfig.default()).validate()
        self._audit = audit_logger
        self._clock = clock
        self._listeners: dict[str, list[Callable[[Any], None]]] = {e: [] for e in EVENTS}

        self.state = SessionState.IDLE
        self.last_session_state: Optional[SessionState] = None
        self._reset()

    # ── Read-only views ───────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def audit_logger(self) -> Optional[AuditLogger]:
        return self._audit

    @property
    def start_time(self) -> Optional[int]:
        return self._start_time

    @property
    def required_gestures(self) -> tuple[GestureKind, ...]:
        return self._required

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_gesture(self) -> Optional[GestureKind]:
        if self.state != SessionState.ACTIVE or self._current_index >= len(self._required):
            return None
        return self._required[self._current_index]

    @property
    def completed_gestures(self) -> tuple[GestureOutcome, ...]:
        return tuple(self._completed)

    @property
    def gesture_states(self) -> dict[GestureKind, GestureState]:
        return dict(self._states)

    # ── Events ────────────────────────────────────────────────

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}, expected one of {EVENTS}")
        listeners = self._listeners[event]
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)
        return unsubscribe

    def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            callback(payload)

    # ── Lifecycle ─────────────────────────────────────────────

    def start_session(
        self,
        required_gestures: Optional[Sequence[Union[str, GestureKind]]] = None,
        config: Optional[Union[LivenessConfig, dict]] = None,
        timestamp: Optional[int] = None,
    ) -> None:
        """IDLE/COMPLETE -> ACTIVE. Configuration errors are raised here,
        before any frame is processed.

        ``timestamp`` sets the start time when frames carry their own
        timeline instead of the session clock.
        """
        if self.state == SessionState.ACTIVE:
            raise InvalidStateError("start_session", self.state.value)

        if isinstance(config, dict):
            config = LivenessConfig.from_dict(config)
        cfg = config or self.config
        if required_gestures is not None:
            cfg = cfg.with_gestures(required_gestures)
        self.config = cfg.validate()

        self._reset()
        self._required = tuple(self.config.required_gestures)
        self._states = {kind: GestureState() for kind in self._required}
        self._start_time = self._clock() if timestamp is None else int(timestamp)
        self.state = SessionState.ACTIVE

        _log.info("Session started: %s", " -> ".join(k.value for k in self._required))
        self._audit_log("session_start", {
            "required_gestures": [k.value for k in self._required],
            "timeout_ms": self.config.timeout_ms,
            "min_liveness_score": self.config.min_liveness_score,
        })

    def stop_session(self, reason: Optional[str] = None, timestamp: Optional[int] = None) -> None:
        """Force IDLE from any state and clear all progress. Idempotent."""
        if self.state == SessionState.ACTIVE:
            self.last_session_state = SessionState.ABANDONED
            _log.info("Session stopped after %d/%d gestures (%s)",
                      len(self._completed), len(self._required), reason or "caller request")
            self._audit_log("session_stop", {
                "reason": reason or "stopped",
                "completed": [o.type.value for o in self._completed],
                "elapsed_ms": self.elapsed_ms(timestamp),
            })
        self.state = SessionState.IDLE
        self._reset()

    def _reset(self) -> None:
        self._required: tuple[GestureKind, ...] = ()
        self._current_index = 0
        self._completed: list[GestureOutcome] = []
        self._states: dict[GestureKind, GestureState] = {}
        self._start_time: Optional[int] = None
        self._gesture_active_at: Optional[int] = None
        self._blink = BlinkDetector(self.config.blink, self.config.landmarks)
        self._smile = SmileDetector(self.config.smile, self.config.landmarks)

    # ── Tick processing ───────────────────────────────────────

    def process_frame(self, landmarks, timestamp: Optional[int] = None) -> Optional[GestureOutcome]:
        """Feed one landmark frame. Returns the current detector's outcome,
        or None for a dropped frame or a tick inside the warm-up pause."""
        if self.state != SessionState.ACTIVE:
            raise InvalidStateError("process_frame", self.state.value)

        ts = self._clock() if timestamp is None else int(timestamp)
        lm = as_landmark_array(landmarks)
        if len(lm) == 0:
            return None
        if self._gesture_active_at is not None and ts < self._gesture_active_at:
            return None

        kind = self._required[self._current_index]
        if len(lm) < self._min_points(kind):
            return None
        outcome = self._evaluate(kind, lm, ts)

        gesture_state = self._states[kind]
        gesture_state.confidence = outcome.confidence
        gesture_state.naturalness = outcome.naturalness

        if outcome.detected and all(o.type != kind for o in self._completed):
            self._complete_gesture(kind, outcome, gesture_state)

        self._emit(EVENT_PROGRESS, self.get_progress())
        return outcome

    def _min_points(self, kind: GestureKind) -> int:
        """Smallest usable frame for a gesture. Smile has a sparse-mesh fallback."""
        if kind == GestureKind.BLINK:
            return self.config.blink.min_landmarks
        if kind == GestureKind.HEAD_ROTATION:
            return self.config.head_rotation.min_landmarks
        return 1

    def _evaluate(self, kind: GestureKind, lm: np.ndarray, ts: int) -> GestureOutcome:
        """Run exactly one detector: the one for the current gesture."""
        cfg = self.config
        if kind == GestureKind.BLINK:
            r = self._blink.process(lm, ts)
            details = {
                "blink_duration": r.blink_duration,
                "closed_frame_count": r.closed_frame_count,
                "ear": round(r.ear, 4),
                "phase": r.phase.value,
            }
        elif kind == GestureKind.SMILE:
            r = self._smile.detect(lm, ts)
            details = {
                "curvature": round(r.curvature, 4),
                "asymmetry": round(r.asymmetry, 4),
                "fallback": r.fallback,
            }
        elif kind == GestureKind.HEAD_ROTATION:
            r = detect_head_rotation(lm, cfg.head_rotation, cfg.landmarks)
            details = {"yaw": round(r.yaw, 4), "direction": r.direction}
        else:
            raise ValueError(f"No detector for gesture {kind!r}")

        return GestureOutcome(
            type=kind,
            detected=bool(r.detected),
            confidence=float(r.confidence),
            naturalness=float(r.naturalness),
            timestamp=ts,
            details=details,
        )

    def _complete_gesture(self, kind: GestureKind, outcome: GestureOutcome,
                          gesture_state: GestureState) -> None:
        self._completed.append(outcome)
        gesture_state.is_detected = True
        gesture_state.last_detection_time = outcome.timestamp
        self._current_index += 1

        done = self._current_index == len(self._required)
        next_kind = None if done else self._required[self._current_index]

        _log.info("Gesture completed: %s (confidence=%.2f, naturalness=%.2f)",
                  kind.value, outcome.confidence, outcome.naturalness)
        self._audit_log("gesture_completed", {
            "gesture": kind.value,
            "confidence": outcome.confidence,
            "naturalness": outcome.naturalness,
            "details": outcome.details,
        })
        self._emit(EVENT_GESTURE_COMPLETED, {
            "gesture_type": kind,
            "next_gesture": next_kind,
            "outcome": outcome,
        })

        if done:
            self.state = SessionState.COMPLETE
            self.last_session_state = SessionState.COMPLETE
            result = self.get_result(outcome.timestamp)
            _log.info("Session complete: live=%s score=%.3f",
                      result.is_live, result.overall_score)
            self._audit_log("session_complete", {
                "is_live": result.is_live,
                "overall_score": result.overall_score,
                "confidence": result.confidence,
                "total_time_ms": result.total_time_ms,
            })
            self._emit(EVENT_SESSION_COMPLETE, result)
        else:
            self._gesture_active_at = outcome.timestamp + self.config.gesture_pause_ms

    # ── Projections ───────────────────────────────────────────

    def get_progress(self) -> dict:
        completed = {o.type for o in self._completed}
        current = self.current_gesture
        gestures = []
        for kind in self._required:
            if kind in completed:
                status = GestureStatus.COMPLETED
            elif kind == current:
                status = GestureStatus.CURRENT
            else:
                status = GestureStatus.PENDING
            gestures.append({
                "type": kind.value,
                "status": status.value,
                "instruction": INSTRUCTIONS[kind],
            })
        total = len(self._required)
        return {
            "state": self.state.value,
            "current_gesture": current.value if current else None,
            "instruction": INSTRUCTIONS[current] if current else None,
            "completed_gestures": [o.type.value for o in self._completed],
            "progress": len(self._completed) / total if total else 0.0,
            "gestures": gestures,
        }

    def get_result(self, now: Optional[int] = None) -> Optional[LivenessResult]:
        """Score the completed gestures; None until one gesture is done."""
        if not self._completed:
            return None
        now = self._clock() if now is None else int(now)

        products = [o.confidence * o.naturalness for o in self._completed]
        ratio = len(self._completed) / len(self._required)
        time_bonus = max(0.0, 1.0 - ratio) * TIME_BONUS_WEIGHT
        overall = min(1.0, float(np.mean(products)) + time_bonus)

        if self.state == SessionState.COMPLETE:
            end = self._completed[-1].timestamp
        else:
            end = now
        return LivenessResult(
            is_live=overall >= self.config.min_liveness_score,
            overall_score=round(overall, 4),
            completed_gestures=list(self._completed),
            total_time_ms=int(end - self._start_time),
            confidence=round(float(np.mean([o.confidence for o in self._completed])), 4),
            timestamp=now,
        )

    # ── Caller-side timing helpers ────────────────────────────

    def elapsed_ms(self, now: Optional[int] = None) -> int:
        if self._start_time is None:
            return 0
        now = self._clock() if now is None else int(now)
        return now - self._start_time

    def is_timed_out(self, now: Optional[int] = None) -> bool:
        """True once the configured timeout has passed. Informational only."""
        return self.is_active and self.elapsed_ms(now) > self.config.timeout_ms

    def time_until_gesture_active(self, now: Optional[int] = None) -> int:
        """Milliseconds left in the inter-gesture pause (0 when live)."""
        if not self.is_active or self._gesture_active_at is None:
            return 0
        now = self._clock() if now is None else int(now)
        return max(0, self._gesture_active_at - now)

    def _audit_log(self, event: str, data: dict) -> None:
        if self._audit is not None:
            self._audit.log(data, event=event)
