"""
Gesture Liveness — Session Runner
=================================
Reference caller for a GestureSession. Handles the concerns the engine
leaves to its caller:

  - Session timeout (wall-clock budget from start, default 30 s)
  - Skipping landmark inference during the inter-gesture pause
  - Serializing ticks: a frame arriving while a tick is in flight is
    dropped, never processed concurrently

Frames are (timestamp_ms, frame) pairs; the LandmarkProvider turns each
frame into a landmark list.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Iterable, Optional, Sequence

from .landmarks import LandmarkProvider
from .logger import setup_logger
from .session import EVENT_SESSION_COMPLETE, GestureSession
from .types import GestureOutcome, LivenessResult, SessionState

_log = setup_logger("LivenessRunner")


class LivenessRunner:
    """Feeds frames from a source through a provider into one session."""

    def __init__(self, session: GestureSession, provider: LandmarkProvider):
        self.session = session
        self.provider = provider
        self.frames_processed = 0
        self.frames_dropped = 0
        self.frames_skipped = 0
        self._tick_lock = threading.Lock()
        self._result: Optional[LivenessResult] = None
        session.subscribe(EVENT_SESSION_COMPLETE, self._on_complete)

    def _on_complete(self, result: LivenessResult) -> None:
        self._result = result

    @property
    def result(self) -> Optional[LivenessResult]:
        return self._result

    def start(self, required_gestures: Optional[Sequence] = None,
              timestamp: Optional[int] = None) -> None:
        self._result = None
        self.frames_processed = self.frames_dropped = self.frames_skipped = 0
        self.session.start_session(required_gestures, timestamp=timestamp)

    def submit(self, timestamp: int, frame: Any) -> Optional[GestureOutcome]:
        """Process one frame unless another tick is still running."""
        if not self._tick_lock.acquire(blocking=False):
            self.frames_dropped += 1
            return None
        try:
            return self._tick(int(timestamp), frame)
        finally:
            self._tick_lock.release()

    def _tick(self, ts: int, frame: Any) -> Optional[GestureOutcome]:
        session = self.session
        if not session.is_active:
            return None
        if session.is_timed_out(ts):
            _log.warning("Liveness session timed out after %d ms", session.elapsed_ms(ts))
            self._fail(ts, "timeout")
            return None
        if session.time_until_gesture_active(ts) > 0:
            self.frames_skipped += 1
            return None

        landmarks = self.provider.get_landmarks(frame)
        self.frames_processed += 1
        return session.process_frame(landmarks, ts)

    def run(self, frames: Iterable[tuple[int, Any]],
            required_gestures: Optional[Sequence] = None) -> LivenessResult:
        """Drive a whole session from a frame iterable and return the verdict.

        A session that times out or runs out of frames is failed
        (is_live=False), whatever its partial score.
        """
        started = False
        last_ts = 0
        for ts, frame in frames:
            last_ts = int(ts)
            if not started:
                self.start(required_gestures, timestamp=last_ts)
                started = True
            self.submit(last_ts, frame)
            if self._result is not None or self.session.state != SessionState.ACTIVE:
                break

        if self._result is not None:
            return self._result
        if not started:
            self.start(required_gestures, timestamp=last_ts)
        if self.session.is_active:
            self._fail(last_ts, "frames exhausted")
        return self._result

    def _fail(self, ts: int, reason: str) -> None:
        partial = self.session.get_result(ts)
        audit = self.session.audit_logger
        if audit is not None:
            audit.warn(f"Liveness session failed: {reason}", {
                "elapsed_ms": self.session.elapsed_ms(ts),
                "completed": [o.type.value for o in self.session.completed_gestures],
                "frames_processed": self.frames_processed,
                "frames_dropped": self.frames_dropped,
            })
        if partial is None:
            partial = LivenessResult(
                is_live=False,
                overall_score=0.0,
                completed_gestures=[],
                total_time_ms=self.session.elapsed_ms(ts),
                confidence=0.0,
                timestamp=ts,
            )
        self._result = replace(partial, is_live=False)
        self.session.stop_session(reason, ts)
