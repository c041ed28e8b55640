"""
Gesture Liveness — Blink Event Detector
=======================================
Decides, tick by tick, whether a complete natural blink just finished.

BLINK CYCLE (scanned backward over a 30-sample ring buffer):
  open(before) -> closed ... closed -> open(after)
  "open" = smoothed EAR >= BLINK threshold, anything lower is closed.
  A blink is reported on the tick whose sample is the reopening.

DURATION = t(open after) - t(first closed)
  Three closed samples 50 ms apart span 150 ms.

ACCEPTANCE:
  - duration < 80 ms              -> micro-closure (tracker noise), rejected
  - 120 ms <= duration <= 400 ms  -> required
  - closed samples >= 3           -> required

ANTI-SPOOFING:
  - Blink < 500 ms after the previous one: naturalness halved
  - 300 ms cooldown after an accepted blink: ticks inside it report
    detected=False without scanning

Raw EAR is smoothed with a 3-sample trailing mean before the scan.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np

from .config import BlinkThresholds, LandmarkIndices
from .ear import NEUTRAL_EAR, compute_eye_state
from .landmarks import as_landmark_array
from .logger import setup_logger
from .types import EyePhase, EyeStateSample

_log = setup_logger("BlinkDetector")


@dataclass(frozen=True)
class BlinkResult:
    detected: bool
    confidence: float
    naturalness: float
    blink_duration: int = 0
    closed_frame_count: int = 0
    ear: float = NEUTRAL_EAR
    phase: EyePhase = EyePhase.OPEN


class _Entry(NamedTuple):
    sample: EyeStateSample
    smoothed: float


class BlinkDetector:
    """Rolling-window blink cycle detector with cooldown anti-spoofing."""

    def __init__(
        self,
        thresholds: Optional[BlinkThresholds] = None,
        indices: Optional[LandmarkIndices] = None,
    ):
        self.thresholds = thresholds or BlinkThresholds()
        self.indices = indices or LandmarkIndices()
        self.history: deque[_Entry] = deque(maxlen=self.thresholds.history_size)
        self._raw_ears: deque[float] = deque(maxlen=self.thresholds.smoothing_window)
        self.last_blink_time: Optional[int] = None
        self._cooldown_start: Optional[int] = None
        self.blink_count = 0

    def reset(self) -> None:
        self.history.clear()
        self._raw_ears.clear()
        self.last_blink_time = None
        self._cooldown_start = None
        self.blink_count = 0

    # ── Per-tick entry points ─────────────────────────────────

    def process(self, landmarks, timestamp: int) -> BlinkResult:
        """Compute the eye state for a landmark frame and update."""
        lm = as_landmark_array(landmarks)
        if len(lm) < self.thresholds.min_landmarks:
            # Dropped frame: history untouched
            return BlinkResult(detected=False, confidence=0.0, naturalness=0.0)
        sample = compute_eye_state(lm, timestamp, self.thresholds, self.indices)
        return self.update(sample)

    def update(self, sample: EyeStateSample) -> BlinkResult:
        """Append one eye-state sample and check for a finished blink."""
        self._raw_ears.append(sample.ear)
        smoothed = float(np.mean(self._raw_ears))
        self.history.append(_Entry(sample, smoothed))

        ts = sample.timestamp
        idle = BlinkResult(
            detected=False,
            confidence=self._closure_confidence(smoothed),
            naturalness=0.0,
            ear=smoothed,
            phase=sample.phase,
        )

        if self._cooldown_start is not None and ts - self._cooldown_start < self.thresholds.cooldown_ms:
            return idle

        pattern = self._find_reopening()
        if pattern is None:
            return idle

        start, after = pattern
        entries = self.history
        closed_start = entries[start].sample.timestamp
        duration = entries[after].sample.timestamp - closed_start
        closed_frames = after - start

        t = self.thresholds
        if duration < t.min_closed_duration_ms:
            _log.debug("Micro-closure ignored (%d ms, %d frames)", duration, closed_frames)
            return idle
        if not (t.min_blink_duration_ms <= duration <= t.max_blink_duration_ms
                and closed_frames >= t.min_blink_frames):
            _log.debug("Closure rejected (%d ms, %d frames)", duration, closed_frames)
            return idle

        naturalness = 1.0
        if self.last_blink_time is not None and ts - self.last_blink_time < t.rapid_blink_window_ms:
            naturalness *= 0.5
            _log.info("Rapid repeat blink (%d ms after previous), naturalness penalized",
                      ts - self.last_blink_time)

        self.last_blink_time = ts
        self._cooldown_start = ts
        self.blink_count += 1
        _log.debug("Blink accepted: %d ms over %d frames", duration, closed_frames)

        return BlinkResult(
            detected=True,
            confidence=0.9,
            naturalness=naturalness,
            blink_duration=int(duration),
            closed_frame_count=closed_frames,
            ear=smoothed,
            phase=sample.phase,
        )

    # ── Internals ─────────────────────────────────────────────

    def _is_open(self, entry: _Entry) -> bool:
        return entry.smoothed >= self.thresholds.blink

    def _find_reopening(self) -> Optional[tuple[int, int]]:
        """Locate open -> closed run -> open ending at the newest sample.

        Returns (index of first closed sample, index of reopening sample),
        or None when the newest sample does not close a blink cycle.
        """
        entries = self.history
        after = len(entries) - 1
        if after < 2 or not self._is_open(entries[after]):
            return None
        i = after - 1
        if self._is_open(entries[i]):
            return None
        while i >= 0 and not self._is_open(entries[i]):
            i -= 1
        if i < 0:
            # Closed run reaches past the oldest sample: no open "before"
            return None
        return i + 1, after

    def _closure_confidence(self, smoothed: float) -> float:
        t = self.thresholds
        depth = (t.open - smoothed) / (t.open - t.closed)
        return round(0.5 * min(1.0, max(0.0, depth)), 3)
