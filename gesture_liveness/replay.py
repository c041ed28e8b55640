"""
Gesture Liveness — Trace Replay
===============================
Replays a recorded landmark trace through the gesture engine. Useful for
tuning thresholds against captures from a specific camera, and for
reproducing field reports offline.

Trace format (JSON Lines, one frame per line):
  {"timestamp": 1234, "landmarks": [[x, y, z], ...]}
An empty "landmarks" list records a frame with no face. A single JSON
array of such objects is accepted as well.

Usage:
  python -m gesture_liveness capture.jsonl
  python -m gesture_liveness capture.jsonl --gestures blink head_rotation
  python -m gesture_liveness capture.jsonl --config site.yaml --audit-dir logs

Exit status: 0 live, 1 not live, 2 unreadable trace or bad configuration.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import NamedTuple, Optional, Sequence

from .config import LivenessConfig
from .errors import ConfigurationError
from .landmarks import LandmarkProvider, as_landmark_array
from .logger import AuditLogger, LivenessJSONEncoder, setup_logger
from .runner import LivenessRunner
from .session import GestureSession

_log = setup_logger("LivenessReplay")


class TraceFrame(NamedTuple):
    timestamp: int
    landmarks: list


def load_trace(path: str) -> list[TraceFrame]:
    """Read a landmark trace file.

    Raises:
        ValueError: on malformed JSON, missing keys or non-numeric coordinates.
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()

    stripped = text.lstrip()
    if stripped.startswith("["):
        records = json.loads(stripped)
    else:
        records = []
        for lineno, line in enumerate(text.splitlines(), 1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: {e.msg}") from e

    frames = []
    for i, record in enumerate(records):
        try:
            landmarks = list(record.get("landmarks") or [])
            as_landmark_array(landmarks)
            frames.append(TraceFrame(int(record["timestamp"]), landmarks))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"{path}: frame {i} is malformed ({e})") from e
    frames.sort(key=lambda fr: fr.timestamp)
    return frames


class ReplayLandmarkProvider(LandmarkProvider):
    """Provider for recorded traces: the frame already holds its landmarks."""

    def get_landmarks(self, frame: TraceFrame):
        return frame.landmarks


def replay(frames: Sequence[TraceFrame], config: Optional[LivenessConfig] = None,
           required_gestures: Optional[Sequence[str]] = None,
           audit_logger: Optional[AuditLogger] = None):
    session = GestureSession(config, audit_logger=audit_logger)
    runner = LivenessRunner(session, ReplayLandmarkProvider())
    result = runner.run(((fr.timestamp, fr) for fr in frames), required_gestures)
    _log.info("Replayed %d frames (%d processed, %d skipped in pauses)",
              len(frames), runner.frames_processed, runner.frames_skipped)
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gesture_liveness",
        description="Replay a landmark trace through the gesture liveness engine",
    )
    parser.add_argument("trace", help="JSONL landmark trace")
    parser.add_argument("--config", default=None, help="YAML config overriding packaged defaults")
    parser.add_argument("--gestures", nargs="+", default=None,
                        help="Required gestures in order (blink, smile, head_rotation)")
    parser.add_argument("--audit-dir", default=None, help="Write a JSONL audit trail here")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        for name in ("LivenessReplay", "GestureSession", "BlinkDetector", "SmileDetector"):
            logging.getLogger(name).setLevel(logging.DEBUG)

    try:
        config = LivenessConfig.from_yaml(args.config) if args.config else None
        frames = load_trace(args.trace)
    except (OSError, ValueError) as e:
        _log.error("Cannot load input: %s", e)
        return 2

    audit = AuditLogger(args.audit_dir) if args.audit_dir else None
    try:
        result = replay(frames, config, args.gestures, audit_logger=audit)
    except ConfigurationError as e:
        _log.error("Invalid configuration: %s", e)
        if audit is not None:
            audit.error("Invalid configuration", e)
        return 2
    finally:
        if audit is not None:
            audit.close()

    print(json.dumps(result.to_dict(), indent=2, cls=LivenessJSONEncoder))
    return 0 if result.is_live else 1
