"""
Gesture Liveness -- Gesture Session Tests
=========================================
Covers: full three-gesture run, strict ordering, lifecycle errors,
inter-gesture pause, progress projection, scoring and caller-side timeout.
"""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from gesture_liveness.config import LivenessConfig
from gesture_liveness.errors import ConfigurationError, InvalidStateError
from gesture_liveness.session import GestureSession
from gesture_liveness.types import GestureKind, SessionState

from helpers import BLINK_TRACE, make_face


SMILE_FACE = make_face(smile=0.08)
TURN_FACE = make_face(nose_shift=0.15)


class _FakeClock:
    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now


def _blink(session, start=0, step=50):
    """Feed one natural blink; returns the outcomes."""
    return [session.process_frame(make_face(ear=e), start + i * step)
            for i, e in enumerate(BLINK_TRACE)]


def _record(session):
    events = {"progress": [], "gesture_completed": [], "session_complete": []}
    for name, bucket in events.items():
        session.subscribe(name, bucket.append)
    return events


class TestFullSession(unittest.TestCase):
    """Blink, smile and head rotation in order, 2 s pause between them."""

    def setUp(self):
        self.session = GestureSession(LivenessConfig())
        self.events = _record(self.session)
        self.session.start_session(["blink", "smile", "head_rotation"], timestamp=0)

    def _run_all(self):
        _blink(self.session)                           # completes at 300
        self.session.process_frame(SMILE_FACE, 2300)   # pause ends at 2300
        self.session.process_frame(TURN_FACE, 4300)

    def test_events_in_order(self):
        self._run_all()
        completed = self.events["gesture_completed"]
        self.assertEqual([e["gesture_type"] for e in completed],
                         [GestureKind.BLINK, GestureKind.SMILE, GestureKind.HEAD_ROTATION])
        self.assertEqual([e["next_gesture"] for e in completed],
                         [GestureKind.SMILE, GestureKind.HEAD_ROTATION, None])
        self.assertEqual(len(self.events["session_complete"]), 1)

    def test_result_is_live(self):
        self._run_all()
        result = self.events["session_complete"][0]
        self.assertTrue(result.is_live)
        self.assertGreaterEqual(result.overall_score, 0.6)
        # (0.9*1.0 + 0.8*1.0 + 1.0*0.6) / 3
        self.assertAlmostEqual(result.overall_score, 0.7667, places=3)
        self.assertAlmostEqual(result.confidence, 0.9, places=3)
        self.assertEqual(result.total_time_ms, 4300)
        self.assertEqual(len(result.completed_gestures), 3)

    def test_state_after_completion(self):
        self._run_all()
        self.assertEqual(self.session.state, SessionState.COMPLETE)
        self.assertEqual(self.session.last_session_state, SessionState.COMPLETE)
        self.assertIsNone(self.session.current_gesture)
        self.assertEqual(self.session.get_progress()["progress"], 1.0)
        with self.assertRaises(InvalidStateError):
            self.session.process_frame(TURN_FACE, 5000)

    def test_progress_emitted_every_processed_tick(self):
        self._run_all()
        self.assertEqual(len(self.events["progress"]), len(BLINK_TRACE) + 2)

    def test_gesture_states_updated(self):
        _blink(self.session)
        blink_state = self.session.gesture_states[GestureKind.BLINK]
        self.assertTrue(blink_state.is_detected)
        self.assertEqual(blink_state.last_detection_time, 300)
        self.assertFalse(self.session.gesture_states[GestureKind.SMILE].is_detected)

    def test_restart_after_completion(self):
        self._run_all()
        self.session.start_session(["smile"], timestamp=10000)
        self.assertTrue(self.session.is_active)
        self.assertEqual(self.session.completed_gestures, ())


class TestOrdering(unittest.TestCase):

    def test_later_gesture_cannot_complete_early(self):
        session = GestureSession(LivenessConfig())
        events = _record(session)
        session.start_session(["blink", "smile", "head_rotation"], timestamp=0)

        for i in range(10):
            outcome = session.process_frame(make_face(smile=0.1, nose_shift=0.2), i * 50)
            self.assertEqual(outcome.type, GestureKind.BLINK)
        self.assertEqual(events["gesture_completed"], [])
        self.assertEqual(session.current_gesture, GestureKind.BLINK)

    def test_completion_order_follows_required_order(self):
        orders = [
            ["smile", "blink", "head_rotation"],
            ["head_rotation", "smile", "blink"],
            ["smile", "head_rotation"],
        ]
        frames = {
            "smile": lambda s, t: s.process_frame(SMILE_FACE, t),
            "head_rotation": lambda s, t: s.process_frame(TURN_FACE, t),
            "blink": lambda s, t: _blink(s, start=t),
        }
        for order in orders:
            session = GestureSession(LivenessConfig())
            events = _record(session)
            session.start_session(order, timestamp=0)
            t = 0
            for name in order:
                frames[name](session, t)
                t += 5000
            got = [e["gesture_type"].value for e in events["gesture_completed"]]
            self.assertEqual(got, order)
            self.assertEqual(len(events["session_complete"]), 1)

    def test_no_duplicate_completion(self):
        session = GestureSession(LivenessConfig())
        events = _record(session)
        session.start_session(["blink", "smile"], timestamp=0)
        _blink(session)
        _blink(session, start=2500)
        _blink(session, start=3500)
        self.assertEqual(len(events["gesture_completed"]), 1)
        self.assertEqual(len(session.completed_gestures), 1)
        self.assertEqual(session.current_gesture, GestureKind.SMILE)


class TestLifecycle(unittest.TestCase):

    def setUp(self):
        self.session = GestureSession(LivenessConfig())

    def test_process_before_start_raises(self):
        with self.assertRaises(InvalidStateError):
            self.session.process_frame(make_face(), 0)

    def test_double_start_raises(self):
        self.session.start_session(["blink"], timestamp=0)
        with self.assertRaises(InvalidStateError) as ctx:
            self.session.start_session(["smile"], timestamp=0)
        self.assertEqual(ctx.exception.operation, "start_session")
        self.assertEqual(self.session.required_gestures, (GestureKind.BLINK,))

    def test_bad_gesture_lists_rejected_at_start(self):
        for bad in (["blink", "blink"], ["wink"], [], "blink"):
            with self.assertRaises(ConfigurationError):
                self.session.start_session(bad)
            self.assertEqual(self.session.state, SessionState.IDLE)

    def test_bad_config_dict_rejected_at_start(self):
        with self.assertRaises(ConfigurationError):
            self.session.start_session(config={"session": {"timeout_ms": -1}})
        self.assertEqual(self.session.state, SessionState.IDLE)

    def test_config_dict_applies(self):
        self.session.start_session(
            config={"session": {"required_gestures": ["smile"], "gesture_pause_ms": 0}},
            timestamp=0,
        )
        self.assertEqual(self.session.required_gestures, (GestureKind.SMILE,))
        self.assertEqual(self.session.config.gesture_pause_ms, 0)

    def test_stop_is_idempotent(self):
        self.session.stop_session()
        self.assertIsNone(self.session.last_session_state)

        self.session.start_session(["blink", "smile"], timestamp=0)
        _blink(self.session)
        self.session.stop_session("user cancelled")
        self.session.stop_session()

        self.assertEqual(self.session.state, SessionState.IDLE)
        self.assertEqual(self.session.last_session_state, SessionState.ABANDONED)
        self.assertEqual(self.session.completed_gestures, ())
        self.assertIsNone(self.session.start_time)
        self.assertIsNone(self.session.get_result())
        with self.assertRaises(InvalidStateError):
            self.session.process_frame(make_face(), 400)

    def test_unsubscribe(self):
        seen = []
        unsubscribe = self.session.subscribe("progress", seen.append)
        self.session.start_session(["blink"], timestamp=0)
        self.session.process_frame(make_face(), 0)
        unsubscribe()
        unsubscribe()
        self.session.process_frame(make_face(), 50)
        self.assertEqual(len(seen), 1)

    def test_unknown_event(self):
        with self.assertRaises(ValueError):
            self.session.subscribe("finished", print)


class TestTicks(unittest.TestCase):

    def setUp(self):
        self.session = GestureSession(LivenessConfig())
        self.events = _record(self.session)
        self.session.start_session(["blink", "smile", "head_rotation"], timestamp=0)

    def test_empty_frame_is_dropped(self):
        self.assertIsNone(self.session.process_frame([], 0))
        self.assertIsNone(self.session.process_frame(None, 50))
        self.assertEqual(self.events["progress"], [])

    def test_no_pause_before_first_gesture(self):
        self.assertEqual(self.session.time_until_gesture_active(0), 0)
        self.assertIsNotNone(self.session.process_frame(make_face(), 0))

    def test_pause_after_completion(self):
        _blink(self.session)
        self.assertEqual(self.session.time_until_gesture_active(1000), 1300)
        self.assertIsNone(self.session.process_frame(SMILE_FACE, 1000))
        self.assertEqual(len(self.events["gesture_completed"]), 1)

        outcome = self.session.process_frame(SMILE_FACE, 2300)
        self.assertTrue(outcome.detected)
        self.assertEqual(self.session.time_until_gesture_active(4000), 300)

    def test_progress_statuses(self):
        progress = self.session.get_progress()
        self.assertEqual([g["status"] for g in progress["gestures"]],
                         ["current", "pending", "pending"])
        self.assertEqual(progress["current_gesture"], "blink")
        self.assertEqual(progress["instruction"], "Blink naturally")
        self.assertEqual(progress["progress"], 0.0)

        _blink(self.session)
        progress = self.session.get_progress()
        self.assertEqual([g["status"] for g in progress["gestures"]],
                         ["completed", "current", "pending"])
        self.assertEqual(progress["completed_gestures"], ["blink"])
        self.assertAlmostEqual(progress["progress"], 1 / 3)

    def test_outcome_details(self):
        outcome = _blink(self.session)[-1]
        self.assertTrue(outcome.detected)
        self.assertEqual(outcome.details["closed_frame_count"], 3)
        self.assertEqual(outcome.to_dict()["type"], "blink")


class TestSparseFrames(unittest.TestCase):
    """Frames too small for the current detector leave the session untouched."""

    def _session(self, gestures):
        session = GestureSession(LivenessConfig())
        events = _record(session)
        session.start_session(gestures, timestamp=0)
        return session, events

    def test_sparse_frame_dropped_for_head_rotation(self):
        session, events = self._session(["head_rotation"])
        self.assertIsNotNone(session.process_frame(make_face(nose_shift=0.02), 0))
        state = session.gesture_states[GestureKind.HEAD_ROTATION]
        before = (state.confidence, state.naturalness)
        self.assertGreater(before[1], 0.6)

        self.assertIsNone(session.process_frame(make_face(nose_shift=0.15, n_points=300), 50))
        state = session.gesture_states[GestureKind.HEAD_ROTATION]
        self.assertEqual((state.confidence, state.naturalness), before)
        self.assertEqual(len(events["progress"]), 1)
        self.assertTrue(session.is_active)

    def test_sparse_frame_dropped_for_blink(self):
        session, events = self._session(["blink"])
        self.assertIsNone(session.process_frame(make_face(ear=0.1, n_points=300), 0))
        self.assertEqual(events["progress"], [])

        # A dropped frame does not break up a blink around it
        outcomes = [session.process_frame(make_face(ear=e), 50 + i * 50)
                    for i, e in enumerate(BLINK_TRACE)]
        self.assertTrue(outcomes[-1].detected)

    def test_sparse_frame_reaches_smile_fallback(self):
        session, events = self._session(["smile"])
        outcome = session.process_frame(make_face(n_points=100), 0)
        self.assertIsNotNone(outcome)
        self.assertTrue(outcome.details["fallback"])
        self.assertEqual(len(events["progress"]), 1)


class TestScoring(unittest.TestCase):

    def test_no_result_before_first_completion(self):
        session = GestureSession(LivenessConfig())
        session.start_session(timestamp=0)
        session.process_frame(make_face(), 0)
        self.assertIsNone(session.get_result(0))

    def test_partial_completion_earns_time_bonus(self):
        session = GestureSession(LivenessConfig())
        session.start_session(["smile", "blink"], timestamp=0)
        session.process_frame(SMILE_FACE, 100)

        result = session.get_result(1000)
        # 0.8 * 1.0 + (1 - 1/2) * 0.2
        self.assertAlmostEqual(result.overall_score, 0.9, places=4)
        self.assertEqual(result.total_time_ms, 1000)
        self.assertEqual(result.timestamp, 1000)

    def test_score_is_capped(self):
        session = GestureSession(LivenessConfig())
        session.start_session(timestamp=0)
        _blink(session)
        # 0.9 + (2/3) * 0.2 > 1
        self.assertEqual(session.get_result(300).overall_score, 1.0)

    def test_low_naturalness_fails(self):
        cfg = LivenessConfig(min_liveness_score=0.7)
        session = GestureSession(cfg)
        results = []
        session.subscribe("session_complete", results.append)
        session.start_session(["head_rotation"], timestamp=0)
        session.process_frame(TURN_FACE, 0)
        # 1.0 confidence * 0.6 naturalness
        self.assertFalse(results[0].is_live)
        self.assertAlmostEqual(results[0].overall_score, 0.6)


class TestTimeout(unittest.TestCase):
    """The engine reports a timeout but never ends the session itself."""

    def test_timeout_is_informational(self):
        clock = _FakeClock(1000)
        session = GestureSession(LivenessConfig(timeout_ms=5000), clock=clock)
        session.start_session(["blink"])
        self.assertEqual(session.start_time, 1000)

        clock.now = 5900
        self.assertFalse(session.is_timed_out())
        clock.now = 6001
        self.assertTrue(session.is_timed_out())
        self.assertEqual(session.elapsed_ms(), 5001)

        self.assertTrue(session.is_active)
        self.assertIsNotNone(session.process_frame(make_face()))

        session.stop_session("timeout")
        self.assertFalse(session.is_timed_out())
        self.assertEqual(session.last_session_state, SessionState.ABANDONED)

    def test_clock_timestamps_used_when_omitted(self):
        clock = _FakeClock(0)
        session = GestureSession(LivenessConfig(), clock=clock)
        session.start_session(["blink"])
        for e in BLINK_TRACE:
            outcome = session.process_frame(make_face(ear=e))
            clock.now += 50
        self.assertTrue(outcome.detected)
        self.assertEqual(outcome.timestamp, 300)


if __name__ == '__main__':
    unittest.main()
