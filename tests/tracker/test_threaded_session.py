# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the ThreadedSession class.

These tests verify:
- Non-blocking operation
- Throttling of interim snapshots
- Backpressure handling
- Control commands processed in order on the worker thread
"""

import threading
import time
import unittest
from datetime import datetime

from rehearse.events import ModeChanged, PhaseChanged, TurnResolved
from rehearse.models import Beat
from rehearse.progression import ModeSettings
from rehearse.session import PracticeSession, SessionSettings
from rehearse.threaded_session import ThreadedSession

NOW = datetime(2025, 3, 1, 9, 0)


def make_settings():
    """Settings without a pause window, so snapshots are aligned at once."""
    return SessionSettings(
        learn=ModeSettings(required_learning_reps=0, hide_floor=3, hide_cap=3,
                           hide_on_failure=1, required_clean_turns=1),
        pause_window_ms=0,
    )


def make_session():
    """A session over one short beat."""
    return PracticeSession([Beat("a", 0, ["The quick brown fox jumps."])],
                           make_settings(), wall_clock=lambda: NOW)


class BlockingSession(PracticeSession):
    """A session that holds the worker inside handle_transcript until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = threading.Event()
        self.entered = threading.Event()
        self.seen = []

    def handle_transcript(self, transcript, is_final, turn_id, now=None):
        self.seen.append((transcript, is_final))
        self.entered.set()
        self.gate.wait(timeout=5.0)
        return super().handle_transcript(transcript, is_final, turn_id, now)


class TestThreadedSessionBasic(unittest.TestCase):
    """Test basic threaded session functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.session = ThreadedSession(make_session, partial_throttle_ms=50,
                                       max_queue_size=10)

    def tearDown(self):
        """Clean up after tests."""
        if self.session:
            self.session.shutdown()

    def start_session(self):
        """Start the session and return the first update."""
        self.session.start()
        update = self.session.get_update(timeout=1.0)
        self.assertIsNotNone(update)
        return update

    def test_initialization(self):
        """Test that the worker starts successfully."""
        self.assertTrue(self.session.started.is_set())
        self.assertFalse(self.session.shutdown_flag.is_set())
        self.assertIsNone(self.session.get_cached_update())

    def test_start_reports_mode_and_words(self):
        """Test that starting publishes the first activity."""
        update = self.start_session()

        self.assertEqual(update.mode, "learn")
        self.assertIn(ModeChanged(None, "learn", "a"), update.events)
        self.assertIn(PhaseChanged("a", None, "sentence_1_fading"), update.events)
        self.assertEqual(len(update.word_states), 5)
        self.assertEqual(self.session.turn_id, update.turn_id)

    def test_submit_transcript_returns_quickly(self):
        """Test that submit_transcript is non-blocking."""
        self.start_session()
        start_time = time.time()

        for _ in range(5):
            self.session.submit_transcript("the quick", is_final=True)

        elapsed = time.time() - start_time
        self.assertLess(elapsed, 0.01,
                        f"submit_transcript took {elapsed*1000:.1f}ms, should be < 10ms")

    def test_completed_turn(self):
        """Test that reading the whole text resolves the turn."""
        first = self.start_session()
        self.session.submit_transcript("the quick brown fox jumps", is_final=True)

        update = self.session.get_update(timeout=1.0)
        self.assertIsNotNone(update)
        resolved = [e for e in update.events if isinstance(e, TurnResolved)]
        self.assertEqual(len(resolved), 1)
        self.assertTrue(resolved[0].success)
        self.assertEqual(resolved[0].hidden_count, 3)
        self.assertGreater(update.turn_id, first.turn_id)
        self.assertEqual(sum(s.hidden for s in update.word_states), 3)

    def test_interim_snapshot_moves_cursor(self):
        """Test that interim snapshots update the word states."""
        self.start_session()
        self.session.submit_transcript("the quick", is_final=False)

        update = self.session.get_update(timeout=1.0)
        self.assertIsNotNone(update)
        self.assertEqual(update.events, [])
        spoken = [s.index for s in update.word_states if s.spoken]
        self.assertEqual(spoken, [0, 1])

    def test_stale_turn_id(self):
        """Test that a snapshot for an old turn changes nothing."""
        first = self.start_session()
        self.session.submit_transcript("the quick brown fox jumps", is_final=True)
        self.session.get_update(timeout=1.0)

        self.session.submit_transcript("the quick", is_final=True, turn_id=first.turn_id)
        update = self.session.get_update(timeout=1.0)
        self.assertIsNotNone(update)
        self.assertFalse(any(s.spoken for s in update.word_states))

    def test_partial_throttling(self):
        """Test that rapid interim snapshots are throttled."""
        self.start_session()
        accepted = [self.session.submit_transcript("the", is_final=False)
                    for _ in range(5)]

        self.assertTrue(accepted[0])
        self.assertFalse(any(accepted[1:]))

    def test_final_never_throttled(self):
        """Test that final snapshots bypass the throttle."""
        self.start_session()
        self.session.submit_transcript("the", is_final=False)
        self.assertTrue(self.session.submit_transcript("the quick", is_final=True))

    def test_reveal_and_checkpoint_commands(self):
        """Test that control commands report their outcome."""
        self.start_session()
        self.session.submit_transcript("the quick brown fox jumps", is_final=True)
        update = self.session.get_update(timeout=1.0)
        hidden = [s.index for s in update.word_states if s.hidden]

        self.session.reveal_word(hidden[0])
        update = self.session.get_update(timeout=1.0)
        self.assertEqual(update.extra, {"revealed": True})
        self.assertFalse(update.word_states[hidden[0]].hidden)

        self.session.save_checkpoint()
        update = self.session.get_update(timeout=1.0)
        self.assertEqual(update.extra, {"checkpoint_saved": True})

    def test_tick_without_events_publishes_nothing(self):
        """Test that a quiet tick does not publish an update."""
        self.start_session()
        self.session.tick()
        self.assertIsNone(self.session.get_update(timeout=0.3))

    def test_cached_update(self):
        """Test that the cached update is the latest one published."""
        update = self.start_session()
        self.assertIs(self.session.get_cached_update(), update)


class TestThreadedSessionBackpressure(unittest.TestCase):
    """Test queue backpressure with a worker stuck on a snapshot."""

    def setUp(self):
        """Set up a session whose worker can be held."""
        self.inner = None

        def factory():
            self.inner = BlockingSession([Beat("a", 0, ["The quick brown fox jumps."])],
                                         make_settings(), wall_clock=lambda: NOW)
            return self.inner

        self.session = ThreadedSession(factory, partial_throttle_ms=0, max_queue_size=3)
        self.session.start()
        self.session.get_update(timeout=1.0)

    def tearDown(self):
        """Release the worker and shut down."""
        self.inner.gate.set()
        self.session.shutdown()

    def hold_worker(self):
        """Queue a snapshot and wait until the worker is blocked on it."""
        self.session.submit_transcript("the", is_final=True)
        self.assertTrue(self.inner.entered.wait(timeout=1.0))

    def wait_for_seen(self, count):
        """Wait until the session has been handed `count` snapshots."""
        deadline = time.time() + 2.0
        while len(self.inner.seen) < count and time.time() < deadline:
            time.sleep(0.01)
        self.assertEqual(len(self.inner.seen), count)

    def test_old_interim_snapshots_dropped(self):
        """Test that a new interim snapshot replaces queued interim ones."""
        self.hold_worker()
        self.assertTrue(self.session.submit_transcript("the quick", is_final=False))
        self.assertTrue(self.session.submit_transcript("the quick brown", is_final=False))
        self.assertTrue(self.session.submit_transcript("the quick brown fox", is_final=False))

        self.assertTrue(self.session.submit_transcript("the quick brown fox jumps",
                                                       is_final=False))
        self.assertEqual(self.session.request_queue.qsize(), 1)

    def test_snapshots_processed_in_submission_order(self):
        """Test that finals keep their order when the queue overflows."""
        self.hold_worker()
        self.assertTrue(self.session.submit_transcript("the quick", is_final=True))
        self.assertTrue(self.session.submit_transcript("the quick brown", is_final=False))
        self.assertTrue(self.session.submit_transcript("the quick brown fox", is_final=True))
        self.assertTrue(self.session.submit_transcript("the quick brown fox jumps",
                                                       is_final=False))

        self.inner.gate.set()
        self.wait_for_seen(4)
        self.assertEqual(self.inner.seen, [
            ("the", True),
            ("the quick", True),
            ("the quick brown fox", True),
            ("the quick brown fox jumps", False),
        ])

    def test_final_replaces_superseded_interims(self):
        """Test that a final snapshot makes room by dropping interim ones."""
        self.hold_worker()
        self.session.submit_transcript("the quick", is_final=False)
        self.session.submit_transcript("the quick brown", is_final=False)
        self.session.submit_transcript("the quick brown fox", is_final=False)

        self.assertTrue(self.session.submit_transcript("the quick brown fox jumps",
                                                       is_final=True))
        self.assertEqual(self.session.request_queue.qsize(), 1)

    def test_final_waits_for_room(self):
        """Test that a final snapshot waits for the worker instead of being dropped."""
        self.hold_worker()
        for text in ("the quick", "the quick brown", "the quick brown fox"):
            self.assertTrue(self.session.submit_transcript(text, is_final=True))

        release = threading.Timer(0.2, self.inner.gate.set)
        release.start()
        self.assertTrue(self.session.submit_transcript("the quick brown fox jumps",
                                                       is_final=True))
        release.join()

        self.wait_for_seen(5)
        self.assertEqual([text for text, _ in self.inner.seen], [
            "the", "the quick", "the quick brown", "the quick brown fox",
            "the quick brown fox jumps",
        ])

    def test_command_queued_after_interims_dropped(self):
        """Test that a control command makes room by dropping interim snapshots."""
        self.hold_worker()
        self.session.submit_transcript("the quick", is_final=False)
        self.session.submit_transcript("the quick brown", is_final=False)
        self.session.submit_transcript("the quick brown fox", is_final=False)

        self.assertTrue(self.session.tick())
        self.assertEqual(self.session.request_queue.qsize(), 2)

    def test_refused_when_worker_stays_busy(self):
        """Test that finals and commands give up once the enqueue timeout passes."""
        self.session.enqueue_timeout = 0.05
        self.hold_worker()
        for text in ("the quick", "the quick brown", "the quick brown fox"):
            self.session.submit_transcript(text, is_final=True)

        self.assertFalse(self.session.tick())
        self.assertFalse(self.session.submit_transcript("the quick brown fox jumps",
                                                        is_final=True))
        self.assertEqual(self.session.request_queue.qsize(), 3)



if __name__ == '__main__':
    unittest.main()
