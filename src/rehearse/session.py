# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Practice session: the single owner of all live practice state.

A PracticeSession holds the alignment cursor, the progression state machine
for the current beat and the session plan. Transcript snapshots and timer
ticks are both fed to it explicitly; each call returns the events it raised.
It is not thread-safe: call it from one thread (or event loop), or wrap it
in ThreadedSession.
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from . import debug_log
from .config import (
    Config,
    get_hesitation_settings,
    get_mode_settings,
    get_practice_settings,
    get_recall_schedule_settings,
)
from .events import (
    BeatMastered,
    ModeChanged,
    PhaseChanged,
    RecallCompleted,
    RestStarted,
    SessionComplete,
    SessionEvent,
    TurnResolved,
)
from .hesitation import HesitationSettings, check_hesitation
from .matcher import language_code
from .models import Beat
from .persistence import PersistenceDispatcher
from .planner import calculate_rest_minutes, plan_session, pre_beat_recall_candidate
from .presentation import WordState, word_states
from .progression import ModeSettings, ProgressionMachine, SessionMode
from .recall import RecallSettings, record_recall, schedule_after_mastery
from .tracker import AdvanceResult, AlignmentCursor

logger = logging.getLogger(__name__)

# Modes in which transcript events drive the cursor
PRACTICE_MODES: frozenset[SessionMode] = frozenset([
    SessionMode.LEARN, SessionMode.RECALL, SessionMode.PRE_BEAT_RECALL,
])


@dataclass
class SessionSettings:
    """Everything a practice session can be tuned with."""
    learn: ModeSettings = field(default_factory=ModeSettings)
    recall: ModeSettings = field(default_factory=lambda: ModeSettings(
        required_learning_reps=0, hide_floor=3, hide_cap=5, hide_on_failure=3))
    hesitation: HesitationSettings = field(default_factory=HesitationSettings)
    recall_schedule: RecallSettings = field(default_factory=RecallSettings)
    language: str = "en-US"
    lenient_words: list[str] = field(default_factory=list)
    pause_window_ms: int = 400
    pre_beat_recall: bool = False
    goal_date: date | None = None
    beats_per_day: int | None = None

    @classmethod
    def from_config(cls, config: Config) -> "SessionSettings":
        """Build session settings from the loaded configuration."""
        practice: dict[str, Any] = dict(get_practice_settings(config))
        goal = practice.get("goal_date")
        if isinstance(goal, str):
            goal = date.fromisoformat(goal)
        schedule = get_recall_schedule_settings(config)
        return cls(
            learn=ModeSettings.from_config(dict(get_mode_settings(config, "learn"))),
            recall=ModeSettings.from_config(dict(get_mode_settings(config, "recall"))),
            hesitation=HesitationSettings(**get_hesitation_settings(config)),
            recall_schedule=RecallSettings(
                short_interval_minutes=schedule["short_interval_minutes"],
                evening_hour=schedule["evening_hour"],
                morning_hour=schedule["morning_hour"],
                interval_days=tuple(schedule["interval_days"]),
            ),
            language=config.get("transcription", {}).get("language", "en-US"),
            lenient_words=list(practice["lenient_words"]),
            pause_window_ms=practice["pause_window_ms"],
            pre_beat_recall=practice["pre_beat_recall"],
            goal_date=goal,
            beats_per_day=practice["beats_per_day"],
        )


class PracticeSession:
    """
    Runs a sitting: due recalls, then new beats, with breaks in between.

    Usage:
        session = PracticeSession(beats, SessionSettings())
        events = session.start()
        # from the transcription source
        events = session.handle_transcript(text, is_final, session.turn_id)
        # every settings.hesitation.tick_ms
        events = session.tick()
    """

    beats: list[Beat]
    settings: SessionSettings
    mode: SessionMode | None
    beat: Beat | None
    machine: ProgressionMachine | None
    cursor: AlignmentCursor | None
    rest_ends_at: datetime | None

    def __init__(
        self,
        beats: Sequence[Beat],
        settings: SessionSettings | None = None,
        dispatcher: PersistenceDispatcher | None = None,
        on_turn_reset: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the session.

        Args:
            beats: Every beat of the text
            settings: Session settings (defaults if None)
            dispatcher: Where progress is written (nothing is saved if None)
            on_turn_reset: Called whenever a new turn starts, e.g. to abort
                the recognizer's buffered audio
            clock: Monotonic clock in seconds, used for alignment timing
            wall_clock: Wall clock, used for scheduling
        """
        self.beats = list(beats)
        self.settings = settings or SessionSettings()
        self.dispatcher = dispatcher
        self.on_turn_reset = on_turn_reset
        self._clock = clock
        self._wall_clock = wall_clock

        self.mode = None
        self.beat = None
        self.machine = None
        self.cursor = None
        self.rest_ends_at = None

        self._recall_queue: list[Beat] = []
        self._learn_queue: list[Beat] = []
        self._warmed_up: set[str] = set()
        self._ignore_until: float = 0.0
        self._next_turn_id: int = 0
        self.mastered_today: list[str] = []
        self.recalled_today: list[str] = []

    # ------------------------------------------------------------------
    # Properties

    @property
    def turn_id(self) -> int:
        """Id of the live turn; tag transcript snapshots with it."""
        return self.cursor.turn_id if self.cursor else self._next_turn_id

    @property
    def is_practising(self) -> bool:
        """Whether transcript events are currently being aligned."""
        return self.mode in PRACTICE_MODES and self.cursor is not None

    @property
    def language(self) -> str:
        """Language code used for matching."""
        return language_code(self.settings.language)

    def word_states(self) -> list[WordState]:
        """Display state of each word of the live turn."""
        if self.cursor is None:
            return []
        return word_states(self.cursor)

    # ------------------------------------------------------------------
    # Flow control

    def start(self, now: float | None = None) -> list[SessionEvent]:
        """Plan the sitting and begin the first activity."""
        wall_now: datetime = self._wall_clock()
        plan = plan_session(self.beats, wall_now, self.settings.goal_date,
                            self.settings.beats_per_day)
        self._recall_queue = list(plan.recalls)
        self._learn_queue = list(plan.learn)
        logger.info("Planned %d recalls and %d new beats (%d per day)",
                    len(plan.recalls), len(plan.learn), plan.beats_per_day)
        events: list[SessionEvent] = []
        self._next_activity(events, now)
        return events

    def _set_mode(self, mode: SessionMode, events: list[SessionEvent]) -> None:
        previous: SessionMode | None = self.mode
        self.mode = mode
        events.append(ModeChanged(
            previous.value if previous else None, mode.value,
            self.beat.id if self.beat and mode in PRACTICE_MODES else None))
        debug_log.log_milestone(f"Mode {previous} -> {mode.value}")

    def _next_activity(self, events: list[SessionEvent], now: float | None) -> None:
        if self._recall_queue:
            self._begin(self._recall_queue.pop(0), SessionMode.RECALL, events, now)
            return

        if self._learn_queue:
            upcoming: Beat = self._learn_queue[0]
            if self.settings.pre_beat_recall and upcoming.id not in self._warmed_up:
                self._warmed_up.add(upcoming.id)
                warm_up: Beat | None = pre_beat_recall_candidate(self.beats, upcoming)
                if warm_up is not None:
                    self._begin(warm_up, SessionMode.PRE_BEAT_RECALL, events, now)
                    return
            self._begin(self._learn_queue.pop(0), SessionMode.LEARN, events, now)
            return

        self._finish(events)

    def _finish(self, events: list[SessionEvent]) -> None:
        self.beat = None
        self.machine = None
        self.cursor = None
        self._set_mode(SessionMode.SESSION_COMPLETE, events)
        events.append(SessionComplete(tuple(self.mastered_today),
                                      tuple(self.recalled_today)))

    def _begin(self, beat: Beat, mode: SessionMode, events: list[SessionEvent],
               now: float | None) -> None:
        recall: bool = mode is not SessionMode.LEARN
        settings: ModeSettings = self.settings.recall if recall else self.settings.learn
        checkpoint = None if recall else beat.checkpoint
        try:
            machine = ProgressionMachine(
                beat.sentences, settings, recall=recall,
                language=self.settings.language,
                lenient_words=self.settings.lenient_words,
                checkpoint=checkpoint)
        except ValueError as e:
            if checkpoint is None:
                raise
            logger.warning("Ignoring checkpoint for beat %s: %s", beat.id, e)
            beat.checkpoint = None
            machine = ProgressionMachine(
                beat.sentences, settings, language=self.settings.language,
                lenient_words=self.settings.lenient_words)

        self.beat = beat
        self.machine = machine
        self._set_mode(mode, events)
        events.append(PhaseChanged(beat.id, None, machine.phase.name))
        self._new_turn(now, new_words=True)

    def _new_turn(self, now: float | None, new_words: bool = False) -> None:
        """Start the next turn, ignoring transcript events for the pause window."""
        if now is None:
            now = self._clock()
        assert self.machine is not None
        if new_words or self.cursor is None:
            turn_id: int = self.cursor.turn_id + 1 if self.cursor else self._next_turn_id
            self.cursor = AlignmentCursor(
                self.machine.words, self.machine.sets, language=self.language,
                clock=self._clock, turn_id=turn_id)
            self.cursor.state.last_advance_at = now
        else:
            self.cursor.reset(now)
        self._next_turn_id = self.cursor.turn_id + 1
        self._ignore_until = now + self.settings.pause_window_ms / 1000
        if self.on_turn_reset is not None:
            self.on_turn_reset()

    def end_rest(self, now: float | None = None) -> list[SessionEvent]:
        """End a coffee break early (or on time) and continue."""
        events: list[SessionEvent] = []
        if self.mode is SessionMode.COFFEE_BREAK:
            self.rest_ends_at = None
            self._next_activity(events, now)
        return events

    # ------------------------------------------------------------------
    # Inputs

    def handle_transcript(
        self,
        transcript: str,
        is_final: bool,
        turn_id: int,
        now: float | None = None,
    ) -> list[SessionEvent]:
        """
        Align a transcript snapshot.

        Args:
            transcript: Cumulative text of the current utterance
            is_final: Whether the recognizer marked it final
            turn_id: Turn id the snapshot was produced for
            now: Current monotonic time

        Returns:
            Events raised (a TurnResolved and more if the turn completed)
        """
        if not self.is_practising:
            return []
        assert self.cursor is not None
        if now is None:
            now = self._clock()
        if now < self._ignore_until:
            logger.debug("Ignoring snapshot inside pause window")
            return []

        result: AdvanceResult = self.cursor.advance(transcript, is_final, turn_id, now)
        if result.completed:
            return self._complete_turn(now)
        return []

    def tick(self, now: float | None = None) -> list[SessionEvent]:
        """
        Periodic check, run every ``settings.hesitation.tick_ms``.

        Ends a coffee break once it is over and runs the hesitation monitor
        while practising.
        """
        if now is None:
            now = self._clock()

        if self.mode is SessionMode.COFFEE_BREAK:
            if self.rest_ends_at is not None and self._wall_clock() >= self.rest_ends_at:
                return self.end_rest(now)
            return []

        if not self.is_practising or now < self._ignore_until:
            return []
        assert self.cursor is not None

        check = check_hesitation(now, self.cursor, self.settings.hesitation)
        events: list[SessionEvent] = list(check.events)
        if check.completed:
            events.extend(self._complete_turn(now))
        return events

    def reveal_word(self, index: int) -> bool:
        """Reveal a hidden word the learner tapped on."""
        if self.cursor is None:
            return False
        return self.cursor.reveal_word(index)

    def save_checkpoint(self) -> bool:
        """
        Save where the learner is in the current beat, to resume later.

        Returns:
            True if a checkpoint was taken (only while learning a beat)
        """
        if self.mode is not SessionMode.LEARN or self.machine is None or self.beat is None:
            return False
        self.beat.checkpoint = self.machine.checkpoint()
        self._persist(self.beat, "checkpoint")
        logger.info("Checkpoint for beat %s at %s", self.beat.id, self.beat.checkpoint.phase)
        return True

    # ------------------------------------------------------------------
    # Turn outcomes

    def _persist(self, beat: Beat, reason: str) -> None:
        if self.dispatcher is not None:
            self.dispatcher.save_beat(beat, reason)

    def _complete_turn(self, now: float) -> list[SessionEvent]:
        assert self.cursor is not None and self.machine is not None and self.beat is not None
        turn_id: int = self.cursor.turn_id
        failed: set[int] = self.cursor.sets.failed_indices()
        resolution = self.machine.resolve_turn(failed)

        events: list[SessionEvent] = [TurnResolved(
            turn_id=turn_id,
            phase=resolution.phase.name,
            success=resolution.success,
            failed=tuple(resolution.failed),
            hidden_count=len(self.machine.sets.hidden),
            word_count=self.machine.sets.word_count,
        )]
        debug_log.log_turn(turn_id, resolution.phase.name, resolution.success,
                           resolution.failed, len(self.machine.sets.hidden),
                           self.machine.sets.word_count)

        if resolution.complete:
            if self.mode is SessionMode.LEARN:
                self._on_mastered(events, now)
            else:
                self._on_recalled(events, now)
            return events

        if resolution.phase_changed:
            assert resolution.next_phase is not None
            events.append(PhaseChanged(self.beat.id, resolution.phase.name,
                                       resolution.next_phase.name))
            if self.mode is SessionMode.LEARN:
                self.beat.checkpoint = None
                self._persist(self.beat, "phase")
            self._new_turn(now, new_words=True)
        else:
            self._new_turn(now)
        return events

    def _on_mastered(self, events: list[SessionEvent], now: float) -> None:
        assert self.beat is not None
        beat: Beat = self.beat
        wall_now: datetime = self._wall_clock()
        schedule_after_mastery(beat, wall_now, self.settings.recall_schedule)
        self._persist(beat, "mastery")
        self.mastered_today.append(beat.id)
        events.append(BeatMastered(beat.id, wall_now))

        if self._learn_queue:
            minutes: int = calculate_rest_minutes(self.settings.goal_date, wall_now.date())
            self.rest_ends_at = wall_now + timedelta(minutes=minutes)
            self.cursor = None
            self.machine = None
            self._set_mode(SessionMode.COFFEE_BREAK, events)
            events.append(RestStarted(minutes, self.rest_ends_at))
            return
        self._next_activity(events, now)

    def _on_recalled(self, events: list[SessionEvent], now: float) -> None:
        assert self.beat is not None
        beat: Beat = self.beat
        wall_now: datetime = self._wall_clock()
        next_recall: datetime | None = record_recall(
            beat, wall_now, self.settings.recall_schedule, self.settings.goal_date)
        self._persist(beat, "recall")
        self.recalled_today.append(beat.id)
        events.append(RecallCompleted(beat.id, beat.recall_session_number, next_recall))
        self._next_activity(events, now)
