# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Event records emitted by a practice session for the presentation layer.

Events are plain immutable records. The session returns them from every call
that changes state; any delay for animation is up to whoever renders them.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class WordHesitated:
    """The learner paused too long on a hidden word."""
    word_index: int
    turn_id: int


@dataclass(frozen=True)
class WordRescued:
    """The cursor was moved past a stuck word so the session cannot stall."""
    word_index: int
    turn_id: int


@dataclass(frozen=True)
class TurnResolved:
    """A read-through reached the end of the text and its outcome was applied."""
    turn_id: int
    phase: str
    success: bool
    failed: tuple[int, ...] = ()
    hidden_count: int = 0
    word_count: int = 0


@dataclass(frozen=True)
class PhaseChanged:
    """The active practice phase (and so the practice text) changed."""
    beat_id: str
    previous: str | None
    phase: str


@dataclass(frozen=True)
class ModeChanged:
    """The session moved to another mode (learn, recall, rest, ...)."""
    previous: str | None
    mode: str
    beat_id: str | None = None


@dataclass(frozen=True)
class BeatMastered:
    """A beat was learned end to end."""
    beat_id: str
    mastered_at: datetime


@dataclass(frozen=True)
class RecallCompleted:
    """A mastered beat was recalled successfully."""
    beat_id: str
    session_number: int
    next_recall_at: datetime | None


@dataclass(frozen=True)
class RestStarted:
    """A timed break between beats started."""
    minutes: int
    ends_at: datetime


@dataclass(frozen=True)
class SessionComplete:
    """Nothing else is planned for today."""
    mastered_today: tuple[str, ...] = field(default_factory=tuple)
    recalled_today: tuple[str, ...] = field(default_factory=tuple)


SessionEvent = (
    WordHesitated | WordRescued | TurnResolved | PhaseChanged | ModeChanged
    | BeatMastered | RecallCompleted | RestStarted | SessionComplete
)
