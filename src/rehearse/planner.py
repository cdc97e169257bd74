# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Session planning: what to recall, what to learn and how long to rest.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from .models import Beat

# Rest between beats, by days left until the goal date
REST_MINUTES_URGENT: int = 5  # Goal is today or tomorrow
REST_MINUTES_SOON: int = 10  # Goal within three days
REST_MINUTES_RELAXED: int = 15


@dataclass
class SessionPlan:
    """Beats to work on in one sitting, in order."""
    recalls: list[Beat] = field(default_factory=list)
    learn: list[Beat] = field(default_factory=list)
    beats_per_day: int = 1

    @property
    def is_empty(self) -> bool:
        """Whether there is nothing to do."""
        return not self.recalls and not self.learn


def days_until(goal_date: date | None, today: date) -> int | None:
    """Whole days from today until the goal date (negative once it has passed)."""
    if goal_date is None:
        return None
    return (goal_date - today).days


def due_recalls(beats: Sequence[Beat], now: datetime) -> list[Beat]:
    """Mastered beats with a recall due, in text order."""
    return sorted((b for b in beats if b.is_recall_due(now)), key=lambda b: b.order)


def unmastered_beats(beats: Sequence[Beat]) -> list[Beat]:
    """Beats still to learn, in text order."""
    return sorted((b for b in beats if not b.is_mastered), key=lambda b: b.order)


def calculate_beats_per_day(unmastered: int, goal_date: date | None, today: date) -> int:
    """
    Number of new beats to learn today.

    Spreads the remaining beats evenly over the days left. With no goal date
    one beat a day is learned; on or after the goal date, everything left.
    """
    if unmastered <= 0:
        return 0
    days_left: int | None = days_until(goal_date, today)
    if days_left is None:
        return 1
    if days_left <= 0:
        return unmastered
    return max(1, math.ceil(unmastered / days_left))


def calculate_rest_minutes(goal_date: date | None, today: date) -> int:
    """Length of the break between beats; shorter as the goal date nears."""
    days_left: int | None = days_until(goal_date, today)
    if days_left is None:
        return REST_MINUTES_RELAXED
    if days_left <= 1:
        return REST_MINUTES_URGENT
    if days_left <= 3:
        return REST_MINUTES_SOON
    return REST_MINUTES_RELAXED


def pre_beat_recall_candidate(beats: Sequence[Beat], beat: Beat) -> Beat | None:
    """The most recently mastered beat that comes before ``beat`` in the text."""
    earlier: list[Beat] = [
        b for b in beats
        if b.is_mastered and b.order < beat.order and b.id != beat.id
    ]
    if not earlier:
        return None
    return max(earlier, key=lambda b: (b.mastered_at or datetime.min, b.order))


def plan_session(
    beats: Sequence[Beat],
    now: datetime,
    goal_date: date | None = None,
    beats_per_day: int | None = None,
) -> SessionPlan:
    """
    Plan a sitting: due recalls first, then up to ``beats_per_day`` new beats.

    Args:
        beats: Every beat of the text
        now: Current time
        goal_date: Date the text must be known by, if any
        beats_per_day: Fixed number of new beats per day, or None to derive
            it from the goal date
    """
    to_learn: list[Beat] = unmastered_beats(beats)
    if beats_per_day is None:
        beats_per_day = calculate_beats_per_day(len(to_learn), goal_date, now.date())
    return SessionPlan(
        recalls=due_recalls(beats, now),
        learn=to_learn[:max(0, beats_per_day)],
        beats_per_day=beats_per_day,
    )
