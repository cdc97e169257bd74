# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Spaced recall scheduling.

Mastering a beat schedules near-term recalls: a few minutes later, the same
evening and the next morning. Each successful recall after that advances the
beat's session counter and schedules the next one from a table of day
intervals. When a goal date is closer than the rest of the table allows,
intervals shrink proportionally so recalls never land after the goal date.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from .models import Beat

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_DAYS: tuple[int, ...] = (0, 0, 2, 3, 5, 7, 7, 7)

# Sessions below this number are covered by the near-term recalls
FIRST_SCHEDULED_SESSION: int = 2

MIN_INTERVAL_DAYS: int = 1


@dataclass
class RecallSettings:
    """Timing settings for recall scheduling."""
    short_interval_minutes: int = 10
    evening_hour: int = 20
    morning_hour: int = 8
    interval_days: Sequence[int] = field(default_factory=lambda: DEFAULT_INTERVAL_DAYS)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def calculate_next_recall_date(
    session_number: int,
    now: datetime,
    goal_date: date | None = None,
    interval_days: Sequence[int] = DEFAULT_INTERVAL_DAYS,
) -> datetime | None:
    """
    Calculate when a beat should next be recalled.

    Args:
        session_number: Successful recalls completed since mastery
        now: Current time
        goal_date: Date the text must be known by, if any
        interval_days: Day interval for each session number; the last entry
            repeats for later sessions

    Returns:
        The next recall time, or None if the session number is still covered
        by the near-term recalls
    """
    if session_number < FIRST_SCHEDULED_SESSION or not interval_days:
        return None

    index: int = min(session_number, len(interval_days) - 1)
    interval: int = interval_days[index]
    remaining_total: int = sum(interval_days[index:])

    if goal_date is not None:
        days_remaining: int = (goal_date - now.date()).days
        if days_remaining < remaining_total:
            factor: float = (
                min(1.0, max(0, days_remaining) / remaining_total) if remaining_total else 0.0)
            compressed: int = max(MIN_INTERVAL_DAYS, _round_half_up(interval * factor))
            logger.debug("Compressed recall interval %d -> %d days (%d days to goal)",
                         interval, compressed, days_remaining)
            next_recall: datetime = now + timedelta(days=compressed)
            if next_recall.date() > goal_date:
                next_recall = datetime.combine(goal_date, now.time(), now.tzinfo)
            return next_recall

    return now + timedelta(days=max(MIN_INTERVAL_DAYS, interval))


def schedule_after_mastery(beat: Beat, now: datetime, settings: RecallSettings) -> None:
    """Mark a beat mastered and schedule its near-term recalls."""
    beat.is_mastered = True
    beat.mastered_at = now
    beat.checkpoint = None
    beat.recall_session_number = 0
    beat.next_scheduled_recall_at = None
    beat.recall_10min_at = now + timedelta(minutes=settings.short_interval_minutes)

    evening: datetime = datetime.combine(
        now.date(), time(hour=settings.evening_hour), now.tzinfo)
    beat.recall_evening_at = evening if evening > beat.recall_10min_at else None

    beat.recall_morning_at = datetime.combine(
        now.date() + timedelta(days=1), time(hour=settings.morning_hour), now.tzinfo)
    logger.info("Beat %s mastered; recalls at %s, %s, %s", beat.id,
                beat.recall_10min_at, beat.recall_evening_at, beat.recall_morning_at)


def record_recall(
    beat: Beat,
    now: datetime,
    settings: RecallSettings,
    goal_date: date | None = None,
) -> datetime | None:
    """
    Record a successful recall and schedule the next one.

    A recall that was not due (e.g. a warm-up before a new beat) is recorded
    but does not advance the session counter.

    Returns:
        The next multi-day recall time, if one was scheduled
    """
    was_due: bool = beat.is_recall_due(now)
    beat.last_recall_at = now
    if not was_due:
        return beat.next_scheduled_recall_at

    beat.recall_session_number += 1
    next_recall: datetime | None = calculate_next_recall_date(
        beat.recall_session_number, now, goal_date, settings.interval_days)
    if next_recall is not None:
        beat.next_scheduled_recall_at = next_recall
    logger.info("Beat %s recalled (session %d); next recall %s", beat.id,
                beat.recall_session_number, beat.next_scheduled_recall_at)
    return beat.next_scheduled_recall_at
