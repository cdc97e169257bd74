# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Hesitation and timeout monitor.

A pure check run on a periodic tick. It measures the time since the cursor
last advanced and:

- marks the current word hesitated once the learner has stalled on a hidden
  word for too long (sentence-initial words are exempt, pausing between
  sentences is normal speech);
- moves the cursor past the current word once the stall gets longer still,
  so a session never hangs on one word. Names stall the recognizer as much
  as the learner, so they get a shorter rescue window.

The caller owns the timer; this module never sleeps or schedules anything.
"""

import logging
from dataclasses import dataclass

from . import debug_log
from .events import WordHesitated, WordRescued
from .tracker import AlignmentCursor

logger = logging.getLogger(__name__)


@dataclass
class HesitationSettings:
    """Timing thresholds for the hesitation monitor, in milliseconds."""
    tick_ms: int = 500
    hesitation_ms: int = 3000
    rescue_ms: int = 6000
    lenient_rescue_ms: int = 3000


@dataclass
class HesitationCheck:
    """What a single tick did."""
    events: list[WordHesitated | WordRescued]
    completed: bool = False  # The rescue finished the turn


def check_hesitation(
    now: float,
    cursor: AlignmentCursor,
    settings: HesitationSettings,
) -> HesitationCheck:
    """
    Check whether the learner is stuck on the current word.

    Args:
        now: Current monotonic time in seconds (same clock as the cursor)
        cursor: The live alignment cursor
        settings: Hesitation thresholds

    Returns:
        HesitationCheck with the events raised on this tick
    """
    check = HesitationCheck(events=[])
    if cursor.is_complete:
        return check

    index: int = cursor.current_word_index
    word = cursor.words[index]
    sets = cursor.sets
    elapsed_ms: float = (now - cursor.state.last_advance_at) * 1000

    if (elapsed_ms > settings.hesitation_ms
            and index in sets.hidden
            and not word.is_sentence_start
            and index not in sets.hesitated):
        sets.hesitated.add(index)
        check.events.append(WordHesitated(index, cursor.turn_id))
        debug_log.log_word_event(index, word.text, "hesitate")
        logger.debug("Hesitation on word %d '%s' after %.0fms",
                     index, word.text, elapsed_ms)

    # Silence before the first word is not a stall
    if not cursor.state.started:
        return check

    rescue_ms: int = settings.lenient_rescue_ms if word.is_lenient else settings.rescue_ms
    if elapsed_ms > rescue_ms:
        logger.debug("Rescuing word %d '%s' after %.0fms", index, word.text, elapsed_ms)
        check.completed = cursor.force_advance(now)
        check.events.append(WordRescued(index, cursor.turn_id))

    return check
