# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the hesitation monitor, driven with explicit timestamps.
"""

from rehearse.events import WordHesitated, WordRescued
from rehearse.hesitation import HesitationSettings, check_hesitation
from rehearse.script_parser import parse_script
from rehearse.tracker import AlignmentCursor
from rehearse.word_sets import WordIndexSets

SETTINGS = HesitationSettings(tick_ms=500, hesitation_ms=3000, rescue_ms=6000,
                              lenient_rescue_ms=3000)


def make_cursor(text, hidden=()):
    """Build a cursor over a text with some words hidden."""
    words = parse_script(text)
    sets = WordIndexSets(len(words))
    for index in hidden:
        sets.hide(index)
    return AlignmentCursor(words, sets, clock=lambda: 0.0)


class TestHesitation:
    """Marking stalled hidden words as hesitated."""

    def test_hesitation_then_rescue(self):
        """A stall on a hidden word is flagged, then the cursor is moved on."""
        cursor = make_cursor("the quick brown fox jumps", hidden={2})
        cursor.advance("the quick", False, cursor.turn_id, now=1.0)

        assert check_hesitation(3.5, cursor, SETTINGS).events == []

        check = check_hesitation(4.1, cursor, SETTINGS)
        assert check.events == [WordHesitated(2, cursor.turn_id)]
        assert cursor.sets.hesitated == {2}

        # Not flagged twice
        assert check_hesitation(5.0, cursor, SETTINGS).events == []

        check = check_hesitation(7.1, cursor, SETTINGS)
        assert check.events == [WordRescued(2, cursor.turn_id)]
        assert not check.completed
        assert 2 in cursor.sets.spoken
        assert cursor.current_word_index == 3
        assert cursor.sets.failed_indices() == {2}

    def test_rescue_restarts_the_clock(self):
        """After a rescue the next word gets its own full window."""
        cursor = make_cursor("the quick brown fox jumps", hidden={2, 3})
        cursor.advance("the quick", False, cursor.turn_id, now=1.0)
        check_hesitation(7.1, cursor, SETTINGS)
        assert cursor.current_word_index == 3

        assert check_hesitation(8.0, cursor, SETTINGS).events == []
        assert 3 not in cursor.sets.hesitated

    def test_visible_word_not_hesitated(self):
        """Stalling on a visible word is not a hesitation."""
        cursor = make_cursor("the quick brown fox jumps")
        cursor.advance("the quick", False, cursor.turn_id, now=1.0)
        assert check_hesitation(5.0, cursor, SETTINGS).events == []
        assert cursor.sets.hesitated == set()

    def test_sentence_start_exempt(self):
        """Pausing before a new sentence is not a hesitation."""
        cursor = make_cursor("Hello there. Good morning everyone", hidden={2})
        cursor.advance("hello there", False, cursor.turn_id, now=1.0)
        assert cursor.current_word_index == 2

        assert check_hesitation(5.0, cursor, SETTINGS).events == []
        check = check_hesitation(7.5, cursor, SETTINGS)
        assert check.events == [WordRescued(2, cursor.turn_id)]
        assert cursor.sets.hesitated == set()

    def test_no_rescue_before_turn_starts(self):
        """Silence before the first word never moves the cursor."""
        cursor = make_cursor("the quick brown fox")
        check = check_hesitation(60.0, cursor, SETTINGS)
        assert check.events == []
        assert cursor.current_word_index == 0

    def test_lenient_word_rescued_sooner(self):
        """Names get the shorter rescue window."""
        cursor = make_cursor("we met Anna today")
        cursor.advance("we met", False, cursor.turn_id, now=1.0)
        check = check_hesitation(4.1, cursor, SETTINGS)
        assert check.events == [WordRescued(2, cursor.turn_id)]
        assert cursor.current_word_index == 3

    def test_rescue_can_complete_turn(self):
        """Rescuing the last word completes the turn."""
        cursor = make_cursor("the quick brown")
        cursor.advance("the quick", False, cursor.turn_id, now=1.0)
        check = check_hesitation(7.5, cursor, SETTINGS)
        assert check.completed
        assert cursor.is_complete

    def test_complete_cursor_is_left_alone(self):
        """Nothing happens once the turn is complete."""
        cursor = make_cursor("the quick")
        cursor.advance("the quick", True, cursor.turn_id, now=1.0)
        check = check_hesitation(30.0, cursor, SETTINGS)
        assert check.events == []
        assert not check.completed
