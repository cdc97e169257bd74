# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for session planning.
"""

from datetime import date, datetime, timedelta

import pytest

from rehearse.models import Beat
from rehearse.planner import (
    REST_MINUTES_RELAXED,
    REST_MINUTES_SOON,
    REST_MINUTES_URGENT,
    calculate_beats_per_day,
    calculate_rest_minutes,
    due_recalls,
    plan_session,
    pre_beat_recall_candidate,
    unmastered_beats,
)

TODAY = date(2025, 3, 1)
NOW = datetime(2025, 3, 1, 9, 0)


def mastered(beat_id, order, mastered_at, due=False):
    """A mastered beat, optionally with a recall due at NOW."""
    beat = Beat(beat_id, order, [f"Beat {beat_id}."], is_mastered=True,
                mastered_at=mastered_at)
    if due:
        beat.recall_10min_at = NOW - timedelta(minutes=5)
    return beat


class TestBeatsPerDay:
    """calculate_beats_per_day."""

    @pytest.mark.parametrize("unmastered,goal,expected", [
        (0, None, 0),
        (5, None, 1),
        (5, TODAY, 5),
        (5, TODAY - timedelta(days=1), 5),
        (5, TODAY + timedelta(days=2), 3),
        (4, TODAY + timedelta(days=2), 2),
        (2, TODAY + timedelta(days=30), 1),
    ])
    def test_beats_per_day(self, unmastered, goal, expected):
        """Remaining beats are spread over the days left."""
        assert calculate_beats_per_day(unmastered, goal, TODAY) == expected


class TestRestMinutes:
    """calculate_rest_minutes."""

    @pytest.mark.parametrize("goal,expected", [
        (None, REST_MINUTES_RELAXED),
        (TODAY, REST_MINUTES_URGENT),
        (TODAY + timedelta(days=1), REST_MINUTES_URGENT),
        (TODAY + timedelta(days=3), REST_MINUTES_SOON),
        (TODAY + timedelta(days=4), REST_MINUTES_RELAXED),
    ])
    def test_rest_minutes(self, goal, expected):
        """Breaks get shorter as the goal date nears."""
        assert calculate_rest_minutes(goal, TODAY) == expected


class TestSelection:
    """Choosing beats to recall and learn."""

    def test_due_recalls_in_text_order(self):
        """Only due beats are recalled, in the order of the text."""
        beats = [
            mastered("c", 2, NOW - timedelta(days=1), due=True),
            mastered("a", 0, NOW - timedelta(days=2), due=True),
            mastered("b", 1, NOW - timedelta(days=2)),
            Beat("d", 3, ["Not yet."]),
        ]
        assert [b.id for b in due_recalls(beats, NOW)] == ["a", "c"]

    def test_unmastered_in_text_order(self):
        """Beats still to learn come in text order."""
        beats = [Beat("b", 1, ["B."]), mastered("a", 0, NOW), Beat("c", 0, ["C."])]
        assert [b.id for b in unmastered_beats(beats)] == ["c", "b"]

    def test_pre_beat_recall_candidate(self):
        """The most recently mastered earlier beat is the warm-up."""
        a = mastered("a", 0, NOW - timedelta(days=3))
        b = mastered("b", 1, NOW - timedelta(days=1))
        c = Beat("c", 2, ["C."])
        assert pre_beat_recall_candidate([a, b, c], c) is b
        assert pre_beat_recall_candidate([a, b, c], a) is None

    def test_pre_beat_recall_ignores_later_beats(self):
        """Beats after the new one are not used as warm-ups."""
        later = mastered("z", 5, NOW)
        new = Beat("n", 1, ["N."])
        assert pre_beat_recall_candidate([later, new], new) is None


class TestPlanSession:
    """plan_session."""

    def test_recalls_then_one_new_beat(self):
        """With no goal, due recalls plus one new beat are planned."""
        beats = [
            mastered("a", 0, NOW - timedelta(days=1), due=True),
            Beat("b", 1, ["B."]),
            Beat("c", 2, ["C."]),
        ]
        plan = plan_session(beats, NOW)
        assert [b.id for b in plan.recalls] == ["a"]
        assert [b.id for b in plan.learn] == ["b"]
        assert plan.beats_per_day == 1
        assert not plan.is_empty

    def test_fixed_beats_per_day(self):
        """An explicit beats_per_day overrides the goal date."""
        beats = [Beat(str(i), i, [f"Beat {i}."]) for i in range(4)]
        plan = plan_session(beats, NOW, goal_date=TODAY, beats_per_day=2)
        assert [b.id for b in plan.learn] == ["0", "1"]

    def test_goal_date_sets_pace(self):
        """A goal date spreads the remaining beats."""
        beats = [Beat(str(i), i, [f"Beat {i}."]) for i in range(4)]
        plan = plan_session(beats, NOW, goal_date=TODAY + timedelta(days=2))
        assert len(plan.learn) == 2

    def test_nothing_to_do(self):
        """Everything mastered and nothing due gives an empty plan."""
        plan = plan_session([mastered("a", 0, NOW)], NOW)
        assert plan.is_empty
