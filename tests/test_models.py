# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for the beat and checkpoint data model.
"""

from datetime import datetime, timedelta

import pytest

from rehearse.models import Beat, Checkpoint

NOW = datetime(2025, 3, 1, 9, 0)


class TestBeatText:
    """Sentences and text of a beat."""

    def test_text_skips_repeats(self):
        """Duplicate sub-sentences appear once in the beat text."""
        beat = Beat("a", 0, ["One.", "One.", "Two."])
        assert beat.unique_sentences == ["One.", "Two."]
        assert beat.text == "One. Two."


class TestDueRecall:
    """Which scheduled recall is due."""

    def test_unmastered_never_due(self):
        """A beat that is not mastered has no recalls due."""
        beat = Beat("a", 0, ["One."], recall_10min_at=NOW - timedelta(hours=1))
        assert beat.due_recall_time(NOW) is None
        assert not beat.is_recall_due(NOW)

    def test_passed_time_is_due(self):
        """A passed, unhonoured recall time is due."""
        scheduled = NOW - timedelta(minutes=1)
        beat = Beat("a", 0, ["One."], is_mastered=True, recall_10min_at=scheduled)
        assert beat.due_recall_time(NOW) == scheduled

    def test_future_time_not_due(self):
        """Recall times in the future are not due yet."""
        beat = Beat("a", 0, ["One."], is_mastered=True,
                    recall_10min_at=NOW + timedelta(minutes=1))
        assert not beat.is_recall_due(NOW)

    def test_honoured_by_later_recall(self):
        """A recall after the scheduled time honours it."""
        scheduled = NOW - timedelta(hours=2)
        beat = Beat("a", 0, ["One."], is_mastered=True, recall_10min_at=scheduled,
                    last_recall_at=NOW - timedelta(hours=1))
        assert not beat.is_recall_due(NOW)

    def test_latest_passed_time_returned(self):
        """With several times passed, the latest one is reported."""
        beat = Beat("a", 0, ["One."], is_mastered=True,
                    recall_10min_at=NOW - timedelta(hours=12),
                    recall_evening_at=NOW - timedelta(hours=2),
                    recall_morning_at=NOW + timedelta(hours=1))
        assert beat.due_recall_time(NOW) == NOW - timedelta(hours=2)
        assert beat.recall_times()[0] == NOW - timedelta(hours=12)


class TestSerialization:
    """Converting beats to and from plain dictionaries."""

    def test_round_trip(self):
        """Every field survives to_dict/from_dict."""
        beat = Beat(
            "intro", 3, ["Hello there.", "General Kenobi."],
            is_mastered=True,
            mastered_at=NOW,
            last_recall_at=NOW + timedelta(hours=1),
            recall_10min_at=NOW + timedelta(minutes=10),
            recall_evening_at=None,
            recall_morning_at=NOW + timedelta(days=1),
            next_scheduled_recall_at=NOW + timedelta(days=3),
            recall_session_number=2,
            checkpoint=Checkpoint("sentence_2_fading", [3, 1]),
        )
        data = beat.to_dict()
        assert data["mastered_at"] == NOW.isoformat()
        assert data["checkpoint"] == {"phase": "sentence_2_fading", "hidden_indices": [3, 1]}
        assert Beat.from_dict(data) == beat

    def test_defaults(self):
        """Missing fields get defaults; id and order fall back to the position."""
        beat = Beat.from_dict({"sentences": ["Only this."]}, default_order=4)
        assert beat.id == "4"
        assert beat.order == 4
        assert not beat.is_mastered
        assert beat.checkpoint is None
        assert beat.recall_session_number == 0

    def test_no_sentences(self):
        """A beat without sentences is rejected."""
        with pytest.raises(ValueError):
            Beat.from_dict({"id": "x", "sentences": []})
        with pytest.raises(ValueError):
            Beat.from_dict({"id": "x", "sentences": ["", "   "]})

    def test_bad_datetime(self):
        """A malformed timestamp is rejected."""
        with pytest.raises(ValueError):
            Beat.from_dict({"id": "x", "sentences": ["One."], "mastered_at": "yesterday"})

    def test_checkpoint_requires_phase(self):
        """A checkpoint without a phase is rejected."""
        with pytest.raises(ValueError):
            Checkpoint.from_dict({"hidden_indices": [1]})
