# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for beat stores and the fire-and-forget persistence dispatcher.
"""

import logging
import threading
from datetime import datetime

import pytest
import yaml

from rehearse.models import Beat, Checkpoint
from rehearse.persistence import (
    BeatRecord,
    BeatStore,
    MemoryBeatStore,
    PersistenceDispatcher,
    YamlBeatStore,
)

BEATS_YAML = {
    "beats": [
        {"id": "intro", "order": 0, "sentences": ["Hello there.", "Welcome home."]},
        {"id": "middle", "order": 1, "sentences": ["The middle part."]},
    ]
}


@pytest.fixture
def beats_file(tmp_path):
    """A beats file with two beats."""
    path = tmp_path / "beats.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(BEATS_YAML, f)
    return path


class TestBeatRecord:
    """Snapshots of beat progress."""

    def test_from_beat_excludes_text(self):
        """Records carry progress fields, not the text itself."""
        beat = Beat("intro", 0, ["Hello."], checkpoint=Checkpoint("beat_fading", [0]))
        record = BeatRecord.from_beat(beat, "checkpoint")
        assert record.beat_id == "intro"
        assert record.reason == "checkpoint"
        assert "sentences" not in record.fields
        assert "id" not in record.fields
        assert record.fields["checkpoint"] == {"phase": "beat_fading", "hidden_indices": [0]}

    def test_snapshot_is_independent(self):
        """Later changes to the beat do not alter a taken record."""
        beat = Beat("intro", 0, ["Hello."])
        record = BeatRecord.from_beat(beat, "phase")
        beat.is_mastered = True
        assert record.fields["is_mastered"] is False


class TestYamlBeatStore:
    """Beats kept in a YAML file."""

    def test_load_beats(self, beats_file):
        """Beats are loaded with their sentences and order."""
        beats = YamlBeatStore(beats_file).load_beats()
        assert [b.id for b in beats] == ["intro", "middle"]
        assert beats[0].sentences == ["Hello there.", "Welcome home."]
        assert not beats[0].is_mastered

    def test_save_updates_beat(self, beats_file):
        """Saving a record writes its fields back to the matching beat."""
        store = YamlBeatStore(beats_file)
        beat = store.load_beats()[1]
        beat.is_mastered = True
        beat.mastered_at = datetime(2025, 3, 1, 9, 0)

        assert store.save(BeatRecord.from_beat(beat, "mastery"))

        reloaded = YamlBeatStore(beats_file).load_beats()
        assert reloaded[1].is_mastered
        assert reloaded[1].mastered_at == datetime(2025, 3, 1, 9, 0)
        assert reloaded[1].sentences == ["The middle part."]
        assert not reloaded[0].is_mastered

    def test_save_unknown_beat(self, beats_file):
        """A record for a beat not in the file is not written."""
        store = YamlBeatStore(beats_file)
        assert not store.save(BeatRecord("missing", "mastery", {"is_mastered": True}))

    def test_save_to_missing_file_logs_error(self, tmp_path, caplog):
        """Write failures are logged and reported, never raised."""
        store = YamlBeatStore(tmp_path / "gone.yaml")
        with caplog.at_level(logging.ERROR):
            assert not store.save(BeatRecord("intro", "mastery", {}))
        assert "Could not save mastery" in caplog.text

    def test_not_a_beats_file(self, tmp_path):
        """A file without a beats list is rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            YamlBeatStore(path).load_beats()

    def test_empty_file(self, tmp_path):
        """An empty file has no beats."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert YamlBeatStore(path).load_beats() == []


class FailingStore(BeatStore):
    """A store whose writes always raise."""

    def load_beats(self):
        return []

    def save(self, record):
        raise RuntimeError("disk on fire")


class SlowStore(MemoryBeatStore):
    """A memory store that blocks until released."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def save(self, record):
        self.release.wait(timeout=5.0)
        return super().save(record)


class TestPersistenceDispatcher:
    """Background writing of records."""

    def test_records_written_in_order(self):
        """Records reach the store in submission order."""
        store = MemoryBeatStore()
        dispatcher = PersistenceDispatcher(store)
        beat = Beat("intro", 0, ["Hello."])
        futures = [dispatcher.save_beat(beat, reason)
                   for reason in ("phase", "checkpoint", "mastery")]
        dispatcher.shutdown(wait=True)

        assert all(f.result() for f in futures)
        assert [r.reason for r in store.records] == ["phase", "checkpoint", "mastery"]

    def test_submit_does_not_wait(self):
        """Submitting returns before the write finishes."""
        store = SlowStore()
        dispatcher = PersistenceDispatcher(store)
        future = dispatcher.submit(BeatRecord("intro", "mastery"))
        assert not future.done()
        store.release.set()
        assert future.result(timeout=5.0)
        dispatcher.shutdown()

    def test_store_exception_logged(self, caplog):
        """An exception in the store is logged, not raised to the caller."""
        dispatcher = PersistenceDispatcher(FailingStore())
        with caplog.at_level(logging.ERROR):
            future = dispatcher.submit(BeatRecord("intro", "mastery"))
            dispatcher.shutdown(wait=True)
        assert isinstance(future.exception(), RuntimeError)
        assert "Persistence write raised" in caplog.text
