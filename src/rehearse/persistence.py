# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Persistence of beat progress.

A session hands plain records to a dispatcher after each phase change,
checkpoint, mastery and recall. The dispatcher writes them on a background
thread and never makes the session wait; failures are logged and the
in-memory session stays authoritative.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import Beat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeatRecord:
    """A snapshot of one beat's progress to be written."""
    beat_id: str
    reason: str  # "checkpoint", "phase", "mastery" or "recall"
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_beat(cls, beat: Beat, reason: str) -> "BeatRecord":
        """Snapshot the progress fields of a beat."""
        data: dict[str, Any] = beat.to_dict()
        for key in ("id", "order", "sentences"):
            data.pop(key)
        return cls(beat_id=beat.id, reason=reason, fields=data)


class BeatStore(ABC):
    """Where beats are loaded from and progress is written to."""

    @abstractmethod
    def load_beats(self) -> list[Beat]:
        """Load every beat of the text."""

    @abstractmethod
    def save(self, record: BeatRecord) -> bool:
        """
        Write a progress record.

        Returns:
            True if the write succeeded
        """


class MemoryBeatStore(BeatStore):
    """Keeps records in memory; used when no file is configured and in tests."""

    def __init__(self, beats: list[Beat] | None = None) -> None:
        self.beats: list[Beat] = list(beats or [])
        self.records: list[BeatRecord] = []
        self._lock = threading.Lock()

    def load_beats(self) -> list[Beat]:
        return list(self.beats)

    def save(self, record: BeatRecord) -> bool:
        with self._lock:
            self.records.append(record)
        return True


class YamlBeatStore(BeatStore):
    """
    Beats stored in a YAML file:

        beats:
          - id: intro
            order: 0
            sentences: ["First sentence.", "Second sentence."]
    """

    path: Path

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        with open(self.path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data is None:
            return {"beats": []}
        if not isinstance(data, dict) or not isinstance(data.get("beats", []), list):
            raise ValueError(f"{self.path} must contain a 'beats' list")
        return data

    def load_beats(self) -> list[Beat]:
        """
        Load beats from the file.

        Raises:
            OSError: If the file cannot be read
            yaml.YAMLError: If the file is not valid YAML
            ValueError: If the file is not a beats file
        """
        with self._lock:
            data = self._read()
        return [Beat.from_dict(item, default_order=i)
                for i, item in enumerate(data.get("beats") or [])]

    def save(self, record: BeatRecord) -> bool:
        with self._lock:
            try:
                data = self._read()
                for item in data.get("beats") or []:
                    if str(item.get("id")) == record.beat_id:
                        item.update(record.fields)
                        break
                else:
                    logger.error("Beat %s not found in %s; %s not saved",
                                 record.beat_id, self.path, record.reason)
                    return False
                with open(self.path, 'w', encoding='utf-8') as f:
                    yaml.safe_dump(data, f, default_flow_style=False,
                                   sort_keys=False, allow_unicode=True)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error("Could not save %s for beat %s to %s: %s",
                             record.reason, record.beat_id, self.path, e)
                return False
        logger.debug("Saved %s for beat %s", record.reason, record.beat_id)
        return True


class PersistenceDispatcher:
    """
    Fire-and-forget writer.

    Records are written in submission order on a single worker thread.
    """

    store: BeatStore

    def __init__(self, store: BeatStore) -> None:
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="BeatStore")

    def submit(self, record: BeatRecord) -> Future[bool]:
        """Queue a record for writing and return immediately."""
        future: Future[bool] = self._executor.submit(self.store.save, record)
        future.add_done_callback(self._log_failure)
        return future

    def save_beat(self, beat: Beat, reason: str) -> Future[bool]:
        """Snapshot a beat now and queue it for writing."""
        return self.submit(BeatRecord.from_beat(beat, reason))

    @staticmethod
    def _log_failure(future: Future[bool]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Persistence write raised: %s", exc, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker, by default after pending writes finish."""
        self._executor.shutdown(wait=wait)
