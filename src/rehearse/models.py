# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Data model for beats (practice units) and their mid-session checkpoints.

Beats serialise to plain dictionaries of YAML-friendly values; datetimes are
stored as ISO 8601 strings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .script_parser import unique_sentences


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class Checkpoint:
    """Where a beat was left part way through learning."""
    phase: str  # Phase name, e.g. "sentence_2_fading"
    hidden_indices: list[int] = field(default_factory=list)  # In hiding order

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return {"phase": self.phase, "hidden_indices": list(self.hidden_indices)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        """Create from a plain dictionary."""
        if "phase" not in data:
            raise ValueError("Checkpoint is missing 'phase'")
        return cls(
            phase=str(data["phase"]),
            hidden_indices=[int(i) for i in data.get("hidden_indices") or []],
        )


@dataclass
class Beat:
    """A contiguous slice of the text, made of one to three sub-sentences."""
    id: str
    order: int
    sentences: list[str]
    is_mastered: bool = False
    mastered_at: datetime | None = None
    last_recall_at: datetime | None = None
    # Near-term recalls scheduled at mastery
    recall_10min_at: datetime | None = None
    recall_evening_at: datetime | None = None
    recall_morning_at: datetime | None = None
    # Next multi-day recall
    next_scheduled_recall_at: datetime | None = None
    recall_session_number: int = 0
    checkpoint: Checkpoint | None = None

    @property
    def unique_sentences(self) -> list[str]:
        """Sub-sentences with blanks and repeats removed."""
        return unique_sentences(self.sentences)

    @property
    def text(self) -> str:
        """The full text of the beat."""
        return " ".join(self.unique_sentences)

    def recall_times(self) -> list[datetime]:
        """All scheduled recall times, earliest first."""
        times = [
            self.recall_10min_at,
            self.recall_evening_at,
            self.recall_morning_at,
            self.next_scheduled_recall_at,
        ]
        return sorted(t for t in times if t is not None)

    def due_recall_time(self, now: datetime) -> datetime | None:
        """
        Get the latest scheduled recall time that has passed but not been honoured.

        A recall time is honoured once ``last_recall_at`` is at or after it.
        """
        if not self.is_mastered:
            return None
        due: datetime | None = None
        for scheduled in self.recall_times():
            if scheduled > now:
                break
            if self.last_recall_at is None or self.last_recall_at < scheduled:
                due = scheduled
        return due

    def is_recall_due(self, now: datetime) -> bool:
        """Check whether the beat should be recalled now."""
        return self.due_recall_time(now) is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return {
            "id": self.id,
            "order": self.order,
            "sentences": list(self.sentences),
            "is_mastered": self.is_mastered,
            "mastered_at": _format_datetime(self.mastered_at),
            "last_recall_at": _format_datetime(self.last_recall_at),
            "recall_10min_at": _format_datetime(self.recall_10min_at),
            "recall_evening_at": _format_datetime(self.recall_evening_at),
            "recall_morning_at": _format_datetime(self.recall_morning_at),
            "next_scheduled_recall_at": _format_datetime(self.next_scheduled_recall_at),
            "recall_session_number": self.recall_session_number,
            "checkpoint": self.checkpoint.to_dict() if self.checkpoint else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_order: int = 0) -> "Beat":
        """
        Create from a plain dictionary.

        Raises:
            ValueError: If the beat has no sentences or a field is malformed
        """
        sentences: list[str] = [str(s) for s in data.get("sentences") or [] if s]
        if not unique_sentences(sentences):
            raise ValueError(f"Beat {data.get('id')!r} has no sentences")
        checkpoint_data = data.get("checkpoint")
        return cls(
            id=str(data.get("id", default_order)),
            order=int(data.get("order", default_order)),
            sentences=sentences,
            is_mastered=bool(data.get("is_mastered", False)),
            mastered_at=_parse_datetime(data.get("mastered_at")),
            last_recall_at=_parse_datetime(data.get("last_recall_at")),
            recall_10min_at=_parse_datetime(data.get("recall_10min_at")),
            recall_evening_at=_parse_datetime(data.get("recall_evening_at")),
            recall_morning_at=_parse_datetime(data.get("recall_morning_at")),
            next_scheduled_recall_at=_parse_datetime(data.get("next_scheduled_recall_at")),
            recall_session_number=int(data.get("recall_session_number") or 0),
            checkpoint=Checkpoint.from_dict(checkpoint_data) if checkpoint_data else None,
        )
