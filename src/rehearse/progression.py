# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Practice progression state machine.

A beat is learned in segments. Each segment is read with the text fully
visible until the learner has enough clean repetitions (learning), then
words are hidden turn by turn until the learner can say it with nothing on
screen (fading). The segments depend on how many distinct sub-sentences the
beat has:

    1 sentence:  sentence_1 -> beat
    2 sentences: sentence_1 -> sentence_2 -> beat
    3 sentences: sentence_1 -> sentence_2 -> sentences_1_2 -> sentence_3 -> beat

Finishing the beat segment masters the beat. Recall of a mastered beat runs
the beat segment on its own, starting in fading with larger hide steps.

Nothing here can fail a session: a bad turn restores words and the learner
tries again.
"""

import logging
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import debug_log
from .fading import RestorePolicy, hide_count, hide_words, restore_words
from .models import Checkpoint
from .script_parser import ScriptWord, parse_script, unique_sentences
from .word_sets import WordIndexSets

logger = logging.getLogger(__name__)


class Segment(str, Enum):
    """Which part of the beat is being practised."""
    SENTENCE_1 = "sentence_1"
    SENTENCE_2 = "sentence_2"
    SENTENCES_1_2 = "sentences_1_2"
    SENTENCE_3 = "sentence_3"
    BEAT = "beat"


class Stage(str, Enum):
    """Whether the segment is fully visible or being faded."""
    LEARNING = "learning"
    FADING = "fading"


class SessionMode(str, Enum):
    """Top-level mode of a practice session."""
    LEARN = "learn"
    RECALL = "recall"
    PRE_BEAT_RECALL = "pre_beat_recall"
    COFFEE_BREAK = "coffee_break"
    SESSION_COMPLETE = "session_complete"


@dataclass(frozen=True)
class Phase:
    """A segment together with its stage."""
    segment: Segment
    stage: Stage

    @property
    def name(self) -> str:
        """Phase name, e.g. "sentences_1_2_fading"."""
        return f"{self.segment.value}_{self.stage.value}"

    @classmethod
    def from_name(cls, name: str) -> "Phase":
        """
        Parse a phase name.

        Raises:
            ValueError: If the name is not a known phase
        """
        for stage in Stage:
            suffix = f"_{stage.value}"
            if name.endswith(suffix):
                try:
                    return cls(Segment(name[:-len(suffix)]), stage)
                except ValueError:
                    break
        raise ValueError(f"Unknown phase: {name!r}")

    def __str__(self) -> str:
        return self.name


def segment_plan(sentence_count: int) -> list[Segment]:
    """
    Get the segments to practise for a beat with this many distinct sentences.

    Raises:
        ValueError: If there are no sentences
    """
    if sentence_count <= 0:
        raise ValueError("A beat needs at least one sentence")
    if sentence_count == 1:
        return [Segment.SENTENCE_1, Segment.BEAT]
    if sentence_count == 2:
        return [Segment.SENTENCE_1, Segment.SENTENCE_2, Segment.BEAT]
    return [Segment.SENTENCE_1, Segment.SENTENCE_2, Segment.SENTENCES_1_2,
            Segment.SENTENCE_3, Segment.BEAT]


def segment_text(segment: Segment, sentences: Sequence[str]) -> str:
    """Assemble the practice text for a segment from distinct sub-sentences."""
    if segment is Segment.SENTENCE_1:
        return sentences[0]
    if segment is Segment.SENTENCE_2:
        return sentences[1]
    if segment is Segment.SENTENCES_1_2:
        return " ".join(sentences[:2])
    if segment is Segment.SENTENCE_3:
        return sentences[2]
    return " ".join(sentences)


@dataclass
class ModeSettings:
    """Tunables for one session mode."""
    required_learning_reps: int = 3
    hide_floor: int = 1
    hide_cap: int = 3
    hide_on_failure: int = 1
    restore_policy: RestorePolicy = RestorePolicy.FAILED
    required_clean_turns: int = 2

    @classmethod
    def from_config(cls, settings: dict[str, Any]) -> "ModeSettings":
        """Create from a mode section of the configuration (see config.get_mode_settings)."""
        floor: int = int(settings.get("hide_floor") or 1)
        on_failure = settings.get("hide_on_failure")
        return cls(
            required_learning_reps=int(settings.get("required_learning_reps") or 0),
            hide_floor=floor,
            hide_cap=int(settings.get("hide_cap") or floor),
            hide_on_failure=floor if on_failure is None else int(on_failure),
            restore_policy=RestorePolicy(settings.get("restore_policy", "failed")),
            required_clean_turns=int(settings.get("required_clean_turns", 2)),
        )


@dataclass
class TurnResolution:
    """What the state machine did with the outcome of one turn."""
    success: bool
    phase: Phase  # Phase the turn was read in
    failed: list[int] = field(default_factory=list)
    hidden: list[int] = field(default_factory=list)  # Newly hidden
    restored: list[int] = field(default_factory=list)
    repetitions: int = 0  # Clean learning reps so far in this phase
    clean_turns: int = 0  # Consecutive clean turns with everything hidden
    next_phase: Phase | None = None  # Set when the phase changed
    complete: bool = False  # Beat mastered (learn) or recalled (recall)

    @property
    def phase_changed(self) -> bool:
        """Whether the practice text changes for the next turn."""
        return self.next_phase is not None


class ProgressionMachine:
    """
    Drives one beat through its phases.

    Owns the practice text of the active phase and its WordIndexSets. The
    alignment cursor for a turn shares those sets; when the phase changes the
    caller builds a new cursor over the new words.

    Usage:
        machine = ProgressionMachine(beat.sentences, ModeSettings())
        ... turn is read ...
        resolution = machine.resolve_turn(sets.failed_indices())
        if resolution.complete:
            mark_mastered()
    """

    sentences: list[str]
    settings: ModeSettings
    recall: bool
    language: str
    segments: list[Segment]
    phase: Phase
    words: list[ScriptWord]
    sets: WordIndexSets
    repetitions: int
    streak: int
    clean_turns: int
    complete: bool

    def __init__(
        self,
        sentences: Iterable[str],
        settings: ModeSettings,
        recall: bool = False,
        language: str = "en",
        lenient_words: Iterable[str] = (),
        checkpoint: Checkpoint | None = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            sentences: The beat's sub-sentences
            settings: Tunables for the mode
            recall: Recall an already-mastered beat instead of learning it
            language: Language tag, selects the stoplist for hiding
            lenient_words: Words always matched leniently
            checkpoint: Resume a beat part way through learning

        Raises:
            ValueError: If there are no sentences or the checkpoint phase
                does not belong to this beat
        """
        self.sentences = unique_sentences(sentences)
        self.settings = settings
        self.recall = recall
        self.language = language
        self._lenient_words: list[str] = list(lenient_words)
        self.segments = segment_plan(len(self.sentences))
        self.complete = False

        if recall:
            self.segments = [Segment.BEAT]
            self._enter(Phase(Segment.BEAT, Stage.FADING))
        elif checkpoint is not None:
            phase = Phase.from_name(checkpoint.phase)
            if phase.segment not in self.segments:
                raise ValueError(
                    f"Phase {phase.name} does not apply to a beat with "
                    f"{len(self.sentences)} sentences")
            self._enter(phase)
            self.sets.set_hidden(checkpoint.hidden_indices)
            logger.info("Resumed beat at %s with %d hidden words",
                        phase.name, len(self.sets.hidden))
        else:
            self._enter(self._first_stage(self.segments[0]))

    def _first_stage(self, segment: Segment) -> Phase:
        if self.settings.required_learning_reps > 0:
            return Phase(segment, Stage.LEARNING)
        return Phase(segment, Stage.FADING)

    def _enter(self, phase: Phase) -> None:
        """Switch to a phase with fresh words, sets and counters."""
        self.phase = phase
        self.words = parse_script(
            segment_text(phase.segment, self.sentences), self._lenient_words)
        self.sets = WordIndexSets(len(self.words))
        self.repetitions = 0
        self.streak = 0
        self.clean_turns = 0

    @property
    def text(self) -> str:
        """The practice text of the active phase."""
        return " ".join(w.text for w in self.words)

    def checkpoint(self) -> Checkpoint:
        """Snapshot the active phase and hidden words."""
        return Checkpoint(phase=self.phase.name,
                          hidden_indices=list(self.sets.hidden_order))

    def resolve_turn(self, failed: Collection[int] = ()) -> TurnResolution:
        """
        Apply the outcome of a completed turn.

        Args:
            failed: Hidden word indices missed or hesitated on during the turn

        Returns:
            TurnResolution describing the changes; ``sets`` (and ``words`` if
            the phase changed) are updated for the next turn
        """
        failed_list: list[int] = sorted(i for i in failed if i in self.sets.hidden)
        resolution = TurnResolution(success=not failed_list, phase=self.phase,
                                    failed=failed_list)
        if self.complete:
            return resolution

        if self.phase.stage is Stage.LEARNING:
            self._resolve_learning(resolution)
        elif failed_list:
            self._resolve_failure(resolution)
        else:
            self._resolve_success(resolution)

        resolution.repetitions = self.repetitions
        resolution.clean_turns = self.clean_turns
        return resolution

    def _resolve_learning(self, resolution: TurnResolution) -> None:
        # Nothing is hidden while learning, so every read-through counts
        self.repetitions += 1
        logger.debug("%s: repetition %d/%d", self.phase.name, self.repetitions,
                     self.settings.required_learning_reps)
        if self.repetitions >= self.settings.required_learning_reps:
            self._advance_to(Phase(self.phase.segment, Stage.FADING), resolution)

    def _resolve_failure(self, resolution: TurnResolution) -> None:
        restored: list[int] = restore_words(
            self.sets, resolution.failed, self.settings.restore_policy)
        hidden: list[int] = hide_words(
            self.words, self.sets, self.settings.hide_on_failure,
            exclude=set(resolution.failed) | set(restored), language=self.language)
        resolution.restored = restored
        resolution.hidden = hidden
        self.streak = 0
        self.clean_turns = 0
        logger.debug("%s: failed on %s, restored %s, hid %s", self.phase.name,
                     resolution.failed, restored, hidden)

    def _resolve_success(self, resolution: TurnResolution) -> None:
        if not self.sets.all_hidden:
            count: int = hide_count(self.streak, self.settings.hide_floor,
                                    self.settings.hide_cap)
            resolution.hidden = hide_words(self.words, self.sets, count,
                                           language=self.language)
            self.streak += 1
            return

        self.clean_turns += 1
        logger.debug("%s: clean turn %d/%d with everything hidden", self.phase.name,
                     self.clean_turns, self.settings.required_clean_turns)
        if self.clean_turns < self.settings.required_clean_turns:
            return

        if self.phase.segment is Segment.BEAT:
            self.complete = True
            resolution.complete = True
            debug_log.log_milestone(
                "Beat recalled" if self.recall else "Beat mastered")
            return

        next_segment: Segment = self.segments[self.segments.index(self.phase.segment) + 1]
        self._advance_to(self._first_stage(next_segment), resolution)

    def _advance_to(self, phase: Phase, resolution: TurnResolution) -> None:
        previous: Phase = self.phase
        self._enter(phase)
        resolution.next_phase = phase
        logger.info("Phase %s -> %s", previous.name, phase.name)
        debug_log.log_milestone(f"Phase {previous.name} -> {phase.name}")
