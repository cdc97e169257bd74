# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Alignment cursor that matches a live transcript to the practice text.

The transcription source delivers cumulative snapshots of what it has heard
so far, revising its last word or two as it settles. The cursor works out
which tokens are new, matches each one against the next expected word (with a
short lookahead for words the speaker skipped or the recognizer dropped), and
records spoken, missed and hesitated words in the shared WordIndexSets.

Every turn has an id. Snapshots tagged with any other id are ignored, which
is how in-flight recognition for an abandoned turn is cancelled.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from . import debug_log
from .matcher import Strictness, is_filler_word, words_match
from .script_parser import ScriptWord, normalize_word, tokenize
from .word_sets import WordIndexSets

logger = logging.getLogger(__name__)

# Number of trailing tokens the recognizer may still revise
REVISABLE_TAIL: int = 2


@dataclass
class TurnState:
    """State for a single read-through of the text."""
    turn_id: int = 0
    current_word_index: int = 0
    last_tokens: list[str] = field(default_factory=list)
    last_advance_at: float = 0.0
    started: bool = False  # At least one word matched this turn


@dataclass
class AdvanceResult:
    """Result of feeding one transcript snapshot to the cursor."""
    accepted: bool  # False if the snapshot belonged to another turn
    previous_index: int = 0
    current_index: int = 0
    new_words: list[str] = field(default_factory=list)
    matched: list[int] = field(default_factory=list)
    missed: list[int] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    completed: bool = False  # True exactly once per turn

    @property
    def advanced(self) -> bool:
        """Whether the cursor moved."""
        return self.current_index > self.previous_index


class AlignmentCursor:
    """
    Tracks the next expected word of the practice text within one turn.

    The cursor never moves backwards within a turn. Reaching the end of the
    text reports completion once; later snapshots for the same turn are
    ignored.

    Usage:
        cursor = AlignmentCursor(parse_script("the quick brown fox"), sets)
        result = cursor.advance("the quick", False, cursor.turn_id)
        if result.completed:
            handle_turn_complete()
        cursor.reset()  # start the next turn
    """

    words: list[ScriptWord]
    sets: WordIndexSets
    language: str
    state: TurnState
    last_completed_turn_id: int

    def __init__(
        self,
        words: list[ScriptWord],
        sets: WordIndexSets | None = None,
        language: str = "en",
        clock: Callable[[], float] = time.monotonic,
        turn_id: int = 0,
    ) -> None:
        """
        Initialize the cursor.

        Args:
            words: The parsed text being practised
            sets: Shared word index sets (created if not given)
            language: Language code for spoken-number matching
            clock: Monotonic clock in seconds
            turn_id: Id of the first turn
        """
        self.words = words
        self.sets = sets if sets is not None else WordIndexSets(len(words))
        self.language = language
        self._clock = clock
        self.state = TurnState(turn_id=turn_id, last_advance_at=clock())
        self.last_completed_turn_id = -1

    @property
    def turn_id(self) -> int:
        """Id of the live turn."""
        return self.state.turn_id

    @property
    def current_word_index(self) -> int:
        """Index of the next expected word."""
        return self.state.current_word_index

    @property
    def is_complete(self) -> bool:
        """Whether the cursor has reached the end of the text."""
        return self.state.current_word_index >= len(self.words)

    def strictness_for(self, index: int) -> Strictness:
        """Get the matching tier for a word position."""
        if self.words[index].is_lenient:
            return Strictness.LENIENT
        if index in self.sets.hidden:
            return Strictness.HIDDEN
        return Strictness.VISIBLE

    def _matches_at(self, token: str, index: int) -> bool:
        if index >= len(self.words):
            return False
        return words_match(
            token, self.words[index].text, self.strictness_for(index), self.language)

    def extract_new_words(self, tokens: list[str]) -> list[str]:
        """
        Extract the tokens that have not been processed yet this turn.

        If the snapshot grew, the new tail is new. Otherwise the recognizer
        may have revised its last word or two; any revised tail token is
        returned for reprocessing.
        """
        last_tokens: list[str] = self.state.last_tokens
        if len(tokens) > len(last_tokens):
            return tokens[len(last_tokens):]

        for i in range(max(0, len(tokens) - REVISABLE_TAIL), len(tokens)):
            if normalize_word(tokens[i]) != normalize_word(last_tokens[i]):
                return tokens[i:]
        return []

    def _find_match(self, token: str, position: int) -> int | None:
        """Find where a token lands, looking at most two words ahead."""
        if self._matches_at(token, position):
            return position

        # The recognizer reordered or the speaker skipped one word
        if self._matches_at(token, position + 1):
            return position + 1

        # The recognizer dropped an easy word entirely
        if self.strictness_for(position) is not Strictness.HIDDEN:
            if self._matches_at(token, position + 2):
                return position + 2

        return None

    def advance(
        self,
        transcript: str,
        is_final: bool,
        turn_id: int,
        now: float | None = None,
    ) -> AdvanceResult:
        """
        Consume a transcript snapshot.

        Args:
            transcript: Cumulative transcript for the current utterance
            is_final: Whether the recognizer marked the snapshot final
            turn_id: Turn the snapshot was produced for
            now: Current monotonic time (defaults to the cursor's clock)

        Returns:
            AdvanceResult describing what changed
        """
        if turn_id != self.state.turn_id:
            logger.debug("Ignoring snapshot for stale turn %d (live turn %d)",
                         turn_id, self.state.turn_id)
            return AdvanceResult(accepted=False,
                                 previous_index=self.current_word_index,
                                 current_index=self.current_word_index)

        position: int = self.state.current_word_index
        result = AdvanceResult(accepted=True, previous_index=position,
                               current_index=position)
        if self.is_complete:
            return result

        tokens: list[str] = tokenize(transcript)
        new_words: list[str] = self.extract_new_words(tokens)
        self.state.last_tokens = tokens
        result.new_words = new_words
        if not new_words:
            return result

        debug_log.log_transcript(transcript, new_words, is_final)
        if now is None:
            now = self._clock()

        for token in new_words:
            if position >= len(self.words):
                break

            if is_filler_word(token) and not self._matches_at(token, position):
                result.discarded.append(token)
                debug_log.log_word_event(position, token, "filler")
                continue

            found: int | None = self._find_match(token, position)
            if found is None:
                result.discarded.append(token)
                debug_log.log_word_event(position, token, "discard")
                continue

            for skipped in range(position, found):
                self.sets.spoken.add(skipped)
                if skipped in self.sets.hidden and not self.words[skipped].is_lenient:
                    self.sets.missed.add(skipped)
                    result.missed.append(skipped)
                debug_log.log_word_event(skipped, self.words[skipped].text, "skip")

            self.sets.spoken.add(found)
            # A word heard late after an interim mishearing is not a miss
            self.sets.missed.discard(found)
            result.matched.append(found)
            debug_log.log_word_event(found, self.words[found].text, "match")

            position = found + 1
            self.state.last_advance_at = now
            self.state.started = True

        self.state.current_word_index = position
        result.current_index = position
        if result.advanced:
            logger.debug("Cursor %d -> %d (turn %d, final=%s)",
                         result.previous_index, position, turn_id, is_final)

        if self.is_complete:
            result.completed = self._mark_complete()
        return result

    def _mark_complete(self) -> bool:
        """Record completion for the live turn. True only the first time."""
        if self.last_completed_turn_id == self.state.turn_id:
            return False
        self.last_completed_turn_id = self.state.turn_id
        logger.debug("Turn %d complete", self.state.turn_id)
        return True

    def force_advance(self, now: float | None = None) -> bool:
        """
        Move past the current word as if it had been spoken.

        Used by the hesitation monitor so a session can never stall on one
        word.

        Returns:
            True if this completed the turn
        """
        if self.is_complete:
            return False
        index: int = self.state.current_word_index
        self.sets.spoken.add(index)
        self.state.current_word_index = index + 1
        self.state.last_advance_at = self._clock() if now is None else now
        debug_log.log_word_event(index, self.words[index].text, "rescue")
        if self.is_complete:
            return self._mark_complete()
        return False

    def reveal_word(self, index: int) -> bool:
        """Reveal a hidden word (learner tapped it). Cursor state is untouched."""
        return self.sets.unhide(index)

    def reset(self, now: float | None = None) -> int:
        """
        Start a new turn.

        Clears the per-turn word sets and moves the cursor back to the first
        word. Snapshots tagged with the previous turn id become inert.

        Returns:
            The new turn id
        """
        self.sets.clear_turn()
        self.state = TurnState(
            turn_id=self.state.turn_id + 1,
            last_advance_at=self._clock() if now is None else now,
        )
        return self.state.turn_id
