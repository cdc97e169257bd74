# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Hiding/fading scheduler.

Decides which word disappears next, how many words to hide after a turn and
which hidden words come back after a failed turn.

Words are hidden easiest first:

1. common function words (stoplist for the language),
2. short words of 2 to 4 letters,
3. the first word that is neither the first nor the last of the text,
4. whatever visible word comes first.

Protected words (ones the learner has failed on) only become candidates once
every other word is hidden, and the same order applies among them.
"""

import logging
from collections.abc import Collection, Sequence
from enum import Enum

from .matcher import language_code
from .script_parser import ScriptWord, normalize_word
from .word_sets import WordIndexSets

logger = logging.getLogger(__name__)

_STOPWORDS_RAW: dict[str, list[str]] = {
    "en": [
        "the", "a", "an", "to", "in", "of", "and", "is", "it", "that", "for",
        "on", "with", "as", "at", "by", "this", "be", "are", "was", "were",
        "been", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "can",
    ],
    "sv": [
        "och", "att", "det", "en", "ett", "som", "på", "av", "med", "för",
        "den", "de", "om", "så", "han", "hon", "vi", "ni", "jag", "du",
    ],
}

# Stoplists keyed by primary language subtag, stored normalized
STOPWORDS: dict[str, frozenset[str]] = {
    lang: frozenset(normalize_word(w) for w in words)
    for lang, words in _STOPWORDS_RAW.items()
}

# Used for languages without their own stoplist
ALL_STOPWORDS: frozenset[str] = frozenset().union(*STOPWORDS.values())

SHORT_WORD_MIN_LETTERS: int = 2
SHORT_WORD_MAX_LETTERS: int = 4


class RestorePolicy(str, Enum):
    """Which hidden words come back after a failed turn."""
    FAILED = "failed"  # Exactly the words that failed
    MOST_RECENT = "most_recent"  # The same number of most recently hidden words


def stopwords_for(language: str) -> frozenset[str]:
    """Get the stoplist for a BCP-47 language tag (e.g. "en-US", "sv")."""
    return STOPWORDS.get(language_code(language), ALL_STOPWORDS)


def _pick(words: Sequence[ScriptWord], candidates: list[int],
          stopwords: frozenset[str]) -> int | None:
    if not candidates:
        return None

    for i in candidates:
        if words[i].normalized in stopwords:
            return i

    for i in candidates:
        letters: int = sum(1 for c in words[i].normalized if c.isalpha())
        if SHORT_WORD_MIN_LETTERS <= letters <= SHORT_WORD_MAX_LETTERS:
            return i

    last: int = len(words) - 1
    for i in candidates:
        if 0 < i < last:
            return i

    return candidates[0]


def next_word_to_hide(
    words: Sequence[ScriptWord],
    hidden: Collection[int],
    protected: Collection[int] = (),
    exclude: Collection[int] = (),
    language: str = "en",
) -> int | None:
    """
    Choose the next word to hide.

    Args:
        words: The practice text
        hidden: Indices already hidden
        protected: Indices to hide only after every other word
        exclude: Indices not to hide this time at all
        language: Language tag selecting the stoplist

    Returns:
        Index of the word to hide, or None if no word can be hidden
    """
    stopwords: frozenset[str] = stopwords_for(language)
    visible: list[int] = [
        i for i in range(len(words)) if i not in hidden and i not in exclude
    ]
    unprotected: list[int] = [i for i in visible if i not in protected]
    if unprotected:
        return _pick(words, unprotected, stopwords)
    return _pick(words, visible, stopwords)


def hide_count(streak: int, floor: int, cap: int) -> int:
    """
    Number of words to hide after a clean turn.

    Starts at the floor and grows by one for every consecutive clean turn
    before this one, up to the cap. A failed turn resets the streak.
    """
    return max(0, min(floor + streak, max(cap, floor)))


def hide_words(
    words: Sequence[ScriptWord],
    sets: WordIndexSets,
    count: int,
    exclude: Collection[int] = (),
    language: str = "en",
) -> list[int]:
    """
    Hide up to ``count`` more words, in priority order.

    Returns:
        The newly hidden indices, in the order they were hidden
    """
    newly_hidden: list[int] = []
    for _ in range(count):
        index: int | None = next_word_to_hide(
            words, sets.hidden, sets.protected, exclude, language)
        if index is None:
            break
        sets.hide(index)
        newly_hidden.append(index)
    if newly_hidden:
        logger.debug("Hid words %s (%d/%d hidden)",
                     newly_hidden, len(sets.hidden), sets.word_count)
    return newly_hidden


def restore_words(
    sets: WordIndexSets,
    failed: Collection[int],
    policy: RestorePolicy = RestorePolicy.FAILED,
) -> list[int]:
    """
    Bring hidden words back after a failed turn and protect the failed ones.

    Args:
        sets: Word index sets of the practice text
        failed: Hidden indices the learner missed or hesitated on
        policy: Which words to restore

    Returns:
        The restored indices
    """
    restored: list[int] = []
    if policy is RestorePolicy.FAILED:
        for index in sorted(failed):
            if sets.unhide(index):
                restored.append(index)
    else:
        for _ in range(len(failed)):
            if not sets.hidden_order:
                break
            index = sets.hidden_order[-1]
            sets.unhide(index)
            restored.append(index)

    sets.protected.update(failed)
    if restored:
        logger.debug("Restored words %s (policy=%s)", restored, policy.value)
    return restored
