# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Word matching module that decides whether a spoken token counts as an
expected script token.

Three strictness tiers trade false negatives (a correct word misheard by the
recognizer) against false positives (credit for a word never said):

- HIDDEN: the learner must prove recall, so only a single positional
  character slip is tolerated.
- VISIBLE: the learner is reading, so near-miss transcriptions pass.
- LENIENT: names and proper nouns, which recognizers reliably mangle.

Every pair accepted by HIDDEN or VISIBLE is also accepted by LENIENT.
"""

import functools
import re
from collections import Counter
from enum import Enum

from num2words import num2words
from rapidfuzz.distance import Hamming

from .script_parser import normalize_word

# Ordinals written with digits: 1st, 2nd, 23rd
ORDINAL_PATTERN: re.Pattern[str] = re.compile(r'^(\d+)(st|nd|rd|th)$')

# Fillers the recognizer emits for hesitation noises
FILLER_WORDS: frozenset[str] = frozenset([
    'um', 'uh', 'eh', 'er', 'ah', 'hm', 'hmm', 'mm', 'mhm', 'umm', 'ahh',
    'err', 'ehh', 'uhh', 'mmm', 'erm', 'youknow',
])


class Strictness(str, Enum):
    """How much tolerance to apply when matching a word."""
    VISIBLE = "visible"
    HIDDEN = "hidden"
    LENIENT = "lenient"


# Tokens this short must match exactly when hidden
HIDDEN_EXACT_MAX_LEN: int = 2
# Tokens this short must match exactly when visible
VISIBLE_EXACT_MAX_LEN: int = 2
# Minimum shorter/longer length ratio for visible matches
VISIBLE_MIN_LENGTH_RATIO: float = 0.6
# Minimum unordered character overlap for visible matches
VISIBLE_MIN_OVERLAP: float = 0.6
# Minimum unordered character overlap for lenient matches
LENIENT_MIN_OVERLAP: float = 0.35


def char_overlap(a: str, b: str) -> float:
    """Unordered character overlap between two strings (0.0 to 1.0).

    Counts characters of ``a`` that can be paired with a distinct character
    of ``b``, divided by the longer length.
    """
    if not a or not b:
        return 0.0
    shared: int = sum((Counter(a) & Counter(b)).values())
    return shared / max(len(a), len(b))


def _positional_differences(a: str, b: str) -> int:
    """Count positions that differ, with the shorter string padded."""
    return Hamming.distance(a, b, pad=True)


@functools.lru_cache(maxsize=4096)
def spoken_number_form(token: str, language: str = "en") -> str | None:
    """Get the normalized spoken form of a numeric token.

    Examples (language="en"):
        "7" -> "seven"
        "21" -> "twentyone"
        "3rd" -> "third"
        "seven" -> None

    Returns:
        Normalized words for the number, or None if the token is not numeric
        or the language is not supported by num2words.
    """
    text: str = token.strip().lower().strip('.,;:!?')
    try:
        if text.isdecimal() and text.isascii():
            return normalize_word(num2words(int(text), lang=language))
        ordinal = ORDINAL_PATTERN.match(text)
        if ordinal:
            return normalize_word(
                num2words(int(ordinal.group(1)), to='ordinal', lang=language))
    except (NotImplementedError, OverflowError):
        return None
    return None


def language_code(tag: str) -> str:
    """Get the primary language subtag of a BCP-47 tag ("en-US" -> "en")."""
    return tag.replace("_", "-").split("-")[0].lower() or "en"


def is_filler_word(word: str) -> bool:
    """Check if a word is a hesitation filler that can be discarded."""
    return normalize_word(word) in FILLER_WORDS


def _hidden_match(spoken: str, expected: str) -> bool:
    if len(expected) <= HIDDEN_EXACT_MAX_LEN:
        return False
    if abs(len(spoken) - len(expected)) > 1:
        return False
    return _positional_differences(spoken, expected) <= 1


def _visible_match(spoken: str, expected: str) -> bool:
    if len(expected) <= VISIBLE_EXACT_MAX_LEN:
        return False

    if len(expected) == 3:
        return _positional_differences(spoken, expected) <= 1

    # Same starting sound, or the first letter dropped or doubled by the recognizer
    if spoken[0] != expected[0] and spoken[0] != expected[1] and spoken[1:2] != expected[0]:
        return False

    length_ratio: float = min(len(spoken), len(expected)) / max(len(spoken), len(expected))
    if length_ratio < VISIBLE_MIN_LENGTH_RATIO:
        return False

    return char_overlap(spoken, expected) >= VISIBLE_MIN_OVERLAP


def _lenient_match(spoken: str, expected: str) -> bool:
    # A shared first letter covers a shared two-letter prefix in either direction
    if spoken[0] == expected[0]:
        return True
    return char_overlap(spoken, expected) >= LENIENT_MIN_OVERLAP


def words_match(
    spoken: str,
    expected: str,
    strictness: Strictness = Strictness.VISIBLE,
    language: str = "en",
) -> bool:
    """
    Check whether a spoken token matches an expected script token.

    Args:
        spoken: Token from the transcript
        expected: Token from the script
        strictness: Tolerance tier to apply
        language: Language code used for spoken-number equivalence

    Returns:
        True if the spoken token counts as the expected word
    """
    spoken_norm: str = normalize_word(spoken)
    expected_norm: str = normalize_word(expected)

    # Punctuation-only tokens never match anything
    if not spoken_norm or not expected_norm:
        return False

    if spoken_norm == expected_norm:
        return True

    # "7" spoken for "seven" written (or the reverse) is an exact match
    spoken_number: str | None = spoken_number_form(spoken, language)
    expected_number: str | None = spoken_number_form(expected, language)
    if spoken_number and spoken_number == expected_norm:
        return True
    if expected_number and expected_number == spoken_norm:
        return True

    if strictness is Strictness.HIDDEN:
        return _hidden_match(spoken_norm, expected_norm)
    if strictness is Strictness.VISIBLE:
        return _visible_match(spoken_norm, expected_norm)
    return _lenient_match(spoken_norm, expected_norm)
