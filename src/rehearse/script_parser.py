# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script parsing module for practice texts.

Splits a practice text into whitespace-delimited tokens and annotates each
token with what the matcher and hesitation monitor need to know about it:
its normalized form, whether it starts a sentence, and whether it looks like
a proper noun (which speech recognizers reliably mangle).

Also assembles the text for each practice segment from a beat's
sub-sentences.
"""

import re
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

# Tokens ending with one of these characters end a sentence
SENTENCE_END: re.Pattern[str] = re.compile(r'[.!?]["\')\]»”’]*$')

# Capitalised words that are not names even mid-sentence
NOT_PROPER_NOUNS: frozenset[str] = frozenset(["i", "im", "ive", "ill", "id"])


def normalize_word(word: str) -> str:
    """Normalize a word for language-agnostic comparison.

    Lowercases, decomposes and strips combining diacritics, then removes every
    character that is not a letter or a digit. Always returns a string, which
    may be empty for punctuation-only tokens.

    Examples:
        "Café," -> "cafe"
        "don't" -> "dont"
        "—" -> ""
    """
    # Decompose before and after case folding so compatibility characters
    # (e.g. "ℌ") fold too and the result is stable under a second pass
    folded: str = unicodedata.normalize('NFKD', word).casefold()
    decomposed: str = unicodedata.normalize('NFKD', folded)
    return ''.join(
        c for c in decomposed
        if not unicodedata.combining(c) and c.isalnum()
    )


def tokenize(text: str) -> list[str]:
    """Split text into whitespace-delimited tokens."""
    return [w for w in text.split() if w.strip()]


@dataclass(frozen=True)
class ScriptWord:
    """A single token of the text being practised."""
    text: str  # Token as written (e.g. "Stockholm,")
    normalized: str  # Normalized form used for matching (e.g. "stockholm")
    index: int  # Position in the word sequence
    is_sentence_start: bool = False
    is_lenient: bool = False  # Proper noun or configured name

    def __repr__(self) -> str:
        flags: str = ""
        if self.is_sentence_start:
            flags += " start"
        if self.is_lenient:
            flags += " lenient"
        return f"ScriptWord({self.index}: '{self.text}'{flags})"


def sentence_start_indices(tokens: Sequence[str]) -> set[int]:
    """Get the indices of tokens that begin a sentence.

    Index 0 always starts a sentence; so does any token following a token
    that ends with sentence-final punctuation.
    """
    starts: set[int] = {0} if tokens else set()
    for i, token in enumerate(tokens[:-1]):
        if SENTENCE_END.search(token):
            starts.add(i + 1)
    return starts


def is_proper_noun(token: str, is_sentence_start: bool) -> bool:
    """Guess whether a token is a name.

    A capitalised token in the middle of a sentence is treated as a proper
    noun. Sentence-initial tokens are ambiguous and are never flagged.
    """
    if is_sentence_start:
        return False
    letters: str = ''.join(c for c in token if c.isalpha())
    if not letters or not letters[0].isupper():
        return False
    return normalize_word(token) not in NOT_PROPER_NOUNS


def parse_script(text: str, lenient_words: Iterable[str] = ()) -> list[ScriptWord]:
    """
    Parse a practice text into a list of ScriptWords.

    Args:
        text: The text being practised (one or more sentences)
        lenient_words: Extra words that should always be matched leniently

    Returns:
        List of ScriptWord, one per whitespace-delimited token
    """
    tokens: list[str] = tokenize(text)
    starts: set[int] = sentence_start_indices(tokens)
    extra_lenient: set[str] = {normalize_word(w) for w in lenient_words}
    extra_lenient.discard("")

    words: list[ScriptWord] = []
    for i, token in enumerate(tokens):
        normalized: str = normalize_word(token)
        is_start: bool = i in starts
        lenient: bool = (
            is_proper_noun(token, is_start) or normalized in extra_lenient
        )
        words.append(ScriptWord(
            text=token,
            normalized=normalized,
            index=i,
            is_sentence_start=is_start,
            is_lenient=lenient,
        ))
    return words


def unique_sentences(sentences: Iterable[str | None]) -> list[str]:
    """Drop empty and duplicated sub-sentences, preserving order.

    Segmentation of short texts can repeat the same sentence in several
    slots of a beat; practising it twice adds nothing.
    """
    seen: set[str] = set()
    result: list[str] = []
    for sentence in sentences:
        if not sentence:
            continue
        stripped: str = sentence.strip()
        if not stripped or stripped in seen:
            continue
        seen.add(stripped)
        result.append(stripped)
    return result
