# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Per-word index sets for the text currently being practised.

``hidden`` and ``hidden_order`` always hold the same indices; the order list
records the sequence in which words were hidden so the most recently hidden
word can be restored first.
"""

from dataclasses import dataclass, field


@dataclass
class WordIndexSets:
    """Index sets over ``range(word_count)``."""
    word_count: int
    hidden: set[int] = field(default_factory=set)
    hidden_order: list[int] = field(default_factory=list)
    spoken: set[int] = field(default_factory=set)
    hesitated: set[int] = field(default_factory=set)
    missed: set[int] = field(default_factory=set)
    # Words that failed before; hidden only after everything else
    protected: set[int] = field(default_factory=set)

    def hide(self, index: int) -> bool:
        """Hide a word. Returns False if it was already hidden or out of range."""
        if index in self.hidden or not 0 <= index < self.word_count:
            return False
        self.hidden.add(index)
        self.hidden_order.append(index)
        return True

    def unhide(self, index: int) -> bool:
        """Make a word visible again. Returns False if it was not hidden."""
        if index not in self.hidden:
            return False
        self.hidden.discard(index)
        self.hidden_order.remove(index)
        return True

    def set_hidden(self, indices: list[int]) -> None:
        """Replace the hidden set, keeping the given order (e.g. from a checkpoint)."""
        self.hidden.clear()
        self.hidden_order.clear()
        for index in indices:
            self.hide(index)

    def clear_hidden(self) -> None:
        """Make every word visible and forget protection."""
        self.hidden.clear()
        self.hidden_order.clear()
        self.protected.clear()

    def clear_turn(self) -> None:
        """Forget everything recorded during the current turn."""
        self.spoken.clear()
        self.hesitated.clear()
        self.missed.clear()

    @property
    def all_hidden(self) -> bool:
        """True when no word is visible."""
        return len(self.hidden) >= self.word_count

    def failed_indices(self) -> set[int]:
        """Hidden words the learner missed or hesitated on this turn."""
        return {i for i in self.hidden if i in self.hesitated or i in self.missed}
