# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Per-word view model and a terminal renderer.

The view model is what any front end needs to draw the practice text: for
each word, whether it is hidden, spoken, hesitated, missed or under the
cursor. The renderer turns it into styled rich Text for the CLI.
"""

from dataclasses import dataclass

from rich.console import Console
from rich.text import Text

from .events import (
    BeatMastered,
    ModeChanged,
    PhaseChanged,
    RecallCompleted,
    RestStarted,
    SessionComplete,
    SessionEvent,
    TurnResolved,
)
from .tracker import AlignmentCursor

HIDDEN_CHAR: str = "_"


@dataclass(frozen=True)
class WordState:
    """Display state of one word."""
    index: int
    text: str
    hidden: bool
    spoken: bool
    hesitated: bool
    missed: bool
    current: bool
    lenient: bool = False


def word_states(cursor: AlignmentCursor) -> list[WordState]:
    """Build the display state of every word under the cursor."""
    sets = cursor.sets
    current: int = cursor.current_word_index
    return [
        WordState(
            index=word.index,
            text=word.text,
            hidden=word.index in sets.hidden,
            spoken=word.index in sets.spoken,
            hesitated=word.index in sets.hesitated,
            missed=word.index in sets.missed,
            current=word.index == current,
            lenient=word.is_lenient,
        )
        for word in cursor.words
    ]


def _word_style(state: WordState) -> str:
    if state.missed:
        return "bold red"
    if state.hesitated:
        return "yellow"
    if state.spoken:
        return "green"
    if state.current:
        return "bold underline"
    return "dim" if state.hidden else "white"


def render_words(states: list[WordState]) -> Text:
    """
    Render the practice text.

    Hidden words show as blanks of the same length until they are spoken;
    missed and hesitated words are revealed in colour.
    """
    text = Text()
    for i, state in enumerate(states):
        if i:
            text.append(" ")
        reveal: bool = not state.hidden or state.spoken or state.missed or state.hesitated
        shown: str = state.text if reveal else HIDDEN_CHAR * len(state.text)
        text.append(shown, style=_word_style(state))
    return text


def describe_event(event: SessionEvent) -> str | None:
    """One-line status message for a session event, or None if it is not shown."""
    if isinstance(event, TurnResolved):
        if event.success:
            return f"✓ {event.word_count - event.hidden_count} words left visible"
        return f"🔄 Try again ({len(event.failed)} missed)"
    if isinstance(event, PhaseChanged):
        return f"→ {event.phase.replace('_', ' ')}"
    if isinstance(event, ModeChanged):
        return f"Mode: {event.mode.replace('_', ' ')}"
    if isinstance(event, BeatMastered):
        return f"★ Beat {event.beat_id} mastered"
    if isinstance(event, RecallCompleted):
        when: str = event.next_recall_at.strftime("%Y-%m-%d %H:%M") if event.next_recall_at else "soon"
        return f"✅ Beat {event.beat_id} recalled (next recall {when})"
    if isinstance(event, RestStarted):
        return f"☕ Take a {event.minutes} minute break (until {event.ends_at:%H:%M})"
    if isinstance(event, SessionComplete):
        return "Session complete. Well done!"
    return None


class TerminalView:
    """Prints the practice text and session events to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._last: str | None = None

    def show_words(self, states: list[WordState]) -> None:
        """Print the practice text if it changed since the last call."""
        text: Text = render_words(states)
        plain: str = text.plain + "".join(
            f"{s.spoken}{s.missed}{s.hesitated}{s.current}" for s in states)
        if plain == self._last:
            return
        self._last = plain
        self.console.print(text)

    def show_events(self, events: list[SessionEvent]) -> None:
        """Print a status line for each event worth showing."""
        for event in events:
            message: str | None = describe_event(event)
            if message:
                self.console.print(message, style="cyan")
