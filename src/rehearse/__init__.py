"""
Rehearse - learn a text by heart by reading it aloud.

Listens with local speech recognition (Vosk), follows the learner through
the text word by word and hides words as they are mastered, then schedules
spaced recalls of each mastered beat.
"""

__version__ = "0.1.0"

from .matcher import Strictness, words_match
from .models import Beat, Checkpoint
from .progression import ModeSettings, ProgressionMachine, SessionMode
from .recall import calculate_next_recall_date
from .script_parser import normalize_word, parse_script
from .session import PracticeSession, SessionSettings
from .tracker import AlignmentCursor

__all__ = [
    "AlignmentCursor",
    "Beat",
    "Checkpoint",
    "ModeSettings",
    "PracticeSession",
    "ProgressionMachine",
    "SessionMode",
    "SessionSettings",
    "Strictness",
    "calculate_next_recall_date",
    "normalize_word",
    "parse_script",
    "words_match",
]
