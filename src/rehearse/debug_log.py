"""
Debug logging for alignment and turn outcomes.

Creates two log files:
- alignment.log: Every transcript snapshot and what happened to each word
- turns.log: Every turn outcome, phase change and mastery event

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path
from typing import List

# Log files location (in the working directory)
LOG_DIR: Path = Path.cwd() / "logs"
ALIGNMENT_LOG: Path = LOG_DIR / "alignment.log"
TURNS_LOG: Path = LOG_DIR / "turns.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def clear_logs() -> None:
    """Clear both log files for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    log_file: Path
    for log_file in [ALIGNMENT_LOG, TURNS_LOG]:
        with open(log_file, 'w', encoding='utf-8') as f:
            f.write(
                f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_word_event(word_index: int, word: str, event: str = "match") -> None:
    """
    Log what happened to a word during alignment.

    Args:
        word_index: The position in the practice text
        word: The script word (or the discarded spoken token)
        event: Type of event (match, skip, discard, filler, rescue, hesitate)
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] {event:10} pos={word_index:4d} word=\"{word}\"\n")


def log_transcript(transcript: str, new_words: List[str], is_final: bool) -> None:
    """Log the transcript snapshot and the tokens extracted from it."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    kind: str = "final" if is_final else "interim"
    with open(ALIGNMENT_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] {kind}: \"{transcript[-60:]}\" new_words={new_words}\n")


def log_turn(
    turn_id: int,
    phase: str,
    success: bool,
    failed: List[int],
    hidden_count: int,
    word_count: int
) -> None:
    """
    Log the outcome of a completed turn.

    Args:
        turn_id: The turn that completed
        phase: Phase name at completion
        success: Whether the turn had no failed hidden words
        failed: Failed word indices
        hidden_count: Hidden words after the outcome was applied
        word_count: Words in the practice text
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    outcome: str = "success" if success else "failure"
    with open(TURNS_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] turn={turn_id:4d} {phase:22} {outcome:8} "
            f"failed={failed} hidden={hidden_count}/{word_count}\n")


def log_milestone(message: str) -> None:
    """Log a phase change, mode change, mastery or recall event."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(TURNS_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] *** {message}\n")
