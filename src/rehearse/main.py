"""
Main rehearse application.
Orchestrates speech listening, the practice session and the terminal view.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from datetime import date, datetime
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from . import debug_log
from .config import (
    FAMILIARITY_PRESETS,
    Config,
    get_config_path,
    get_practice_settings,
    get_transcription_settings,
    load_config,
    save_config,
)
from .events import SessionComplete, SessionEvent
from .listener import SpeechListener
from .models import Beat
from .persistence import PersistenceDispatcher, YamlBeatStore
from .presentation import TerminalView
from .progression import SessionMode
from .session import PracticeSession, SessionSettings
from .transcription_provider import TranscriptionError

logger = logging.getLogger(__name__)


class RehearseApp:
    """
    Main application that connects the listener to a practice session.

    The listener reports transcripts from its own thread; they are handed to
    the event loop with call_soon_threadsafe so the session is only touched
    from the loop.
    """

    def __init__(
        self,
        beats: list[Beat],
        settings: SessionSettings,
        listener: SpeechListener,
        dispatcher: PersistenceDispatcher | None = None,
        tick_ms: int = 500,
        view: TerminalView | None = None,
    ) -> None:
        self.beats = beats
        self.settings = settings
        self.listener = listener
        self.dispatcher = dispatcher
        self.tick_ms = tick_ms
        self.view = view or TerminalView()

        self.session: PracticeSession | None = None
        self.running: bool = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._done: asyncio.Event | None = None

    def _from_listener(self, transcript: str, is_final: bool) -> None:
        """Listener thread callback: tag with the live turn and hand to the loop."""
        session = self.session
        if self._loop is None or session is None:
            return
        turn_id: int = session.turn_id
        self._loop.call_soon_threadsafe(self._on_transcript, transcript, is_final, turn_id)

    def _on_transcript(self, transcript: str, is_final: bool, turn_id: int) -> None:
        if self.session is None:
            return
        self._show(self.session.handle_transcript(transcript, is_final, turn_id))

    def _show(self, events: list[SessionEvent]) -> None:
        assert self.session is not None
        self.view.show_events(events)
        if self.session.is_practising:
            self.view.show_words(self.session.word_states())
        if any(isinstance(e, SessionComplete) for e in events) and self._done:
            self._done.set()

    async def _tick_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.tick_ms / 1000)
            if self.session is not None:
                events = self.session.tick()
                if events:
                    self._show(events)

    async def run(self) -> None:
        """
        Start listening and run the session until it completes or is stopped.

        Raises:
            TranscriptionError: If listening cannot start; no session is created
        """
        self._loop = asyncio.get_running_loop()
        self._done = asyncio.Event()

        print("Loading speech recognition...")
        await self._loop.run_in_executor(None, self.listener.start, self._from_listener)

        self.session = PracticeSession(
            self.beats, self.settings, dispatcher=self.dispatcher,
            on_turn_reset=self.listener.abort)
        self.running = True
        print("\n✓ Rehearse ready! Read the text aloud. Press Ctrl+C to stop.\n")
        self._show(self.session.start())

        if self.session.mode is SessionMode.SESSION_COMPLETE:
            return

        tick_task = asyncio.create_task(self._tick_loop())
        try:
            await self._done.wait()
        finally:
            self.running = False
            tick_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await tick_task

    def stop(self) -> None:
        """Stop listening and save where the learner is."""
        self.running = False
        self.listener.stop()
        if self.session is not None and self.session.save_checkpoint():
            print("Progress saved; the next session resumes from here.")
        if self.dispatcher is not None:
            self.dispatcher.shutdown(wait=True)

    def request_stop(self) -> None:
        """Ask a running session to finish (safe to call from a signal handler)."""
        self.running = False
        if self._done is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._done.set)


def print_status(beats: list[Beat], now: datetime) -> None:
    """Print each beat's progress and recall schedule."""
    table = Table(title="Beats")
    table.add_column("#")
    table.add_column("Beat")
    table.add_column("Mastered")
    table.add_column("Last recall")
    table.add_column("Next recall")

    def fmt(value: datetime | None) -> str:
        return value.strftime("%Y-%m-%d %H:%M") if value else "-"

    for beat in sorted(beats, key=lambda b: b.order):
        upcoming = [t for t in beat.recall_times() if t > now]
        if beat.is_recall_due(now):
            next_recall = "[bold red]due now[/bold red]"
        else:
            next_recall = fmt(upcoming[0] if upcoming else None)
        text: str = beat.text if len(beat.text) <= 40 else beat.text[:37] + "..."
        mastered: str = fmt(beat.mastered_at) if beat.is_mastered else (
            f"[yellow]{beat.checkpoint.phase}[/yellow]" if beat.checkpoint else "no")
        table.add_row(str(beat.order), text, mastered, fmt(beat.last_recall_at), next_recall)

    Console().print(table)


def _parse_goal_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD") from e


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Build the command line parser, with defaults from the config file."""
    transcription_config = get_transcription_settings(config)
    practice_config = get_practice_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Rehearse - learn a text by heart by reading it aloud"
    )

    parser.add_argument(
        "beats_file",
        nargs="?",
        type=Path,
        help="YAML file with the beats of the text (progress is saved back to it)"
    )

    parser.add_argument(
        "--language", "-l",
        default=transcription_config.get("language", "en-US"),
        help="Language of the text as a BCP-47 tag (default: from config or en-US)"
    )

    parser.add_argument(
        "--familiarity",
        default=practice_config.get("familiarity", "beginner"),
        choices=list(FAMILIARITY_PRESETS),
        help="How well you already know the text (default: from config or beginner)"
    )

    parser.add_argument(
        "--goal-date",
        type=_parse_goal_date,
        default=practice_config.get("goal_date"),
        help="Date the text must be known by (YYYY-MM-DD)"
    )

    parser.add_argument(
        "--pre-beat-recall",
        action="store_true",
        default=practice_config.get("pre_beat_recall", False),
        help="Recall the previous beat once before learning a new one"
    )

    parser.add_argument(
        "--model-id",
        default=transcription_config.get("model_id"),
        help="Model identifier (default: chosen from the language)"
    )

    parser.add_argument(
        "--model-path",
        default=transcription_config.get("model_path"),
        help="Path to custom model directory (optional)"
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=config.get("audio_device"),
        help="Audio input device index"
    )

    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=config.get("chunk_ms", 100),
        help="Audio chunk size in milliseconds (default: from config or 100)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit"
    )

    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List all available transcription models and exit"
    )

    parser.add_argument(
        "--download-model",
        action="store_true",
        help="Download the model for the language (or --model-id) and exit"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show progress and recall dates for each beat and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable debug logging to ./logs/"
    )

    return parser


def _list_models() -> None:
    from .providers import get_all_available_models  # pylint: disable=import-outside-toplevel

    print("\nAvailable transcription models:")
    print("-" * 80)
    for model in sorted(get_all_available_models(), key=lambda m: (m.language, m.name)):
        print(f"  {model.id}")
        print(f"    Name: {model.name}")
        print(f"    Language: {model.language}")
        print(f"    Size: {model.size_mb}MB")
        print()


def _download_model(provider: str, model_id: str | None, language: str) -> None:
    from .providers import (  # pylint: disable=import-outside-toplevel
        download_model_with_progress,
        model_for_language,
    )

    model_id = model_id or model_for_language(language, provider)
    print(f"Downloading model: {model_id}")
    download_model_with_progress(provider, model_id)


def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    config: Config = load_config()
    parser = build_parser(config)
    args: argparse.Namespace = parser.parse_args()

    if args.list_devices:
        from .audio import list_devices  # pylint: disable=import-outside-toplevel
        list_devices()
        return

    if args.list_models:
        _list_models()
        return

    provider: str = config["transcription"].get("provider", "vosk")

    if args.download_model:
        try:
            _download_model(provider, args.model_id, args.language)
        except (TranscriptionError, ValueError) as e:
            print(f"Error: {e}")
            sys.exit(1)
        return

    config["transcription"]["language"] = args.language
    config["transcription"]["model_id"] = args.model_id
    config["transcription"]["model_path"] = args.model_path
    config["audio_device"] = args.device
    config["chunk_ms"] = args.chunk_ms
    config["practice"]["familiarity"] = args.familiarity
    config["practice"]["pre_beat_recall"] = args.pre_beat_recall
    goal = args.goal_date
    if isinstance(goal, str):
        goal = _parse_goal_date(goal)
    config["practice"]["goal_date"] = goal.isoformat() if goal else None

    if args.save_config:
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    if args.beats_file is None:
        parser.error("a beats file is required")

    store = YamlBeatStore(args.beats_file)
    try:
        beats: list[Beat] = store.load_beats()
    except (OSError, ValueError) as e:
        print(f"Error: could not load beats from {args.beats_file}: {e}")
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Error: {args.beats_file} is not a valid beats file: {e}")
        sys.exit(1)

    if args.status:
        print_status(beats, datetime.now())
        return

    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    settings: SessionSettings = SessionSettings.from_config(config)
    listener = SpeechListener(
        args.language,
        provider_name=provider,
        model_id=args.model_id,
        model_path=args.model_path,
        device=args.device,
        chunk_ms=args.chunk_ms,
    )
    app = RehearseApp(
        beats, settings, listener,
        dispatcher=PersistenceDispatcher(store),
        tick_ms=settings.hesitation.tick_ms,
    )

    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        app.request_stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    exit_code: int = 0
    try:
        loop.run_until_complete(app.run())
    except TranscriptionError as e:
        print(f"Error: {e}")
        exit_code = 1
    except KeyboardInterrupt:
        app.running = False
    finally:
        app.stop()
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
