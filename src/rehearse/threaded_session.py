# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Threaded wrapper for PracticeSession.

Moves all session work to one worker thread fed by a queue, so the audio and
recognition threads never block on alignment and the session state is only
ever touched by a single thread. Transcript snapshots, timer ticks and
control commands are processed strictly in arrival order.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .events import SessionEvent
from .presentation import WordState
from .session import PracticeSession

logger = logging.getLogger(__name__)


@dataclass
class TranscriptRequest:
    """A transcript snapshot to align."""
    transcript: str
    is_final: bool
    turn_id: int
    timestamp: float


@dataclass
class ControlCommand:
    """Control command for the worker thread."""
    command: str  # 'start', 'tick', 'reveal', 'save_checkpoint', 'end_rest', 'shutdown'
    param: Any = None


@dataclass
class SessionUpdate:
    """Result of processing one request."""
    events: list[SessionEvent]
    word_states: list[WordState]
    turn_id: int
    mode: str | None
    processing_time: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)


def _is_superseded(item: TranscriptRequest | ControlCommand,
                   later: list[TranscriptRequest | ControlCommand]) -> bool:
    """An interim snapshot is superseded by any later snapshot of the same turn."""
    if not isinstance(item, TranscriptRequest) or item.is_final:
        return False
    return any(isinstance(other, TranscriptRequest) and other.turn_id == item.turn_id
               for other in later)


def _describe(item: TranscriptRequest | ControlCommand) -> str:
    if isinstance(item, ControlCommand):
        return f"{item.command} command"
    return "final transcript" if item.is_final else "interim transcript"


class ThreadedSession:
    """
    Thread-safe front for a PracticeSession.

    Features:
    - Non-blocking submit_transcript() and tick()
    - Throttling of interim snapshots (max 1 per partial_throttle_ms)
    - Backpressure handling (drops superseded interim snapshots; finals wait for room)
    - Requests reach the session in the order they were submitted
    - Cached turn id and word states for immediate access

    Usage:
        threaded = ThreadedSession(lambda: PracticeSession(beats, settings))
        threaded.start()
        threaded.submit_transcript(text, is_final=False)
        update = threaded.get_update(timeout=0.1)
    """

    def __init__(
        self,
        session_factory: Callable[[], PracticeSession],
        partial_throttle_ms: int = 50,
        max_queue_size: int = 10,
        enqueue_timeout: float = 1.0,
    ) -> None:
        """
        Initialize the threaded session.

        Args:
            session_factory: Builds the session inside the worker thread
            partial_throttle_ms: Minimum time between interim snapshots
            max_queue_size: Queue size before backpressure kicks in
            enqueue_timeout: How long a final snapshot or command waits for room
        """
        self.session_factory = session_factory
        self.partial_throttle_ms = partial_throttle_ms
        self.max_queue_size = max_queue_size
        self.enqueue_timeout = enqueue_timeout

        # Queues for communication
        self.request_queue: queue.Queue[TranscriptRequest | ControlCommand] = queue.Queue(
            maxsize=max_queue_size
        )
        self.update_queue: queue.Queue[SessionUpdate] = queue.Queue()

        # Thread control
        self.worker_thread: threading.Thread | None = None
        self.shutdown_flag = threading.Event()
        self.started = threading.Event()

        # Cached state (thread-safe with lock)
        self.state_lock = threading.Lock()
        self.submit_lock = threading.Lock()
        self.latest_update: SessionUpdate | None = None
        self._turn_id = 0
        self.last_partial_time = 0.0

        self._start_worker()

        self.started.wait(timeout=5.0)
        if not self.started.is_set():
            raise RuntimeError("Worker thread failed to start")

    def _start_worker(self) -> None:
        """Start the worker thread."""
        self.worker_thread = threading.Thread(
            target=self._worker_loop,
            name="SessionWorker",
            daemon=True
        )
        self.worker_thread.start()

    def _worker_loop(self) -> None:
        """Main loop for the worker thread."""
        try:
            session: PracticeSession = self.session_factory()
            logger.info("ThreadedSession worker started")
            self.started.set()

            while not self.shutdown_flag.is_set():
                try:
                    item = self.request_queue.get(timeout=0.1)

                    if isinstance(item, ControlCommand):
                        self._handle_control_command(session, item)
                    elif isinstance(item, TranscriptRequest):
                        self._publish(session, session.handle_transcript(
                            item.transcript, item.is_final, item.turn_id), item.timestamp)

                except queue.Empty:
                    continue
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error("Error in worker loop: %s", e, exc_info=True)

        finally:
            logger.info("ThreadedSession worker stopped")

    def _handle_control_command(self, session: PracticeSession, cmd: ControlCommand) -> None:
        """Handle control commands."""
        start_time: float = time.time()
        if cmd.command == 'start':
            self._publish(session, session.start(), start_time)

        elif cmd.command == 'tick':
            events = session.tick()
            if events:
                self._publish(session, events, start_time)

        elif cmd.command == 'reveal':
            revealed: bool = session.reveal_word(cmd.param)
            self._publish(session, [], start_time, {"revealed": revealed})
            logger.debug("Reveal word %s: %s", cmd.param, revealed)

        elif cmd.command == 'save_checkpoint':
            saved: bool = session.save_checkpoint()
            self._publish(session, [], start_time, {"checkpoint_saved": saved})

        elif cmd.command == 'end_rest':
            self._publish(session, session.end_rest(), start_time)

        elif cmd.command == 'shutdown':
            self.shutdown_flag.set()

    def _publish(
        self,
        session: PracticeSession,
        events: list[SessionEvent],
        start_time: float,
        extra: dict[str, Any] | None = None,
    ) -> None:
        update = SessionUpdate(
            events=events,
            word_states=session.word_states(),
            turn_id=session.turn_id,
            mode=session.mode.value if session.mode else None,
            processing_time=time.time() - start_time,
            extra=extra or {},
        )
        with self.state_lock:
            self.latest_update = update
            self._turn_id = session.turn_id
        self.update_queue.put(update)

    def _put_command(self, cmd: ControlCommand) -> bool:
        return self._enqueue(cmd)

    def _enqueue(self, item: TranscriptRequest | ControlCommand) -> bool:
        """
        Queue a request, keeping arrival order.

        When the queue is full, interim snapshots that a later snapshot of the
        same turn supersedes are dropped to make room. Final snapshots and
        commands are never dropped to make room; they wait up to
        ``enqueue_timeout`` for the worker instead.
        """
        with self.submit_lock:
            try:
                self.request_queue.put_nowait(item)
                return True
            except queue.Full:
                pass

            dropped: int = self._drop_superseded(item)
            if dropped:
                logger.warning("Backpressure: dropped %d superseded interim snapshots", dropped)

            try:
                if isinstance(item, TranscriptRequest) and not item.is_final:
                    self.request_queue.put_nowait(item)
                else:
                    self.request_queue.put(item, timeout=self.enqueue_timeout)
                return True
            except queue.Full:
                logger.warning("Backpressure: queue full, dropping %s", _describe(item))
                return False

    def _drop_superseded(self, incoming: TranscriptRequest | ControlCommand) -> int:
        """Remove superseded interim snapshots from the queue, keeping the rest in order."""
        pending: list[TranscriptRequest | ControlCommand] = []
        while True:
            try:
                pending.append(self.request_queue.get_nowait())
            except queue.Empty:
                break

        later: list[TranscriptRequest | ControlCommand] = pending[1:] + [incoming]
        kept: list[TranscriptRequest | ControlCommand] = [
            item for i, item in enumerate(pending)
            if not _is_superseded(item, later[i:])
        ]
        # Only producers holding submit_lock add items, so everything taken out fits back
        for item in kept:
            self.request_queue.put_nowait(item)
        return len(pending) - len(kept)

    @property
    def turn_id(self) -> int:
        """Turn id of the live turn as last seen by the worker."""
        with self.state_lock:
            return self._turn_id

    def start(self) -> bool:
        """Plan the sitting and begin the first activity."""
        return self._put_command(ControlCommand(command='start'))

    def submit_transcript(
        self,
        transcript: str,
        is_final: bool,
        turn_id: int | None = None,
    ) -> bool:
        """
        Submit a transcript snapshot (non-blocking).

        Args:
            transcript: Cumulative transcript text
            is_final: Whether the recognizer marked it final
            turn_id: Turn the snapshot belongs to (defaults to the cached turn id)

        Returns:
            True if the snapshot was queued, False if it was dropped
        """
        current_time: float = time.time()

        if not is_final:
            time_since_last: float = (current_time - self.last_partial_time) * 1000
            if time_since_last < self.partial_throttle_ms:
                return False
            self.last_partial_time = current_time

        request = TranscriptRequest(
            transcript=transcript,
            is_final=is_final,
            turn_id=self.turn_id if turn_id is None else turn_id,
            timestamp=current_time,
        )

        return self._enqueue(request)

    def tick(self) -> bool:
        """Queue a hesitation/rest check."""
        return self._put_command(ControlCommand(command='tick'))

    def reveal_word(self, index: int) -> bool:
        """Queue a manual reveal of a hidden word."""
        return self._put_command(ControlCommand(command='reveal', param=index))

    def save_checkpoint(self) -> bool:
        """Queue a checkpoint save."""
        return self._put_command(ControlCommand(command='save_checkpoint'))

    def end_rest(self) -> bool:
        """Queue ending a coffee break."""
        return self._put_command(ControlCommand(command='end_rest'))

    def get_update(self, timeout: float = 0) -> SessionUpdate | None:
        """
        Get the next session update.

        Args:
            timeout: How long to wait for an update (0 = don't wait)

        Returns:
            Next update or None if none is available
        """
        try:
            if timeout > 0:
                return self.update_queue.get(timeout=timeout)
            return self.update_queue.get_nowait()
        except queue.Empty:
            return None

    def get_cached_update(self) -> SessionUpdate | None:
        """Get the most recent update without consuming from the queue."""
        with self.state_lock:
            return self.latest_update

    def shutdown(self) -> None:
        """Shutdown the worker thread."""
        try:
            self.request_queue.put(ControlCommand(command='shutdown'), timeout=1.0)
        except queue.Full:
            pass

        self.shutdown_flag.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=2.0)

    def __del__(self) -> None:
        """Cleanup on deletion."""
        self.shutdown()
