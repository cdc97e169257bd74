# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Continuous speech listener.

Runs microphone capture and recognition on a background thread and reports
the cumulative best-guess transcript of the current utterance whenever it
changes, tagged final or interim. Final segments from the recognizer are
accumulated, so every report covers everything heard since the last abort().
"""

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from .transcription_provider import (
    MicrophoneUnavailableError,
    TranscriptionProvider,
    TranscriptionResult,
    TranscriptionUnavailableError,
)

if TYPE_CHECKING:
    from .audio import AudioCapture

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[str, bool], None]
ProviderFactory = Callable[[str, str, int], TranscriptionProvider]


def _default_audio(sample_rate: int, chunk_ms: int, device: int | None) -> "AudioCapture":
    # sounddevice fails to import when the PortAudio library is missing
    try:
        from .audio import AudioCapture  # pylint: disable=import-outside-toplevel
    except (ImportError, OSError) as e:
        raise MicrophoneUnavailableError(f"Audio input is not available: {e}") from e
    return AudioCapture(sample_rate=sample_rate, chunk_duration_ms=chunk_ms, device=device)


class SpeechListener:
    """
    Streams cumulative transcripts for one language.

    Usage:
        listener = SpeechListener("en-US")
        listener.start(lambda text, is_final: print(text, is_final))
        ...
        listener.abort()  # forget everything heard so far
        listener.stop()
    """

    def __init__(
        self,
        language: str,
        provider_name: str = "vosk",
        model_id: str | None = None,
        model_path: str | None = None,
        device: int | None = None,
        chunk_ms: int = 100,
        sample_rate: int = 16000,
        provider_factory: ProviderFactory | None = None,
        audio: "AudioCapture | None" = None,
    ) -> None:
        """
        Initialize the listener.

        Args:
            language: BCP-47 language tag
            provider_name: Transcription provider
            model_id: Model to use instead of the language default
            model_path: Custom model directory (overrides model_id)
            device: Audio input device index
            chunk_ms: Audio chunk length in milliseconds
            sample_rate: Audio sample rate in Hz
            provider_factory: Builds the provider (defaults to the registry)
            audio: Audio capture to use instead of the default microphone
        """
        self.language = language
        self.provider_name = provider_name
        self.model_id = model_id
        self.model_path = model_path
        self.sample_rate = sample_rate
        self._provider_factory = provider_factory
        self.device = device
        self.chunk_ms = chunk_ms
        self.audio: "AudioCapture | None" = audio

        self.provider: TranscriptionProvider | None = None
        self._callback: TranscriptCallback | None = None
        self._finals: list[str] = []
        self._last_reported: tuple[str, bool] | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the listener thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def _resolve_model(self) -> str:
        if self.model_path:
            return self.model_path
        if self.model_id:
            return self.model_id
        # A missing recognizer library means transcription is unavailable
        try:
            from .providers import model_for_language  # pylint: disable=import-outside-toplevel
        except ImportError as e:
            raise TranscriptionUnavailableError(
                f"Speech recognition is not installed: {e}") from e
        return model_for_language(self.language, self.provider_name)

    def _create_provider(self, model: str) -> TranscriptionProvider:
        if self._provider_factory is not None:
            return self._provider_factory(self.provider_name, model, self.sample_rate)
        try:
            from .providers import create_provider  # pylint: disable=import-outside-toplevel
        except ImportError as e:
            raise TranscriptionUnavailableError(
                f"Speech recognition is not installed: {e}") from e
        return create_provider(self.provider_name, model, self.sample_rate)

    def start(self, on_transcript: TranscriptCallback) -> None:
        """
        Load the recognizer, open the microphone and start listening.

        Args:
            on_transcript: Called from the listener thread with
                (transcript_so_far, is_final)

        Raises:
            TranscriptionUnavailableError: No recognizer/model for the language
            MicrophoneUnavailableError: The microphone cannot be opened
        """
        if self.running:
            return
        model: str = self._resolve_model()
        self.provider = self._create_provider(model)
        if self.audio is None:
            self.audio = _default_audio(self.sample_rate, self.chunk_ms, self.device)
        self.audio.start()

        self._callback = on_transcript
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._listen_loop, name="SpeechListener", daemon=True)
        self._thread.start()
        logger.info("Listening (%s, model %s)", self.language, model)

    def stop(self) -> None:
        """Stop listening and release the microphone."""
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        if self.audio is not None:
            self.audio.stop()

    def abort(self) -> None:
        """Discard buffered audio and everything heard so far."""
        with self._lock:
            if self.audio is not None:
                self.audio.clear_queue()
            if self.provider is not None:
                self.provider.reset()
            self._finals.clear()
            self._last_reported = None
        logger.debug("Listener aborted")

    def _listen_loop(self) -> None:
        assert self.audio is not None
        while not self._stop.is_set():
            chunk: bytes | None = self.audio.get_chunk(timeout=0.1)
            if chunk:
                try:
                    self.process_chunk(chunk)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    logger.error("Error processing audio: %s", e, exc_info=True)

    def process_chunk(self, chunk: bytes) -> tuple[str, bool] | None:
        """
        Feed one audio chunk to the recognizer and report any change.

        Returns:
            The (transcript, is_final) pair reported, if any
        """
        with self._lock:
            if self.provider is None:
                return None
            result: TranscriptionResult | None = self.provider.process_audio(chunk)
            if result is None or not result.text:
                return None
            report: tuple[str, bool] = self._accumulate(result)
            if report == self._last_reported:
                return None
            self._last_reported = report
            callback = self._callback

        if callback is not None:
            callback(*report)
        return report

    def _accumulate(self, result: TranscriptionResult) -> tuple[str, bool]:
        if result.is_partial:
            return " ".join(self._finals + [result.text]), False
        self._finals.append(result.text)
        return " ".join(self._finals), True
