# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Microphone input for the speech listener.

Opens a mono 16-bit PCM stream and hands out fixed-length chunks through a
queue, which the listener thread drains and feeds to the recognizer.
"""

import logging
import queue
from typing import Any

import numpy as np
import numpy.typing as npt
import sounddevice as sd

from .transcription_provider import MicrophoneUnavailableError

logger = logging.getLogger(__name__)


class AudioCapture:
    """Mono microphone stream delivering raw PCM chunks."""

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_duration_ms: int = 100,
        device: int | None = None
    ) -> None:
        """
        Args:
            sample_rate: Sample rate in Hz; must match the recognizer model
            chunk_duration_ms: Length of each chunk handed to the listener
            device: Input device index, or None for the system default
        """
        self.sample_rate = sample_rate
        self.chunk_duration_ms = chunk_duration_ms
        self.frames_per_chunk: int = sample_rate * chunk_duration_ms // 1000
        self.device = device

        self.chunks: queue.Queue[bytes] = queue.Queue()
        self.stream: sd.RawInputStream | None = None

    @property
    def running(self) -> bool:
        return self.stream is not None

    def _on_chunk(
        self,
        indata: npt.NDArray[np.int16],
        frames: int,
        time: Any,
        status: sd.CallbackFlags
    ) -> None:
        if status:
            logger.warning("Microphone reported %s", status)
        self.chunks.put(bytes(indata))

    def start(self) -> None:
        """
        Open the input device and begin queueing chunks.

        Raises:
            MicrophoneUnavailableError: If the device cannot be opened
        """
        if self.running:
            return

        try:
            sd.check_input_settings(device=self.device, channels=1,
                                    dtype=np.int16, samplerate=self.sample_rate)
            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.frames_per_chunk,
                device=self.device,
                dtype=np.int16,
                channels=1,
                callback=self._on_chunk,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise MicrophoneUnavailableError(
                f"Could not open audio input device {self.device}: {e}") from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            raise MicrophoneUnavailableError(
                f"Could not start audio input device {self.device}: {e}") from e

        self.stream = stream
        logger.info("Microphone open (device=%s, %dms chunks)",
                    self.device, self.chunk_duration_ms)

    def stop(self) -> None:
        """Close the stream. Chunks already queued stay available."""
        stream, self.stream = self.stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    def get_chunk(self, timeout: float = 0.5) -> bytes | None:
        """Next queued chunk, or None if none arrives within `timeout` seconds."""
        try:
            return self.chunks.get(timeout=timeout)
        except queue.Empty:
            return None

    def clear_queue(self) -> None:
        """Throw away chunks recorded but not yet handed to the recognizer."""
        try:
            while True:
                self.chunks.get_nowait()
        except queue.Empty:
            pass


def input_devices() -> list[tuple[int, str, int]]:
    """(index, name, input channel count) for every device that can record."""
    return [(index, info["name"], info["max_input_channels"])
            for index, info in enumerate(sd.query_devices())
            if info["max_input_channels"] > 0]


def list_devices() -> list[tuple[int, str, int]]:
    """Print the recording devices for --list-devices."""
    devices = input_devices()
    if not devices:
        print("No audio input devices found.")
    for index, name, channels in devices:
        print(f"  [{index}] {name} ({channels} input channel{'s' if channels != 1 else ''})")
    return devices
