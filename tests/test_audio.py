# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for microphone capture, with the sounddevice calls replaced.
"""

import pytest

try:
    from rehearse import audio
except OSError:  # PortAudio is not installed
    pytest.skip("PortAudio library not available", allow_module_level=True)

from rehearse.transcription_provider import MicrophoneUnavailableError

DEVICES = [
    {"name": "Built-in Microphone", "max_input_channels": 1},
    {"name": "Speakers", "max_input_channels": 0},
    {"name": "USB Headset", "max_input_channels": 2},
]


class FakeStream:
    def __init__(self, fail_start=False, **kwargs):
        self.kwargs = kwargs
        self.fail_start = fail_start
        self.started = False
        self.closed = False

    def start(self):
        if self.fail_start:
            raise audio.sd.PortAudioError("device busy")
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


@pytest.fixture
def streams(monkeypatch):
    """Record every stream opened, accepting any input settings."""
    opened = []

    def open_stream(**kwargs):
        stream = FakeStream(**kwargs)
        opened.append(stream)
        return stream

    monkeypatch.setattr(audio.sd, "check_input_settings", lambda **kwargs: None)
    monkeypatch.setattr(audio.sd, "RawInputStream", open_stream)
    return opened


def test_list_devices_shows_inputs_only(monkeypatch, capsys):
    """Only devices that can record are listed."""
    monkeypatch.setattr(audio.sd, "query_devices", lambda: DEVICES)

    devices = audio.list_devices()

    assert devices == [(0, "Built-in Microphone", 1), (2, "USB Headset", 2)]
    output = capsys.readouterr().out
    assert "[0] Built-in Microphone (1 input channel)" in output
    assert "[2] USB Headset (2 input channels)" in output
    assert "Speakers" not in output


def test_list_devices_none(monkeypatch, capsys):
    monkeypatch.setattr(audio.sd, "query_devices", lambda: DEVICES[1:2])
    assert audio.list_devices() == []
    assert "No audio input devices found." in capsys.readouterr().out


def test_start_opens_mono_stream(streams):
    """Chunks are sized from the sample rate and chunk length."""
    capture = audio.AudioCapture(sample_rate=16000, chunk_duration_ms=100, device=3)
    capture.start()
    capture.start()

    assert len(streams) == 1
    assert streams[0].started
    assert streams[0].kwargs["blocksize"] == 1600
    assert streams[0].kwargs["channels"] == 1
    assert streams[0].kwargs["device"] == 3
    assert capture.running

    capture.stop()
    assert streams[0].closed
    assert not capture.running


def test_rejected_device(monkeypatch):
    """Settings the device cannot record with are reported as unavailable."""
    def reject(**kwargs):
        raise ValueError("Invalid sample rate")

    monkeypatch.setattr(audio.sd, "check_input_settings", reject)
    capture = audio.AudioCapture(device=7)

    with pytest.raises(MicrophoneUnavailableError, match="device 7"):
        capture.start()
    assert not capture.running


def test_failed_start_closes_stream(monkeypatch):
    """A stream that opens but will not start is closed again."""
    opened = []

    def open_busy_stream(**kwargs):
        opened.append(FakeStream(fail_start=True, **kwargs))
        return opened[-1]

    monkeypatch.setattr(audio.sd, "check_input_settings", lambda **kwargs: None)
    monkeypatch.setattr(audio.sd, "RawInputStream", open_busy_stream)
    capture = audio.AudioCapture()

    with pytest.raises(MicrophoneUnavailableError):
        capture.start()
    assert opened[0].closed
    assert not capture.running


def test_chunks_queued_and_cleared():
    """Recorded chunks wait in the queue until read or discarded."""
    capture = audio.AudioCapture()
    capture._on_chunk(b"\x01\x00", 1, None, None)
    capture._on_chunk(b"\x02\x00", 1, None, None)

    assert capture.get_chunk(timeout=0.1) == b"\x01\x00"
    capture.clear_queue()
    assert capture.get_chunk(timeout=0.01) is None
