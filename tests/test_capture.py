"""Tests for AudioCapture gesture recording."""

from __future__ import annotations

import io
import wave

import pytest

from conftest import PCM_FRAME, FakeDevice
from streaming_voice_assistant.capture import AudioCapture
from streaming_voice_assistant.errors import DeviceError


@pytest.fixture()
def opened(capture):
    capture.open()
    return capture


class TestOpen:
    def test_open_is_idempotent(self, capture, device):
        capture.open()
        first = device.stream
        capture.open()
        assert device.stream is first
        assert capture.is_open

    def test_open_failure_is_device_error(self, config):
        capture = AudioCapture(config, stream_factory=FakeDevice(fail_on_open=True))
        with pytest.raises(DeviceError, match="no input device"):
            capture.open()
        assert not capture.is_open

    def test_start_without_open(self, capture):
        with pytest.raises(DeviceError):
            capture.start_gesture()

    def test_close_releases_device(self, opened, device):
        opened.start_gesture()
        opened.close()
        assert device.stream.closed
        assert not opened.is_open
        assert not opened.recording


class TestGestures:
    def test_start_and_stop_are_idempotent(self, opened, device):
        opened.start_gesture()
        opened.start_gesture()
        assert device.stream.starts == 1
        device.stream.push(PCM_FRAME)
        gesture = opened.stop_gesture()
        assert gesture is not None and not gesture.is_empty
        assert opened.stop_gesture() is None
        assert opened.cancel_gesture() is None

    def test_stop_yields_wav(self, opened, device, config):
        opened.start_gesture()
        device.stream.push(PCM_FRAME)
        device.stream.push(PCM_FRAME)
        gesture = opened.stop_gesture()
        assert gesture.mime_type == "audio/wav"
        assert not gesture.cancelled
        with wave.open(io.BytesIO(gesture.audio), "rb") as wav:
            assert wav.getframerate() == config.sample_rate
            assert wav.getnchannels() == 1
            assert wav.getsampwidth() == 2
            assert wav.readframes(wav.getnframes()) == PCM_FRAME * 2

    def test_zero_frames_is_empty_not_cancelled(self, opened):
        opened.start_gesture()
        gesture = opened.stop_gesture()
        assert gesture.is_empty
        assert gesture.audio == b""
        assert not gesture.cancelled

    def test_cancel_discards_audio(self, opened, device):
        opened.start_gesture()
        device.stream.push(PCM_FRAME)
        gesture = opened.cancel_gesture()
        assert gesture.cancelled
        assert gesture.is_empty
        assert not device.stream.active

    def test_frames_outside_gesture_are_dropped(self, opened, device):
        device.stream.push(PCM_FRAME)
        opened.start_gesture()
        device.stream.push(PCM_FRAME)
        opened.stop_gesture()
        device.stream.push(PCM_FRAME)
        opened.start_gesture()
        gesture = opened.stop_gesture()
        assert gesture.is_empty

    def test_failed_start_leaves_capture_idle(self, config):
        capture = AudioCapture(config, stream_factory=FakeDevice(fail_on_start=True))
        capture.open()
        with pytest.raises(DeviceError, match="Mic start failed"):
            capture.start_gesture()
        assert not capture.recording
