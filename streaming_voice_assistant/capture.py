#!/usr/bin/env python3
"""
Microphone capture for recording gestures.
"""

import io
import logging
import threading
import wave
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import default_config
from .errors import DeviceError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingGesture:
    """Audio captured between one start-record and stop-record instant.

    ``audio`` is empty when the device delivered no frames. A cancelled
    gesture never carries audio and is never transcribed.
    """

    audio: bytes
    mime_type: str
    cancelled: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.audio


def default_stream_factory(config, callback):
    """Open a 16-bit raw input stream on the default microphone."""
    import sounddevice as sd

    return sd.RawInputStream(
        samplerate=config.sample_rate,
        blocksize=config.block_samples,
        channels=config.channels,
        dtype='int16',
        callback=callback,
    )


class AudioCapture:
    """Owns one input stream per session and records one gesture at a time.

    ``start_gesture`` and ``stop_gesture`` are idempotent: the UI and the
    automatic resume logic may both call them for the same gesture.
    """

    def __init__(self, config=None, stream_factory: Optional[Callable] = None):
        self.config = config or default_config
        self._stream_factory = stream_factory or default_stream_factory
        self.stream = None
        self._frames: List[bytes] = []
        self._lock = threading.Lock()
        self._recording = False
        self.overflow_count = 0

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    @property
    def recording(self) -> bool:
        return self._recording

    def open(self):
        """Acquire the capture device; a no-op when already open."""
        if self.stream is not None:
            return
        try:
            self.stream = self._stream_factory(self.config, self._callback)
        except Exception as e:
            raise DeviceError(f"Could not access microphone. Please check permissions. {e}") from e
        logger.debug("Capture device opened")

    def _callback(self, indata, frames, time_info, status):
        """Audio callback; runs on the device thread."""
        if status and getattr(status, "input_overflow", False):
            # Tolerated; frames are still usable
            self.overflow_count += 1
        with self._lock:
            if self._recording:
                self._frames.append(bytes(indata))

    def start_gesture(self):
        if self._recording:
            return
        if self.stream is None:
            raise DeviceError("Audio recorder not ready. Start listening first.")
        with self._lock:
            self._frames = []
            self._recording = True
        try:
            self.stream.start()
        except Exception as e:
            with self._lock:
                self._recording = False
            raise DeviceError(f"Mic start failed: {e}") from e
        logger.debug("Gesture recording started")

    def stop_gesture(self) -> Optional[RecordingGesture]:
        """Stop recording and return the gesture, or None if nothing was recording."""
        frames = self._halt()
        if frames is None:
            return None
        pcm = b"".join(frames)
        logger.debug("Gesture recording stopped with %d bytes of PCM", len(pcm))
        return RecordingGesture(
            audio=self._encode_wav(pcm) if pcm else b"",
            mime_type=self.config.recording_mime_type,
        )

    def cancel_gesture(self) -> Optional[RecordingGesture]:
        """Stop recording and discard whatever was captured."""
        if self._halt() is None:
            return None
        logger.debug("Gesture recording cancelled")
        return RecordingGesture(audio=b"", mime_type=self.config.recording_mime_type, cancelled=True)

    def _halt(self) -> Optional[List[bytes]]:
        if not self._recording:
            return None
        with self._lock:
            self._recording = False
            frames, self._frames = self._frames, []
        try:
            self.stream.stop()
        except Exception as e:
            logger.debug("Ignoring error while stopping capture stream: %s", e)
        return frames

    def _encode_wav(self, pcm: bytes) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(self.config.channels)
            wav.setsampwidth(2)
            wav.setframerate(self.config.sample_rate)
            wav.writeframes(pcm)
        return buffer.getvalue()

    def close(self):
        """Release the device."""
        self._halt()
        if self.stream is not None:
            try:
                self.stream.close()
            except Exception as e:
                logger.debug("Ignoring error while closing capture stream: %s", e)
            self.stream = None
