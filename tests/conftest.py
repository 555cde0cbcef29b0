"""Shared fixtures: fake audio device, recording sink and scripted backends."""

from __future__ import annotations

import json

import pytest

from streaming_voice_assistant.capture import AudioCapture
from streaming_voice_assistant.config import Config
from streaming_voice_assistant.presentation import PresentationSink
from streaming_voice_assistant.session import SessionController
from streaming_voice_assistant.sse import Done


def sse(*payloads) -> bytes:
    """Encode payloads as wire events."""
    return b"".join(f"data: {json.dumps(p, ensure_ascii=False)}\n\n".encode("utf-8") for p in payloads)


class FakeStream:
    """Stands in for sounddevice.RawInputStream; tests push frames by hand."""

    def __init__(self, callback, fail_on_start=False):
        self.callback = callback
        self.fail_on_start = fail_on_start
        self.active = False
        self.closed = False
        self.starts = 0

    def start(self):
        if self.fail_on_start:
            raise RuntimeError("device busy")
        self.active = True
        self.starts += 1

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def push(self, data: bytes):
        self.callback(data, len(data) // 2, None, None)


class FakeDevice:
    """Stream factory recording the stream it created."""

    def __init__(self, fail_on_open=False, fail_on_start=False):
        self.fail_on_open = fail_on_open
        self.fail_on_start = fail_on_start
        self.stream = None

    def __call__(self, config, callback):
        if self.fail_on_open:
            raise OSError("no input device")
        self.stream = FakeStream(callback, fail_on_start=self.fail_on_start)
        return self.stream


class RecordingSink(PresentationSink):
    """Collects every presentation call as (name, arg) tuples."""

    def __init__(self):
        self.events = []

    def _add(self, name, arg=None):
        self.events.append((name, arg))

    def show_status(self, status):
        self._add("status", status.value)

    def clear(self):
        self._add("clear")

    def show_user(self, text):
        self._add("user", text)

    def show_notice(self, text):
        self._add("notice", text)

    def show_error(self, text):
        self._add("error", text)

    def begin_answer(self):
        self._add("begin")

    def render_delta(self, text):
        self._add("delta", text)

    def end_answer(self, text):
        self._add("end", text)

    def discard_answer(self):
        self._add("discard")

    def names(self):
        return [name for name, _ in self.events]

    def of(self, name):
        return [arg for n, arg in self.events if n == name]

    @property
    def rendered(self) -> str:
        return "".join(self.of("delta"))


class FakeTranscription:
    """Returns scripted transcripts or raises scripted errors, in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.before_return = None
        self.api_key = None

    def set_credentials(self, api_key):
        self.api_key = api_key

    async def transcribe(self, audio, mime_type):
        self.calls.append((audio, mime_type))
        if self.before_return is not None:
            self.before_return()
        result = self.results.pop(0) if self.results else ""
        if isinstance(result, Exception):
            raise result
        return result


class FakeAnswers:
    """Yields a scripted chunk list per call; an Exception item is raised."""

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.calls = []
        self.on_chunk = None
        self.closed = 0
        self.api_key = None

    def set_credentials(self, api_key):
        self.api_key = api_key

    async def stream_answer(self, history):
        self.calls.append(list(history))
        script = self.scripts.pop(0) if self.scripts else [Done()]
        try:
            for item in script:
                if isinstance(item, Exception):
                    raise item
                if self.on_chunk is not None:
                    self.on_chunk(item)
                yield item
        finally:
            self.closed += 1


class FakeBackend:
    def __init__(self, probe_error=None, push_error=None):
        self.probe_error = probe_error
        self.push_error = push_error
        self.probes = 0
        self.pushed = []

    async def probe(self):
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error

    async def push_credentials(self, credentials):
        self.pushed.append(credentials)
        if self.push_error is not None:
            raise self.push_error


async def no_resume_delay(controller, generation):
    controller.resume_if_still_listening(generation)


PCM_FRAME = b"\x01\x00" * 480


@pytest.fixture()
def config(tmp_path):
    return Config(
        resume_delay_sec=0.0,
        credentials_path=tmp_path / "credentials.json",
    )


@pytest.fixture()
def device():
    return FakeDevice()


@pytest.fixture()
def capture(config, device):
    return AudioCapture(config, stream_factory=device)


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def make_controller(config, capture, sink):
    def build(transcription=None, answers=None, backend=None, credential_store=None):
        return SessionController(
            capture=capture,
            transcription=transcription or FakeTranscription(),
            answers=answers or FakeAnswers(),
            sink=sink,
            backend=backend,
            credential_store=credential_store,
            config=config,
            resume_policy=no_resume_delay,
        )
    return build
