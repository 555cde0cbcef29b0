"""Tests for the console front end command handling."""

from __future__ import annotations

import asyncio

from conftest import PCM_FRAME, FakeAnswers, FakeTranscription
from streaming_voice_assistant.cli import ConsoleApp, build_parser
from streaming_voice_assistant.session import SessionStatus
from streaming_voice_assistant.sse import Done, TextDelta


def test_parser_options():
    args = build_parser().parse_args(["--backend-url", "http://localhost:9000", "--verbose"])
    assert args.backend_url == "http://localhost:9000"
    assert args.verbose


def test_commands_drive_the_controller(make_controller, device, sink):
    controller = make_controller(FakeTranscription("q"), FakeAnswers([TextDelta("a"), Done()]))
    app = ConsoleApp(controller, sink)

    async def scenario():
        assert await app.handle("s")
        device.stream.push(PCM_FRAME)
        assert await app.handle("a")
        await asyncio.gather(*app._tasks)
        assert len(controller.history) == 2
        assert await app.handle("x")
        return await app.handle("q")

    assert asyncio.run(scenario()) is False
    assert controller.status is SessionStatus.READY
    assert controller.history.is_empty


def test_rejected_gesture_is_reported(make_controller, sink):
    controller = make_controller()
    app = ConsoleApp(controller, sink)

    async def scenario():
        await app.handle("s")
        await app.handle("f")
        await asyncio.gather(*app._tasks, return_exceptions=True)
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert sink.of("error") == ["There is no conversation to follow up on yet."]


def test_unknown_command(make_controller, sink):
    app = ConsoleApp(make_controller(), sink)
    assert asyncio.run(app.handle("z"))
    assert sink.of("notice") == ["Unknown command: z"]


class BlockingTranscription(FakeTranscription):
    """Never answers; records whether it was cancelled."""

    def __init__(self):
        super().__init__()
        self.cancelled = False

    async def transcribe(self, audio, mime_type):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


def test_quit_waits_for_cancelled_gestures(make_controller, device, sink, monkeypatch):
    transcription = BlockingTranscription()
    controller = make_controller(transcription)
    app = ConsoleApp(controller, sink)
    commands = iter(["s", "a", "q"])

    def fake_input(prompt):
        command = next(commands)
        if command == "a":
            device.stream.push(PCM_FRAME)
        return command

    monkeypatch.setattr("builtins.input", fake_input)

    async def scenario():
        await app.run()
        # Nothing else may run between run() returning and this check
        return transcription.cancelled, set(app._tasks)

    cancelled, remaining = asyncio.run(scenario())
    assert cancelled
    assert not remaining
    assert device.stream.closed
