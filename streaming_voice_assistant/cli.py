#!/usr/bin/env python3
"""
Console front end for the Streaming Voice Assistant.

Commands (one letter, then Enter):
  s  start listening          a  ask: start/stop a gesture for a new question
  f  follow-up on the answer   x  stop and reset the conversation
  k  set API keys              q  quit
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Optional, Set

from .capture import AudioCapture
from .clients import BackendClient, StreamingAnswerClient, TranscriptionClient, build_http_client
from .config import Config
from .credentials import CredentialStore, Credentials
from .errors import AssistantError
from .presentation import ConsoleSink
from .session import GestureKind, SessionController


logger = logging.getLogger(__name__)

PROMPT = "[s]tart [a]sk [f]ollow-up [x]stop [k]eys [q]uit > "


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Voice assistant: record a question, stream the answer")
    parser.add_argument("--backend-url", help="Backend base URL (default from SVA_BACKEND_URL or config)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


class ConsoleApp:
    """Reads commands from stdin and drives one SessionController."""

    def __init__(self, controller: SessionController, sink: ConsoleSink):
        self.controller = controller
        self.sink = sink
        self._tasks: Set[asyncio.Task] = set()

    def _report(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, AssistantError):
            self.sink.show_error(exc.message)
        elif exc is not None:
            logger.error("Gesture task failed", exc_info=exc)

    def _spawn(self, coro):
        # Gestures run in the background so stop stays responsive while processing
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._report)

    async def _ask_keys(self):
        transcription_key = await asyncio.to_thread(getpass.getpass, "Transcription API key: ")
        completion_key = await asyncio.to_thread(getpass.getpass, "Completion API key: ")
        await self.controller.update_credentials(Credentials(
            transcription_key=transcription_key.strip(),
            completion_key=completion_key.strip(),
        ))
        self.sink.show_notice("API keys updated.")

    async def handle(self, command: str) -> bool:
        """Run one command; returns False when the app should exit."""
        command = command.strip().lower()
        try:
            if command == "s":
                await self.controller.start_session()
            elif command == "a":
                self._spawn(self.controller.submit_gesture(GestureKind.NEW))
            elif command == "f":
                self._spawn(self.controller.submit_gesture(GestureKind.EXTEND))
            elif command == "x":
                self.controller.stop()
            elif command == "k":
                await self._ask_keys()
            elif command in ("q", "quit", "exit"):
                return False
            elif command:
                self.sink.show_notice(f"Unknown command: {command}")
        except AssistantError as e:
            self.sink.show_error(e.message)
        return True

    async def run(self):
        self.sink.show_status(self.controller.status)
        try:
            while True:
                line = await asyncio.to_thread(input, PROMPT)
                if not await self.handle(line):
                    break
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            pending = list(self._tasks)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self.controller.close()


async def run_app(config: Config):
    sink = ConsoleSink()
    async with build_http_client(config) as http:
        controller = SessionController(
            capture=AudioCapture(config),
            transcription=TranscriptionClient(http, config),
            answers=StreamingAnswerClient(http, config),
            sink=sink,
            backend=BackendClient(http, config),
            credential_store=CredentialStore(config=config),
            config=config,
        )
        await ConsoleApp(controller, sink).run()


def main(argv: Optional[list] = None):
    """Main entry point for the console assistant."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    overrides = {"backend_url": args.backend_url} if args.backend_url else {}
    config = Config.from_env(**overrides)
    try:
        asyncio.run(run_app(config))
    except KeyboardInterrupt:
        print("\nExiting…")


if __name__ == '__main__':
    main()
