#!/usr/bin/env python3
"""
Presentation sinks: where the session renders transcripts, answers and errors.
"""

import re
import sys
from typing import Optional, TextIO


# CSI/OSC escape sequences and other C0 controls except tab and newline
_CONTROL_SEQUENCES = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b."
    r"|[\x00-\x08\x0b-\x1f\x7f]"
)


def sanitize(text: str) -> str:
    """Strip terminal control sequences from provider text."""
    return _CONTROL_SEQUENCES.sub("", text)


class PresentationSink:
    """Base class for sinks. Every hook is optional."""

    def show_status(self, status):
        pass

    def clear(self):
        pass

    def show_user(self, text: str):
        pass

    def show_notice(self, text: str):
        pass

    def show_error(self, text: str):
        pass

    def begin_answer(self):
        pass

    def render_delta(self, text: str):
        pass

    def end_answer(self, text: str):
        pass

    def discard_answer(self):
        pass


class ConsoleSink(PresentationSink):
    """Prints the session to a terminal, streaming answer deltas as they arrive."""

    STATUS_LINES = {
        "Ready": "⏻ Ready to listen",
        "Listening": "🎤 Listening…",
        "Processing": "⚙️ Processing…",
    }

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out or sys.stdout
        self._answer_open = False
        self._answer_written = False

    def _write(self, text: str):
        self.out.write(text)
        self.out.flush()

    def _close_answer_line(self):
        if self._answer_open and self._answer_written:
            self._write("\n")
        self._answer_open = False
        self._answer_written = False

    def show_status(self, status):
        self._close_answer_line()
        name = getattr(status, "value", status)
        self._write(self.STATUS_LINES.get(name, str(name)) + "\n")

    def clear(self):
        self._close_answer_line()
        self._write("\n" + "─" * 40 + "\n")

    def show_user(self, text: str):
        self._close_answer_line()
        self._write(f"YOU: {sanitize(text)}\n")

    def show_notice(self, text: str):
        self._close_answer_line()
        self._write(f"{sanitize(text)}\n")

    def show_error(self, text: str):
        self._close_answer_line()
        self._write(f"Error: {sanitize(text)}\n")

    def begin_answer(self):
        self._close_answer_line()
        self._answer_open = True
        self._answer_written = False

    def render_delta(self, text: str):
        clean = sanitize(text)
        if not clean:
            return
        if not self._answer_written:
            self._write("🤖 ")
            self._answer_written = True
        self._write(clean)

    def end_answer(self, text: str):
        self._close_answer_line()

    def discard_answer(self):
        # Nothing was printed for an answer that produced no text
        self._close_answer_line()
