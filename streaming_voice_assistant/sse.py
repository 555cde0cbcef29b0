#!/usr/bin/env python3
"""
Server-sent event framing for answer streams.

Each event on the wire is ``data: <json>`` followed by a blank line. The
payload is one of ``{"text": ...}``, ``{"error": ...}`` or ``{"event": "done"}``.
"""

import codecs
import json
from dataclasses import dataclass
from typing import Iterator, Union

from .errors import StreamDecodeError


EVENT_DELIMITER = "\n\n"
DATA_PREFIX = "data: "


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StreamError:
    message: str


@dataclass(frozen=True)
class Done:
    # True when the connection closed without a terminal event.
    closed_early: bool = False


StreamChunk = Union[TextDelta, StreamError, Done]


def format_event(payload: dict) -> str:
    """Encode one payload as a wire event."""
    return f"{DATA_PREFIX}{json.dumps(payload, ensure_ascii=False)}{EVENT_DELIMITER}"


class EventStreamDecoder:
    """Incremental decoder turning raw bytes into stream chunks.

    Bytes may arrive split anywhere, including inside a multi-byte UTF-8
    sequence. A unit is parsed only once its ``\\n\\n`` terminator has arrived;
    single newlines inside a unit are part of the payload. After a terminal
    chunk (``StreamError`` or ``Done``) every further byte is ignored.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False

    def feed(self, data: bytes) -> Iterator[StreamChunk]:
        """Consume ``data`` and yield every chunk completed by it, in order.

        Raises ``StreamDecodeError`` at the first malformed unit; chunks from
        earlier units have already been yielded by then.
        """
        if self.finished:
            return
        self._buffer += self._decoder.decode(data)
        while not self.finished:
            index = self._buffer.find(EVENT_DELIMITER)
            if index < 0:
                break
            unit = self._buffer[:index].strip()
            self._buffer = self._buffer[index + len(EVENT_DELIMITER):]
            chunk = self._parse_unit(unit)
            if chunk is None:
                continue
            if isinstance(chunk, (StreamError, Done)):
                self.finished = True
                self._buffer = ""
            yield chunk

    def close(self) -> None:
        """Flush the byte decoder; an unterminated trailing unit is dropped."""
        self._decoder.decode(b"", final=True)
        self._buffer = ""

    def _parse_unit(self, unit: str):
        if not unit.startswith(DATA_PREFIX):
            # Comments, keep-alives and other fields carry no answer text
            return None
        raw = unit[len(DATA_PREFIX):]
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise StreamDecodeError() from exc
        if not isinstance(payload, dict):
            raise StreamDecodeError()

        text = payload.get("text")
        if text:
            if not isinstance(text, str):
                raise StreamDecodeError()
            return TextDelta(text)
        error = payload.get("error")
        if error:
            return StreamError(str(error))
        if payload.get("event") == "done":
            return Done()
        return None
