#!/usr/bin/env python3
"""
HTTP clients for the backend: transcription, streamed answers, readiness and keys.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Sequence

import httpx

from .config import default_config
from .conversation import Turn
from .credentials import Credentials
from .errors import (
    BackendRequestError,
    BackendUnavailable,
    PayloadTooLarge,
    ProviderError,
    TranscriptionFailed,
    UnsupportedMediaType,
)
from .sse import Done, EventStreamDecoder, StreamChunk


logger = logging.getLogger(__name__)

# Failures meaning the backend is not reachable at all (not bound yet, refused)
UNREACHABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)

# Forwarded with provider requests once a key is set; the bundled backend ignores it
PROVIDER_KEY_HEADER = "X-Provider-Key"

FILE_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
}


def build_http_client(config=None, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Create the shared AsyncClient pointed at the backend."""
    config = config or default_config
    return httpx.AsyncClient(
        base_url=config.backend_url,
        timeout=config.request_timeout_sec,
        transport=transport,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return ""


def _base_mime(mime_type: str) -> str:
    return mime_type.split(";")[0].strip().lower()


class _ProviderKeyMixin:
    """Holds the provider key a client forwards with its own requests."""

    api_key = ""

    def set_credentials(self, api_key: str):
        self.api_key = api_key or ""
        logger.debug("%s reconfigured with new credentials", type(self).__name__)

    def _key_headers(self) -> dict:
        return {PROVIDER_KEY_HEADER: self.api_key} if self.api_key else {}


class TranscriptionClient(_ProviderKeyMixin):
    """Sends one recording to POST /transcribe and returns its transcript."""

    def __init__(self, http: httpx.AsyncClient, config=None):
        self.config = config or default_config
        self.http = http

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Return the stripped transcript; an empty string means nothing was said."""
        if not audio:
            raise TranscriptionFailed("No audio to transcribe.")
        if len(audio) > self.config.max_upload_bytes:
            raise PayloadTooLarge()
        base = _base_mime(mime_type)
        if base not in self.config.allowed_mime_types:
            raise UnsupportedMediaType()

        filename = f"recording.{FILE_EXTENSIONS.get(base, 'bin')}"
        files = {"audio": (filename, audio, mime_type)}
        try:
            response = await self.http.post("/transcribe", files=files, headers=self._key_headers())
        except UNREACHABLE_ERRORS as e:
            raise BackendUnavailable() from e
        except httpx.HTTPError as e:
            raise TranscriptionFailed(f"Failed to transcribe audio: {e}") from e

        if response.status_code == 413:
            raise PayloadTooLarge(_error_detail(response) or None)
        if response.status_code == 415:
            raise UnsupportedMediaType(_error_detail(response) or None)
        if response.is_error:
            raise TranscriptionFailed(
                _error_detail(response)
                or f"Transcription failed with status: {response.status_code}"
            )

        try:
            transcript = response.json()["transcript"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranscriptionFailed("Malformed transcription response.") from e
        if not isinstance(transcript, str):
            raise TranscriptionFailed("Malformed transcription response.")
        return transcript.strip()


class StreamingAnswerClient(_ProviderKeyMixin):
    """Posts the conversation to POST /query-llm and yields decoded stream chunks.

    The yielded sequence always ends with exactly one terminal chunk, unless a
    decode or transport error is raised first. A connection that closes
    without a terminal event ends with ``Done(closed_early=True)`` so the text
    received so far is still finalized.
    """

    def __init__(self, http: httpx.AsyncClient, config=None):
        self.config = config or default_config
        self.http = http

    async def stream_answer(self, history: Sequence[Turn]) -> AsyncIterator[StreamChunk]:
        body = {"conversationHistory": [turn.to_message() for turn in history]}
        decoder = EventStreamDecoder()
        try:
            async with self.http.stream(
                "POST", "/query-llm", json=body, headers=self._key_headers()
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise ProviderError(
                        _error_detail(response)
                        or f"LLM query failed: {response.status_code}"
                    )
                async for chunk in self._decode(response, decoder):
                    yield chunk
                    if decoder.finished:
                        return
        except UNREACHABLE_ERRORS as e:
            raise BackendUnavailable() from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to get response from AI: {e}") from e

        decoder.close()
        logger.warning("Answer stream closed without a terminal event; finalizing received text")
        yield Done(closed_early=True)

    async def _decode(self, response: httpx.Response, decoder: EventStreamDecoder) -> AsyncIterator[StreamChunk]:
        raw = response.aiter_bytes()
        while True:
            try:
                data = await asyncio.wait_for(raw.__anext__(), self.config.stream_idle_timeout_sec)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise ProviderError("Answer stream stalled.")
            except httpx.RemoteProtocolError as e:
                # Peer dropped the connection mid-body; treat like a close
                logger.warning("Answer stream interrupted: %s", e)
                return
            for chunk in decoder.feed(data):
                yield chunk


class BackendClient:
    """Readiness probe and credential push."""

    def __init__(self, http: httpx.AsyncClient, config=None):
        self.config = config or default_config
        self.http = http

    async def probe(self):
        await self._post_json("/start-recording-session", {})

    async def push_credentials(self, credentials: Credentials):
        await self._post_json("/update-api-keys", credentials.to_payload())

    async def _post_json(self, path: str, payload: dict) -> httpx.Response:
        try:
            response = await self.http.post(path, json=payload)
        except UNREACHABLE_ERRORS as e:
            raise BackendUnavailable() from e
        except httpx.HTTPError as e:
            raise BackendRequestError(f"Request to {path} failed: {e}") from e
        if response.is_error:
            raise BackendRequestError(
                _error_detail(response) or f"Request to {path} failed with status: {response.status_code}"
            )
        return response
