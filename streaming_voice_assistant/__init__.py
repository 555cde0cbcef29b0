#!/usr/bin/env python3
"""
Streaming Voice Assistant
=========================

Press to record a question, press again to send it: the recording is
transcribed, the conversation is posted to the backend, and the answer is
rendered token by token as it streams back as server-sent events.

Features
--------
1. Gesture recording from the default microphone (sounddevice RawInputStream, WAV blobs).
2. Transcription through the backend's POST /transcribe.
3. Streamed answers from POST /query-llm, decoded incrementally regardless of chunk boundaries.
4. Two actions: ask (new exchange, history cleared) and follow-up (extend history).
5. Soft failure: every processing error is shown and the session keeps listening.
6. Reference backend (FastAPI) with whisper transcription and Ollama completions.

Quick Start
-----------
```python
import asyncio
from streaming_voice_assistant.cli import run_app
from streaming_voice_assistant import Config

asyncio.run(run_app(Config(backend_url="http://localhost:3030")))
```
"""

from .capture import AudioCapture, RecordingGesture
from .clients import BackendClient, StreamingAnswerClient, TranscriptionClient, build_http_client
from .config import Config, default_config
from .conversation import Conversation, Role, Turn
from .credentials import CredentialStore, Credentials
from .errors import (
    AssistantError,
    BackendRequestError,
    BackendUnavailable,
    DeviceError,
    PayloadTooLarge,
    PreconditionError,
    ProviderError,
    StreamDecodeError,
    TranscriptionFailed,
    UnsupportedMediaType,
)
from .presentation import ConsoleSink, PresentationSink
from .session import Affordances, GestureKind, SessionController, SessionStatus
from .sse import Done, EventStreamDecoder, StreamError, TextDelta

__version__ = "1.0.0"
__all__ = [
    'AudioCapture',
    'RecordingGesture',
    'BackendClient',
    'StreamingAnswerClient',
    'TranscriptionClient',
    'build_http_client',
    'Config',
    'default_config',
    'Conversation',
    'Role',
    'Turn',
    'CredentialStore',
    'Credentials',
    'AssistantError',
    'BackendRequestError',
    'BackendUnavailable',
    'DeviceError',
    'PayloadTooLarge',
    'PreconditionError',
    'ProviderError',
    'StreamDecodeError',
    'TranscriptionFailed',
    'UnsupportedMediaType',
    'ConsoleSink',
    'PresentationSink',
    'Affordances',
    'GestureKind',
    'SessionController',
    'SessionStatus',
    'Done',
    'EventStreamDecoder',
    'StreamError',
    'TextDelta',
]
