#!/usr/bin/env python3
"""
Configuration settings for the Streaming Voice Assistant using Pydantic.
"""

import os
from pathlib import Path
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


ENV_PREFIX = "SVA_"


class Config(BaseModel):
    """
    Configuration class for the Streaming Voice Assistant using Pydantic for validation.

    One instance covers both sides of the app: the session client (capture,
    backend URL, timeouts) and the backend server (upload limits, providers).
    """

    model_config = ConfigDict(
        extra='forbid',  # Don't allow extra fields
        validate_assignment=True,  # Validate on assignment
        frozen=False,  # Allow modification after creation
    )

    # Backend connection
    backend_url: str = Field(
        default="http://localhost:3030",
        description="Base URL of the backend serving /transcribe and /query-llm"
    )

    request_timeout_sec: float = Field(
        default=30.0,
        description="Timeout for request/response calls to the backend",
        gt=0.0,
        le=600.0
    )

    stream_idle_timeout_sec: float = Field(
        default=60.0,
        description="Longest wait for the next byte of an answer stream before it counts as stalled",
        gt=0.0,
        le=3600.0
    )

    resume_delay_sec: float = Field(
        default=0.5,
        description="Delay before the recorder resumes after a finished or failed exchange",
        ge=0.0,
        le=10.0
    )

    # Audio Configuration
    sample_rate: int = Field(
        default=16000,
        description="Audio sample rate in Hz",
        ge=8000,  # Greater than or equal to 8000
        le=48000  # Less than or equal to 48000
    )

    channels: int = Field(
        default=1,
        description="Number of capture channels",
        ge=1,
        le=2
    )

    block_ms: int = Field(
        default=30,
        description="Milliseconds per capture block delivered by the audio device",
        ge=1,
        le=500
    )

    recording_mime_type: str = Field(
        default="audio/wav",
        description="MIME type of the blobs produced by a recording gesture"
    )

    # Local persisted state
    credentials_path: Path = Field(
        default=Path.home() / ".streaming_voice_assistant" / "credentials.json",
        description="File holding provider credentials pushed to the backend at session start"
    )

    # Backend server
    server_host: str = Field(
        default="127.0.0.1",
        description="Interface the backend binds to"
    )

    server_port: int = Field(
        default=3030,
        description="Port the backend listens on",
        ge=1,
        le=65535
    )

    allowed_mime_types: List[str] = Field(
        default=["audio/webm", "audio/ogg", "audio/wav", "audio/mpeg"],
        description="Audio MIME types accepted by /transcribe"
    )

    max_upload_bytes: int = Field(
        default=100 * 1024 * 1024,
        description="Largest audio upload accepted (bytes)",
        ge=1
    )

    max_json_bytes: int = Field(
        default=1024 * 1024,
        description="Largest JSON request body accepted (bytes)",
        ge=1
    )

    cors_origin_regex: str = Field(
        default=r"^http://localhost(:\d+)?$",
        description="Origins allowed to call the backend from a browser"
    )

    rate_limit: str = Field(
        default="30/minute",
        description="Requests allowed per client address (slowapi limit string)"
    )

    transcription_api_key: str = Field(
        default="",
        description="Transcription provider key used until one is pushed",
        repr=False
    )

    completion_api_key: str = Field(
        default="",
        description="Completion provider key used until one is pushed",
        repr=False
    )

    # Speech-to-Text Configuration
    transcription_backend: Literal["whisper"] = Field(
        default="whisper",
        description="Transcription provider used by the backend"
    )

    whisper_model: str = Field(
        default="small",
        description="Whisper model to use for speech-to-text"
    )

    whisper_compute: Literal["auto", "cpu", "cuda"] = Field(
        default="auto",
        description="Compute device for Whisper model"
    )

    # LLM Configuration
    completion_backend: Literal["ollama"] = Field(
        default="ollama",
        description="Completion provider used by the backend"
    )

    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama server address"
    )

    ollama_model: str = Field(
        default="gemma2:9b",
        description="Ollama model name to use for chat completion"
    )

    temperature: float = Field(
        default=0.7,
        description="Sampling temperature for the completion model",
        ge=0.0,
        le=2.0
    )

    max_tokens: int = Field(
        default=1024,
        description="Maximum tokens per LLM response",
        ge=1,
        le=8192
    )

    # System prompt
    system_prompt: str = Field(
        default="""
You are my in-class assistant. I provide transcriptions of my teacher's questions or statements as they happen.
Your role is to help me quickly understand and formulate responses to the teacher.

1. Respond only in the language of the transcribed input.
2. Give the direct answer. Make it clear and complete, without unnecessary elaboration.
3. Omit greetings, sign-offs, apologies and conversational filler.
4. Use markdown (bold, lists) where it helps readability.
""",
        description="System prompt prepended to every completion request"
    )

    # Computed properties (derived from other fields)
    @computed_field
    @property
    def block_samples(self) -> int:
        """Number of audio samples per capture block."""
        return int(self.sample_rate * self.block_ms / 1000)

    @computed_field
    @property
    def bytes_per_second(self) -> int:
        """16-bit PCM throughput of the capture stream."""
        return self.sample_rate * self.channels * 2

    @field_validator('allowed_mime_types')
    @classmethod
    def validate_allowed_mime_types(cls, v):
        """Ensure the MIME allow-list is not empty and normalized."""
        if not v:
            raise ValueError("allowed_mime_types cannot be empty")
        return [m.strip().lower() for m in v]

    @field_validator('system_prompt')
    @classmethod
    def validate_system_prompt(cls, v):
        """Ensure system prompt is not empty."""
        if not v.strip():
            raise ValueError("system_prompt cannot be empty")
        return v

    @field_validator('backend_url')
    @classmethod
    def validate_backend_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("backend_url must be an http(s) URL")
        return v.rstrip("/")

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "Config":
        """Build a config from SVA_* environment variables, then explicit overrides."""
        environ = os.environ if environ is None else environ
        values = {}
        for name, field in cls.model_fields.items():
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if field.annotation == List[str]:
                values[name] = [part for part in raw.split(",") if part.strip()]
            else:
                values[name] = raw
        values.update(overrides)
        return cls(**values)


# Default configuration instance
default_config = Config()
