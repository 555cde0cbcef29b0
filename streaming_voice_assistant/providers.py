#!/usr/bin/env python3
"""
Transcription and completion providers used by the backend server.
"""

import asyncio
import logging
import sys
import wave
from typing import AsyncIterator, Dict, List, Optional, Protocol

import numpy as np
import ollama

from .config import default_config


logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


class Reconfigurable(Protocol):
    """A provider client whose API key can be rotated without a restart."""

    def set_credentials(self, api_key: str) -> None:
        ...


class BaseTranscriber:
    """Base class for transcription providers."""

    async def transcribe(self, path: str, mime_type: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def set_credentials(self, api_key: str):
        pass


class BaseResponder:
    """Base class for completion providers streaming answer text."""

    def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def set_credentials(self, api_key: str):
        pass


class WhisperTranscriber(BaseTranscriber):
    """Local openai-whisper model; loaded on first use.

    16 kHz mono WAV uploads are decoded in-process. Every other container
    goes through whisper's ffmpeg loader.
    """

    def __init__(self, config=None, model_name=None, compute=None):
        self.config = config or default_config
        self.model_name = model_name or self.config.whisper_model
        self.compute = compute or self.config.whisper_compute
        try:
            import whisper  # noqa: F401
        except ImportError:
            print("[WhisperTranscriber] Missing packages. Install: pip install openai-whisper", file=sys.stderr)
            raise
        self.device = None
        self.model = None
        self._load_lock = asyncio.Lock()

    def _select_device(self, compute: str) -> str:
        if compute == 'cpu':
            return 'cpu'
        try:
            import torch
            if torch.cuda.is_available():
                return 'cuda'
        except Exception:
            pass
        if compute == 'cuda':
            logger.warning("CUDA requested but not available, falling back to CPU")
        return 'cpu'

    async def _ensure_model(self):
        async with self._load_lock:
            if self.model is None:
                import whisper
                self.device = self._select_device(self.compute)
                logger.info("Loading whisper model %s on %s", self.model_name, self.device)
                self.model = await asyncio.to_thread(whisper.load_model, self.model_name, device=self.device)
        return self.model

    def _load_audio(self, path: str, mime_type: str) -> np.ndarray:
        if mime_type == "audio/wav":
            audio = _read_pcm_wav(path)
            if audio is not None:
                return audio
        import whisper
        return whisper.load_audio(path)

    async def transcribe(self, path: str, mime_type: str) -> str:
        model = await self._ensure_model()
        audio = await asyncio.to_thread(self._load_audio, path, mime_type)
        if not len(audio):
            return ""
        result = await asyncio.to_thread(
            model.transcribe, audio, verbose=None, fp16=self.device == 'cuda'
        )
        return result["text"].strip()

    def set_credentials(self, api_key: str):
        # The local model needs no key
        logger.debug("WhisperTranscriber ignores API keys")


def _read_pcm_wav(path: str) -> Optional[np.ndarray]:
    """Decode 16-bit mono 16 kHz WAV to float32 in [-1, 1]; None for anything else."""
    try:
        with wave.open(path, "rb") as wav:
            if (wav.getnchannels() != 1 or wav.getsampwidth() != 2
                    or wav.getframerate() != WHISPER_SAMPLE_RATE):
                return None
            pcm = wav.readframes(wav.getnframes())
    except (wave.Error, EOFError):
        return None
    return np.frombuffer(pcm, dtype=np.int16).astype(np.float32) / 32768.0


class OllamaResponder(BaseResponder):
    """Streams chat completions from an Ollama server.

    The completion key is sent as a bearer token, which hosted Ollama
    endpoints require; a local server ignores it.
    """

    def __init__(self, config=None, api_key: Optional[str] = None):
        self.config = config or default_config
        if api_key is None:
            api_key = self.config.completion_api_key
        self.client = self._build_client(api_key)

    def _build_client(self, api_key: str) -> ollama.AsyncClient:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        return ollama.AsyncClient(host=self.config.ollama_host, headers=headers)

    def set_credentials(self, api_key: str):
        self.client = self._build_client(api_key)
        logger.info("Completion client reconfigured with new credentials")

    async def stream(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        client = self.client
        parts = await client.chat(
            model=self.config.ollama_model,
            messages=messages,
            stream=True,
            options={"num_predict": self.config.max_tokens, "temperature": self.config.temperature},
        )
        async for part in parts:
            content = part["message"]["content"]
            if content:
                yield content


def create_transcriber(config=None) -> BaseTranscriber:
    """Factory function to create the transcription provider based on configuration."""
    config = config or default_config
    if config.transcription_backend == "whisper":
        transcriber = WhisperTranscriber(config)
        if config.transcription_api_key:
            transcriber.set_credentials(config.transcription_api_key)
        return transcriber
    raise ValueError(f"Unknown transcription backend: {config.transcription_backend}")


def create_responder(config=None) -> BaseResponder:
    """Factory function to create the completion provider based on configuration."""
    config = config or default_config
    if config.completion_backend == "ollama":
        return OllamaResponder(config)
    raise ValueError(f"Unknown completion backend: {config.completion_backend}")
