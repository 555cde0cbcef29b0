#!/usr/bin/env python3
"""
Backend server exposing transcription and streamed answers over HTTP.

Endpoints:
  POST /start-recording-session   readiness probe
  POST /transcribe                multipart ``audio`` upload -> {"transcript": ...}
  POST /query-llm                 {"conversationHistory": [...]} -> text/event-stream
  POST /update-api-keys           {"transcriptionKey", "completionKey"}
"""

import json
import logging
import os
import re
import tempfile
from typing import List, Optional, Tuple

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import Config, default_config
from .providers import BaseResponder, BaseTranscriber, Reconfigurable, create_responder, create_transcriber
from .sse import format_event


logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 1024 * 1024
VALID_ROLES = ("user", "assistant")

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'none'; script-src 'self'; connect-src 'self' http://localhost:*; "
        "img-src 'self'; style-src 'self' 'unsafe-inline'; object-src 'none'; "
        "base-uri 'none'; form-action 'none'; frame-ancestors 'none'"
    ),
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "X-Content-Type-Options": "nosniff",
}


def _detail(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _safe_suffix(filename: Optional[str]) -> str:
    name = os.path.basename(filename or "")
    _, ext = os.path.splitext(name)
    return re.sub(r"[^a-zA-Z0-9.]", "_", ext)[:16]


def _remove_quietly(path: str):
    try:
        os.unlink(path)
    except OSError as e:
        logger.debug("Could not remove temp upload %s: %s", path, e)


class UploadTooLarge(Exception):
    pass


async def _spool_upload(upload: UploadFile, limit: int) -> str:
    """Copy an upload to a temp file, enforcing the size limit while reading."""
    fd, path = tempfile.mkstemp(prefix="sva-upload-", suffix=_safe_suffix(upload.filename))
    total = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > limit:
                    raise UploadTooLarge()
                out.write(chunk)
    except BaseException:
        _remove_quietly(path)
        raise
    return path


def _too_many_requests(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # Called synchronously by SlowAPIMiddleware
    logger.warning("Rate limit exceeded for %s", get_remote_address(request))
    return _detail(429, "Too many requests, please try again later.")


def _valid_history(history) -> bool:
    return all(
        isinstance(msg, dict)
        and msg.get("role") in VALID_ROLES
        and isinstance(msg.get("content"), str)
        for msg in history
    )


def create_app(
    config=None,
    transcriber: Optional[BaseTranscriber] = None,
    responder: Optional[BaseResponder] = None,
) -> FastAPI:
    """Build the backend app; providers default to the configured backends."""
    config = config or default_config
    transcriber = transcriber if transcriber is not None else create_transcriber(config)
    responder = responder if responder is not None else create_responder(config)

    app = FastAPI(title="Streaming Voice Assistant Backend")
    app.state.config = config
    app.state.transcriber = transcriber
    app.state.responder = responder

    # Last added runs first: CORS, then security headers, then the rate limit
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[config.rate_limit])
    app.add_exception_handler(RateLimitExceeded, _too_many_requests)
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=config.cors_origin_regex,
        allow_credentials=False,
        allow_methods=["POST"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return _detail(500, "Internal server error.")

    async def _read_json(request: Request):
        body = await request.body()
        if len(body) > config.max_json_bytes:
            return None, _detail(413, "Request body too large.")
        try:
            return json.loads(body or b"null"), None
        except ValueError:
            return None, _detail(400, "Request body must be JSON.")

    @app.post("/start-recording-session")
    async def start_recording_session():
        return {"message": "Backend ready for audio."}

    @app.post("/transcribe")
    async def transcribe(audio: Optional[UploadFile] = File(None)):
        if audio is None:
            return _detail(400, "No audio file uploaded.")
        mime_type = (audio.content_type or "").split(";")[0].strip().lower()
        if mime_type not in config.allowed_mime_types:
            return _detail(415, "Invalid file type. Only audio files are allowed.")

        try:
            path = await _spool_upload(audio, config.max_upload_bytes)
        except UploadTooLarge:
            return _detail(413, "Audio file is too large.")

        try:
            transcript = await app.state.transcriber.transcribe(path, mime_type)
        except Exception:
            logger.exception("Transcription provider failed")
            return _detail(500, "Failed to transcribe audio.")
        finally:
            _remove_quietly(path)
        return {"transcript": transcript or ""}

    @app.post("/query-llm")
    async def query_llm(request: Request):
        payload, error = await _read_json(request)
        if error is not None:
            return error
        history = payload.get("conversationHistory") if isinstance(payload, dict) else None
        if not history or not isinstance(history, list):
            return _detail(400, "Conversation history is required and cannot be empty.")
        if not _valid_history(history):
            return _detail(400, "Invalid conversation history format.")

        messages = [{"role": "system", "content": config.system_prompt}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in history)
        provider = app.state.responder

        async def events():
            try:
                async for text in provider.stream(messages):
                    if text:
                        yield format_event({"text": text})
                yield format_event({"event": "done"})
            except Exception:
                logger.exception("Completion provider failed mid-stream")
                yield format_event({"error": "LLM processing failed."})

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/update-api-keys")
    async def update_api_keys(request: Request):
        payload, error = await _read_json(request)
        if error is not None:
            return error
        payload = payload if isinstance(payload, dict) else {}
        transcription_key = payload.get("transcriptionKey")
        completion_key = payload.get("completionKey")
        if not (isinstance(transcription_key, str) and transcription_key.strip()
                and isinstance(completion_key, str) and completion_key.strip()):
            return _detail(400, "Both API keys are required.")
        rotations: List[Tuple[Reconfigurable, str]] = [
            (app.state.transcriber, transcription_key.strip()),
            (app.state.responder, completion_key.strip()),
        ]
        for provider, api_key in rotations:
            provider.set_credentials(api_key)
        return {"detail": "API keys updated successfully."}

    return app


def main():
    """Run the backend with uvicorn on the configured host and port."""
    import uvicorn

    from .cli import configure_logging

    config = Config.from_env()
    configure_logging(verbose=os.environ.get("SVA_VERBOSE", "") in ("1", "true", "yes"))
    uvicorn.run(
        create_app(config),
        host=config.server_host,
        port=config.server_port,
        server_header=False,
    )


if __name__ == '__main__':
    main()
