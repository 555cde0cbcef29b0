"""Tests for configuration, credentials storage and conversation history."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from streaming_voice_assistant.config import Config
from streaming_voice_assistant.conversation import Conversation, Role, Turn
from streaming_voice_assistant.credentials import (
    COMPLETION_KEY_NAME,
    TRANSCRIPTION_KEY_NAME,
    CredentialStore,
    Credentials,
)
from streaming_voice_assistant.presentation import ConsoleSink, sanitize
from streaming_voice_assistant.session import SessionStatus


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.max_upload_bytes == 100 * 1024 * 1024
        assert config.allowed_mime_types == ["audio/webm", "audio/ogg", "audio/wav", "audio/mpeg"]
        assert config.block_samples == 480
        assert config.bytes_per_second == 32000

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            Config(not_a_setting=1)

    def test_validates_on_assignment(self):
        config = Config()
        with pytest.raises(ValidationError):
            config.stream_idle_timeout_sec = 0

    def test_backend_url_normalized(self):
        assert Config(backend_url="http://localhost:4000/").backend_url == "http://localhost:4000"
        with pytest.raises(ValidationError):
            Config(backend_url="localhost:4000")

    def test_empty_system_prompt_rejected(self):
        with pytest.raises(ValidationError):
            Config(system_prompt="   ")

    def test_from_env(self):
        env = {
            "SVA_BACKEND_URL": "http://127.0.0.1:5000",
            "SVA_SERVER_PORT": "5000",
            "SVA_ALLOWED_MIME_TYPES": "audio/wav, audio/ogg",
            "UNRELATED": "x",
        }
        config = Config.from_env(env, resume_delay_sec=0.0)
        assert config.backend_url == "http://127.0.0.1:5000"
        assert config.server_port == 5000
        assert config.allowed_mime_types == ["audio/wav", "audio/ogg"]
        assert config.resume_delay_sec == 0.0


class TestCredentialStore:
    def test_missing_file_is_empty(self, tmp_path):
        creds = CredentialStore(tmp_path / "none.json").load()
        assert creds == Credentials()
        assert not creds.complete

    def test_round_trip_uses_fixed_names(self, tmp_path):
        path = tmp_path / "sub" / "creds.json"
        store = CredentialStore(path)
        store.save(Credentials(transcription_key="t-key", completion_key="c-key"))
        data = json.loads(path.read_text())
        assert data == {TRANSCRIPTION_KEY_NAME: "t-key", COMPLETION_KEY_NAME: "c-key"}
        assert store.load().complete

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "creds.json"
        path.write_text("{broken")
        assert CredentialStore(path).load() == Credentials()

    def test_payload_shape(self):
        creds = Credentials(transcription_key="t", completion_key="c")
        assert creds.to_payload() == {"transcriptionKey": "t", "completionKey": "c"}

    def test_default_path_from_config(self, config):
        assert CredentialStore(config=config).path == Path(config.credentials_path)


class TestConversation:
    def test_append_order_and_wire_shape(self):
        conversation = Conversation()
        conversation.add_user("q")
        conversation.add_assistant("a")
        conversation.add_user("q")
        assert [t.role for t in conversation.history()] == [Role.USER, Role.ASSISTANT, Role.USER]
        assert conversation.messages()[1] == {"role": "assistant", "content": "a"}
        assert len(conversation) == 3

    def test_history_is_a_snapshot(self):
        conversation = Conversation()
        conversation.add_user("q")
        snapshot = conversation.history()
        conversation.clear()
        assert snapshot == [Turn(Role.USER, "q")]
        assert conversation.is_empty

    def test_turns_are_immutable(self):
        turn = Turn(Role.USER, "q")
        with pytest.raises(AttributeError):
            turn.content = "changed"


class TestConsoleSink:
    def test_sanitize_strips_escape_sequences(self):
        assert sanitize("\x1b[31mred\x1b[0m \x1b]0;title\x07ok\x07") == "red ok"
        assert sanitize("tab\tand\nnewline") == "tab\tand\nnewline"

    def test_streams_answer_on_one_line(self):
        out = io.StringIO()
        sink = ConsoleSink(out)
        sink.show_user("What is 2+2?")
        sink.begin_answer()
        sink.render_delta("4")
        sink.render_delta("\x1b[2J!")
        sink.end_answer("4!")
        sink.show_status(SessionStatus.LISTENING)
        assert out.getvalue() == "YOU: What is 2+2?\n🤖 4!\n🎤 Listening…\n"

    def test_discarded_answer_prints_nothing(self):
        out = io.StringIO()
        sink = ConsoleSink(out)
        sink.begin_answer()
        sink.discard_answer()
        sink.show_error("LLM Error: boom")
        assert out.getvalue() == "Error: LLM Error: boom\n"
