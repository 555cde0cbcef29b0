#!/usr/bin/env python3
"""
Client-side storage for provider credentials.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .config import default_config


logger = logging.getLogger(__name__)

# Fixed key names in the credentials file
TRANSCRIPTION_KEY_NAME = "TRANSCRIPTION_API_KEY"
COMPLETION_KEY_NAME = "COMPLETION_API_KEY"


class Credentials(BaseModel):
    """API keys for the transcription and completion providers."""

    model_config = ConfigDict(frozen=True)

    transcription_key: str = ""
    completion_key: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.transcription_key.strip() and self.completion_key.strip())

    def to_payload(self) -> dict:
        """Body of POST /update-api-keys."""
        return {
            "transcriptionKey": self.transcription_key,
            "completionKey": self.completion_key,
        }


class CredentialStore:
    """JSON file holding credentials under fixed key names."""

    def __init__(self, path: Optional[Path] = None, config=None):
        self.config = config or default_config
        self.path = Path(path or self.config.credentials_path)

    def load(self) -> Credentials:
        if not self.path.exists():
            return Credentials()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable credentials file %s: %s", self.path, e)
            return Credentials()
        if not isinstance(data, dict):
            return Credentials()
        return Credentials(
            transcription_key=str(data.get(TRANSCRIPTION_KEY_NAME) or "").strip(),
            completion_key=str(data.get(COMPLETION_KEY_NAME) or "").strip(),
        )

    def save(self, credentials: Credentials):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            TRANSCRIPTION_KEY_NAME: credentials.transcription_key,
            COMPLETION_KEY_NAME: credentials.completion_key,
        }
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.path)
