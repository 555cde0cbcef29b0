#!/usr/bin/env python3
"""
Conversation history for the Streaming Voice Assistant.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in the conversation; immutable once appended."""

    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Conversation:
    """Ordered, append-only log of turns for one session.

    Turns are never reordered or deduplicated. The log is emptied by
    ``clear()`` when the user stops the session or starts a new exchange.
    """

    def __init__(self):
        self._turns: List[Turn] = []

    def add_user(self, text: str) -> Turn:
        """Add user message to conversation history."""
        return self._append(Turn(Role.USER, text))

    def add_assistant(self, text: str) -> Turn:
        """Add assistant message to conversation history."""
        return self._append(Turn(Role.ASSISTANT, text))

    def _append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn

    def clear(self):
        self._turns.clear()

    def history(self) -> List[Turn]:
        """Get a snapshot of the conversation history."""
        return list(self._turns)

    def messages(self) -> List[Dict[str, str]]:
        """History in the wire shape used by /query-llm."""
        return [turn.to_message() for turn in self._turns]

    @property
    def is_empty(self) -> bool:
        return not self._turns

    def __len__(self) -> int:
        return len(self._turns)
