#!/usr/bin/env python3
"""
Error taxonomy for the Streaming Voice Assistant.

Every error carries a single-line, user-visible ``message``. The session
controller is the recovery boundary: anything raised while a gesture is being
processed is shown to the user and the session returns to Listening.
"""


class AssistantError(Exception):
    """Base class for all assistant errors."""

    default_message = "Something went wrong."

    def __init__(self, message=None):
        self.message = " ".join(str(message or self.default_message).split())
        super().__init__(self.message)


class DeviceError(AssistantError):
    """The microphone could not be acquired or started."""

    default_message = "Could not access microphone. Please check permissions."


class PreconditionError(AssistantError):
    """The requested action is not valid in the current session state."""

    default_message = "That action is not available right now."


class TranscriptionFailed(AssistantError):
    """Transport or provider failure while transcribing a recording."""

    default_message = "Failed to transcribe audio."


class PayloadTooLarge(TranscriptionFailed):
    default_message = "Audio file is too large."


class UnsupportedMediaType(TranscriptionFailed):
    default_message = "Invalid file type. Only audio files are allowed."


class StreamDecodeError(AssistantError):
    """A unit of the answer stream was not valid JSON."""

    default_message = "Error parsing LLM response stream."


class ProviderError(AssistantError):
    """The completion provider reported a failure (``{"error": ...}`` event)."""

    default_message = "Failed to get response from AI."


class BackendUnavailable(AssistantError):
    """The backend could not be reached at all (refused, not bound yet)."""

    default_message = "Backend server is not ready. Please wait or restart."


class BackendRequestError(AssistantError):
    """A JSON endpoint answered with a non-2xx status."""

    default_message = "Backend request failed."
