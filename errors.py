# errors.py
from typing import Optional


class ChatError(Exception):
    """Base for errors reported to the caller as ``{error, details}``."""

    status_code = 500
    message = "Failed to process chat request. Please try again."

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ChatError):
    status_code = 400
    message = "Message and sessionId are required"


class AttachmentRejected(ChatError):
    status_code = 400
    message = "Only images, audio, and video files are allowed!"


class BackendUnavailable(ChatError):
    status_code = 500
    message = "Gemini API key not configured. Please set GEMINI_API_KEY in your environment variables."


class BackendError(ChatError):
    status_code = 500


class StorageCorrupt(Exception):
    """Persisted client history could not be read. Never leaves the client."""
