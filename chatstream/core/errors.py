"""
Error kinds raised and reported by the stream-consumption engine.

TransportError and StreamTimeoutError are terminal for a session and are
reported as dismissible failures. ParseError is never surfaced to the user; the
engine logs it and degrades to an empty/raw value. PersistenceError is reported
to the user after the final save failed.
"""

from typing import Optional


class StreamError(Exception):
    """Base exception for stream engine errors."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        self.message = message
        self.request_id = request_id
        super().__init__(self.message)

    def user_friendly_message(self) -> str:
        """Returns a user-friendly error message."""
        return self.message


class TransportError(StreamError):
    """The subscription reported an error or broke down."""

    def user_friendly_message(self) -> str:
        return (
            f"[ERROR] The response stream failed\n\n"
            f"Error: {self.message}\n\n"
            f"The partial answer above was kept on screen but not saved."
        )


class StreamTimeoutError(StreamError):
    """No event arrived within the inactivity window."""

    def __init__(self, message: str, request_id: Optional[str] = None, timeout: float = 0.0):
        self.timeout = timeout
        super().__init__(message, request_id=request_id)

    def user_friendly_message(self) -> str:
        return (
            f"[TIMEOUT] No response received for {self.timeout:g}s\n\n"
            f"Error: {self.message}\n\n"
            f"Suggestions:\n"
            f"  1. Check that the generation service is still running\n"
            f"  2. Send the message again\n"
            f"  3. Raise the inactivity window (--idle-timeout)"
        )


class ParseError(StreamError):
    """Malformed info/result payload. Non-fatal."""


class PersistenceError(StreamError):
    """Saving the finished message failed."""

    def user_friendly_message(self) -> str:
        return (
            f"[SAVE ERROR] The response could not be saved to the chat\n\n"
            f"Error: {self.message}"
        )


class IllegalTransitionError(StreamError):
    """A session status change that the lifecycle does not allow."""
