# chatrooms/core/exceptions.py
"""Custom exceptions for the chat layer."""


class ChatError(Exception):
    """Base exception for faults reported back to the originating connection."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Inbound event is missing required fields or carries invalid values."""


class PersistenceError(ChatError):
    """The message store could not complete a read or write."""


class AuthenticationError(ChatError):
    """Bearer token is missing, malformed, expired or badly signed."""
