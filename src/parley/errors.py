"""Exceptions shared across parley components.

Provider failures live in :mod:`parley.providers.base` next to the provider
interface; this module holds everything else.
"""

from typing import Optional, Sequence


class ParleyError(Exception):
    """Base exception for parley errors."""


class ConfigurationError(ParleyError):
    """Raised when required setup is missing or invalid. Never retried."""


class StorageError(ParleyError):
    """Raised when a conversation record cannot be read or written."""


class ResponseNotSavedError(StorageError):
    """Raised when a response was obtained but could not be persisted.

    The caller still gets the response text and can show it to the user; only
    the conversation record is out of date.
    """

    def __init__(self, message: str, response_text: str, conversation_id: Optional[str] = None):
        super().__init__(message)
        self.response_text = response_text
        self.conversation_id = conversation_id


class ConversationLookupError(ParleyError):
    """Base exception for conversation selector resolution."""

    def __init__(self, message: str, selector: object = None):
        super().__init__(message)
        self.selector = selector


class NotFoundError(ConversationLookupError):
    """Raised when no conversation matches a selector or identifier."""


class AmbiguousSelectorError(ConversationLookupError):
    """Raised when a selector suffix matches more than one conversation."""

    def __init__(self, message: str, selector: object = None, matches: Sequence[str] = ()):
        super().__init__(message, selector)
        self.matches = list(matches)
