"""Data models for parley."""

from .conversation import (
    ASSISTANT,
    USER,
    ContentPart,
    Conversation,
    ConversationSummary,
    TokenUsage,
    Turn,
)

__all__ = [
    "ASSISTANT",
    "USER",
    "ContentPart",
    "Conversation",
    "ConversationSummary",
    "TokenUsage",
    "Turn",
]
