"""Storage and context services for parley."""

from .context_window import ContextWindowManager, estimate_tokens, estimate_turn_tokens
from .conversation_store import ConversationStore, make_slug

__all__ = [
    "ContextWindowManager",
    "ConversationStore",
    "estimate_tokens",
    "estimate_turn_tokens",
    "make_slug",
]
