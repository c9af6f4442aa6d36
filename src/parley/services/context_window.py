"""Pick which prior turns fit into the next request."""

import logging
from typing import Callable, Optional

from ..models import ASSISTANT, Conversation, Turn

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 chars per token) for text with no reported count."""
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def estimate_turn_tokens(turn: Turn) -> int:
    # Providers report prompt_tokens for the whole request, so only an
    # assistant turn's completion count belongs to that turn alone.
    if turn.role == ASSISTANT and turn.usage and turn.usage.completion_tokens is not None:
        cost = turn.usage.completion_tokens
    else:
        cost = estimate_tokens(turn.content)
    return cost + MESSAGE_OVERHEAD_TOKENS


class ContextWindowManager:
    """Trims conversation history to a token budget, oldest turns first."""

    def __init__(self, estimator: Optional[Callable[[Turn], int]] = None):
        self.estimator = estimator or estimate_turn_tokens

    def select_history(self, conversation: Optional[Conversation], budget: int) -> list[Turn]:
        """Return the newest turns whose estimated cost fits in ``budget``.

        The most recent turn is always kept, even when it alone is over
        budget. The result is a contiguous suffix of the conversation in
        chronological order; the conversation itself is not modified.
        """
        if conversation is None or not conversation.turns:
            return []

        turns = conversation.turns
        kept = 0
        used = 0
        for turn in reversed(turns):
            cost = self.estimator(turn)
            if kept and used + cost > budget:
                break
            used += cost
            kept += 1

        if kept < len(turns):
            logger.info(
                f"Context trimmed to {kept}/{len(turns)} turns "
                f"(~{used} tokens, budget {budget})"
            )
        return list(turns[len(turns) - kept :])
