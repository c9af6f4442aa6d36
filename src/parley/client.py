"""Caller-facing entry point tying providers, keys and storage together."""

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

from .config import Settings
from .credentials import CredentialPool
from .dispatcher import AttemptEvent, DispatchResult, RequestDispatcher
from .errors import ResponseNotSavedError, StorageError
from .models import USER, ContentPart, Conversation, ConversationSummary, TokenUsage, Turn
from .providers import LLMProvider, LLMProviderError, ModelInfo, ModelSpec, create_provider, resolve_model
from .services.context_window import ContextWindowManager, estimate_turn_tokens
from .services.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConverseResult:
    """Response to one ``converse`` call."""

    text: str
    conversation_id: str
    model: str
    usage: Optional[TokenUsage] = None
    attempts: int = 1
    pool_size: int = 1


class ParleyClient:
    """Sends prompts with conversation context and persists the exchange.

    This class provides a unified interface for:
    - Resolving model identifiers to providers (once per identifier)
    - Dispatching with API key rotation
    - Resuming and recording conversations
    - Tracking usage statistics
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[ConversationStore] = None,
        context: Optional[ContextWindowManager] = None,
        on_attempt: Optional[Callable[[AttemptEvent], None]] = None,
        rng: Optional[random.Random] = None,
        provider_factory: Callable[[ModelSpec, Settings], LLMProvider] = create_provider,
    ):
        self.settings = settings
        self.store = store or ConversationStore(settings.conversations_dir)
        self.context = context or ContextWindowManager()
        self.on_attempt = on_attempt
        self._rng = rng
        self._provider_factory = provider_factory
        self._providers: dict[ModelSpec, LLMProvider] = {}
        self._pool: Optional[CredentialPool] = None

        # Statistics
        self.total_calls = 0
        self.successful_calls = 0
        self.failed_calls = 0

        logger.info(f"ParleyClient initialized with default model: {settings.default_model}")

    def provider_for(self, spec: ModelSpec) -> LLMProvider:
        """Get the provider for ``spec``, creating it on first use."""
        provider = self._providers.get(spec)
        if provider is None:
            provider = self._provider_factory(spec, self.settings)
            self._providers[spec] = provider
        return provider

    def credential_pool(self, provider: LLMProvider) -> Optional[CredentialPool]:
        """Get the key pool for ``provider``, or None if it needs no keys.

        Raises:
            ConfigurationError: If the provider needs keys and none are set.
        """
        if not provider.requires_credentials:
            return None
        if self._pool is None:
            self._pool = CredentialPool.load(
                self.settings.api_keys,
                pattern=provider.credential_pattern,
                provider=provider.name,
                rng=self._rng,
            )
        return self._pool

    def converse(
        self,
        prompt: str,
        selector: Optional[Union[int, str]] = None,
        model: Optional[str] = None,
        parts: Sequence[ContentPart] = (),
    ) -> ConverseResult:
        """Send ``prompt`` and record the exchange.

        Args:
            prompt: The user's message.
            selector: Conversation to continue (id, suffix or recency index).
                If None, a new conversation is started.
            model: Model identifier, e.g. ``google/gemini-2.5-flash`` or
                ``ollama::llama3.2``. Defaults to the conversation's model,
                then the configured default.
            parts: Media references attached to the prompt.

        Returns:
            ConverseResult with the response text and conversation id.

        Raises:
            NotFoundError, AmbiguousSelectorError: If ``selector`` is not usable.
            ConfigurationError: If the model or keys are misconfigured.
            AllCredentialsExhaustedError: If every key was rate limited.
            LLMProviderError: For authentication and other fatal errors.
            ResponseNotSavedError: If a response arrived but was not saved.
        """
        conversation: Optional[Conversation] = None
        if selector is not None:
            conversation = self.store.load(selector)
            logger.info(f"Continuing conversation {conversation.id}")

        identifier = model or (conversation.model if conversation else "") or self.settings.default_model
        spec = resolve_model(identifier)
        provider = self.provider_for(spec)
        dispatcher = RequestDispatcher(
            provider,
            pool=self.credential_pool(provider),
            transient_retries=self.settings.transient_retries,
            on_attempt=self.on_attempt,
        )

        turn = Turn(role=USER, content=prompt, parts=tuple(parts))
        budget = max(0, self.settings.context_budget - estimate_turn_tokens(turn))
        history = self.context.select_history(conversation, budget)

        self.total_calls += 1
        try:
            result = dispatcher.dispatch(
                history,
                turn,
                model=spec.model,
                preferred=conversation.preferred_credential if conversation else None,
            )
        except LLMProviderError as e:
            self.failed_calls += 1
            logger.error(f"Generation failed: {e}")
            raise
        self.successful_calls += 1

        conversation_id = self._record(conversation, prompt, spec, turn, result)
        return ConverseResult(
            text=result.turn.content,
            conversation_id=conversation_id,
            model=spec.identifier,
            usage=result.turn.usage,
            attempts=result.attempts,
            pool_size=result.pool_size,
        )

    def _record(
        self,
        conversation: Optional[Conversation],
        prompt: str,
        spec: ModelSpec,
        turn: Turn,
        result: DispatchResult,
    ) -> str:
        try:
            if conversation is None:
                conversation = self.store.create(
                    prompt,
                    turn,
                    result.turn,
                    model=spec.identifier,
                    preferred_credential=result.credential,
                )
            else:
                conversation = self.store.append(
                    conversation.id,
                    turn,
                    result.turn,
                    preferred_credential=result.credential,
                    model=spec.identifier,
                )
        except StorageError as e:
            logger.error(f"Response received but not saved: {e}")
            raise ResponseNotSavedError(
                f"Response received but could not be saved: {e}",
                response_text=result.turn.content,
                conversation_id=conversation.id if conversation else None,
            ) from e
        return conversation.id

    def list_conversations(self) -> list[ConversationSummary]:
        return self.store.list()

    def list_models(self, model: Optional[str] = None) -> list[ModelInfo]:
        """List models offered by the backend of ``model`` (or the default)."""
        provider = self.provider_for(resolve_model(model or self.settings.default_model))
        pool = self.credential_pool(provider)
        return provider.list_models(credential=pool[0] if pool else None)

    def get_stats(self) -> dict[str, Any]:
        """Get usage statistics."""
        success_rate = (
            (self.successful_calls / self.total_calls * 100) if self.total_calls > 0 else 0
        )
        return {
            "default_model": self.settings.default_model,
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "success_rate": f"{success_rate:.1f}%",
        }
