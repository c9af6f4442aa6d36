"""Base classes for LLM providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..errors import ParleyError
from ..models import ASSISTANT, USER, TokenUsage, Turn


@dataclass
class ModelInfo:
    """Information about an available model."""

    id: str
    name: str
    provider: str
    context_length: int = 0
    is_free: bool = False

    @classmethod
    def from_openai_compatible(cls, data: dict[str, Any], provider: str) -> "ModelInfo":
        """Create ModelInfo from an OpenAI-compatible ``/models`` entry."""
        model_id = data.get("id", "")
        return cls(
            id=model_id,
            name=data.get("name", model_id),
            provider=provider,
            context_length=data.get("context_length", 0) or 0,
            is_free=model_id.endswith(":free"),
        )


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    A provider turns an ordered history plus one outgoing user turn into an
    assistant turn, or raises a classified :class:`LLMProviderError`. It keeps
    no state besides the messages of its last call, exposed through
    :meth:`describe_history` for diagnostics.
    """

    #: Whether every call needs a credential from the pool.
    requires_credentials: bool = True

    #: Regular expression a well-formed credential is expected to match.
    credential_pattern: Optional[str] = None

    def __init__(self) -> None:
        self._last_sent: list[Turn] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    def send_turn(
        self,
        history: Sequence[Turn],
        turn: Turn,
        credential: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Turn:
        """Send ``turn`` with ``history`` as context.

        Args:
            history: Prior turns, oldest first.
            turn: The new user turn.
            credential: API key for this attempt, if the provider needs one.
            model: The model to use. If None, uses the default model.

        Returns:
            The assistant turn, with token usage when the provider reports it.

        Raises:
            LLMProviderError: A classified failure.
        """
        ...

    @abstractmethod
    def list_models(self, credential: Optional[str] = None) -> list[ModelInfo]:
        """List models offered by this provider."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider can be reached or is configured."""
        ...

    def describe_history(self) -> list[Turn]:
        """Return the turns sent by the most recent call, oldest first."""
        return list(self._last_sent)

    def _build_messages(self, history: Sequence[Turn], turn: Turn) -> list[dict[str, Any]]:
        """Render turns as chat-completions messages and remember them."""
        self._last_sent = [*history, turn]
        return [_to_message(t) for t in self._last_sent]

    @staticmethod
    def _build_turn(response: Any, model_id: str) -> Turn:
        """Convert a chat-completions response into an assistant turn."""
        content = response.choices[0].message.content or ""
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return Turn(role=ASSISTANT, content=content, usage=usage, model=model_id)


def _to_message(turn: Turn) -> dict[str, Any]:
    if not turn.parts or turn.role != USER:
        return {"role": turn.role, "content": turn.content}

    content: list[dict[str, Any]] = []
    references = []
    for part in turn.parts:
        if part.kind == "image":
            content.append({"type": "image_url", "image_url": {"url": part.uri}})
        else:
            references.append(part.uri)
    text = turn.content
    if references:
        text = f"{text}\n\nAttached files: {', '.join(references)}"
    content.insert(0, {"type": "text", "text": text})
    return {"role": turn.role, "content": content}


class LLMProviderError(ParleyError):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        model: str = "",
        is_retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.is_retryable = is_retryable
        self.status_code = status_code
        # Number of provider calls made by the dispatch that raised this.
        self.attempts = 0


class RateLimitError(LLMProviderError):
    """Raised when rate limited by the provider. Handled by key rotation."""

    def __init__(
        self, message: str, provider: str = "", model: str = "", status_code: Optional[int] = 429
    ):
        super().__init__(message, provider, model, is_retryable=True, status_code=status_code)


class AuthenticationError(LLMProviderError):
    """Raised when authentication fails."""

    def __init__(
        self, message: str, provider: str = "", model: str = "", status_code: Optional[int] = None
    ):
        super().__init__(message, provider, model, is_retryable=False, status_code=status_code)


class TransientError(LLMProviderError):
    """Raised for timeouts and temporary server errors."""

    def __init__(
        self, message: str, provider: str = "", model: str = "", status_code: Optional[int] = None
    ):
        super().__init__(message, provider, model, is_retryable=True, status_code=status_code)


class FatalError(LLMProviderError):
    """Raised for failures that no retry or other key can fix."""

    def __init__(
        self, message: str, provider: str = "", model: str = "", status_code: Optional[int] = None
    ):
        super().__init__(message, provider, model, is_retryable=False, status_code=status_code)


class ModelNotFoundError(FatalError):
    """Raised when the requested model is not found."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(message, provider, model, status_code=404)


class AllCredentialsExhaustedError(LLMProviderError):
    """Raised when every key in the pool failed during one dispatch."""

    def __init__(
        self,
        attempts: int,
        pool_size: int,
        last_error: Optional[LLMProviderError] = None,
        provider: str = "",
        model: str = "",
    ):
        super().__init__(
            f"All {pool_size} API key(s) were rate limited or failed "
            f"after {attempts} attempt(s)",
            provider,
            model,
            is_retryable=False,
        )
        self.attempts = attempts
        self.pool_size = pool_size
        self.last_error = last_error


def classify_status(
    status_code: int, message: str, provider: str = "", model: str = ""
) -> LLMProviderError:
    """Map an HTTP status code to the matching provider error."""
    if status_code == 429:
        return RateLimitError(message, provider=provider, model=model, status_code=status_code)
    if status_code in (401, 403):
        return AuthenticationError(message, provider=provider, model=model, status_code=status_code)
    if status_code == 404:
        return ModelNotFoundError(message, provider=provider, model=model)
    if status_code in (408, 409) or status_code >= 500:
        return TransientError(message, provider=provider, model=model, status_code=status_code)
    return FatalError(message, provider=provider, model=model, status_code=status_code)


def classify_message(message: str, provider: str = "", model: str = "") -> LLMProviderError:
    """Classify an error that carries no status code by its text."""
    lowered = message.lower()
    if "429" in message or "rate limit" in lowered or "rate_limit" in lowered:
        return RateLimitError(message, provider=provider, model=model)
    if "401" in message or "403" in message or "auth" in lowered:
        return AuthenticationError(message, provider=provider, model=model)
    if "404" in message or "not found" in lowered:
        return ModelNotFoundError(message, provider=provider, model=model)
    if "timeout" in lowered or "timed out" in lowered:
        return TransientError(message, provider=provider, model=model)
    return FatalError(message, provider=provider, model=model)
