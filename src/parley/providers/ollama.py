"""Local Ollama provider."""

import logging
from typing import Optional, Sequence

import httpx
import openai
from openai import OpenAI

from ..models import Turn
from .base import (
    FatalError,
    LLMProvider,
    LLMProviderError,
    ModelInfo,
    TransientError,
    classify_message,
    classify_status,
)

logger = logging.getLogger(__name__)

OLLAMA_HOST = "http://localhost:11434"


class OllamaProvider(LLMProvider):
    """LLM provider for a local, unauthenticated Ollama server.

    There is no key to rotate, so a refused connection is fatal rather than
    retryable.
    """

    requires_credentials = False

    def __init__(self, default_model: str = "llama3.2", host: str = OLLAMA_HOST, timeout: float = 600.0):
        super().__init__()
        self.default_model = default_model
        self.host = host.rstrip("/")
        self.timeout = timeout
        self._client: Optional[OpenAI] = None

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def client(self) -> OpenAI:
        """Get or create the OpenAI client pointed at Ollama's ``/v1`` API."""
        if self._client is None:
            self._client = OpenAI(
                base_url=f"{self.host}/v1",
                # Ollama ignores the key but the SDK requires one.
                api_key="ollama",
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                max_retries=0,
            )
        return self._client

    def send_turn(
        self,
        history: Sequence[Turn],
        turn: Turn,
        credential: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Turn:
        model_id = model or self.default_model
        messages = self._build_messages(history, turn)
        logger.info(f"Sending {len(messages)} message(s) to ollama model: {model_id}")

        try:
            response = self.client.chat.completions.create(model=model_id, messages=messages)
        except Exception as e:
            error = self._classify(e, model_id)
            logger.warning(f"ollama error ({type(error).__name__}): {e}")
            raise error from e

        return self._build_turn(response, model_id)

    def _classify(self, exc: Exception, model_id: str) -> LLMProviderError:
        message = str(exc)
        if isinstance(exc, openai.APITimeoutError):
            return TransientError(message, provider=self.name, model=model_id)
        if isinstance(exc, openai.APIConnectionError):
            return FatalError(
                f"Could not connect to Ollama at {self.host}. Is `ollama serve` running?",
                provider=self.name,
                model=model_id,
            )
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            return classify_status(status_code, message, provider=self.name, model=model_id)
        return classify_message(message, provider=self.name, model=model_id)

    def list_models(self, credential: Optional[str] = None) -> list[ModelInfo]:
        """List models pulled into the local Ollama server."""
        try:
            response = httpx.get(f"{self.host}/api/tags", timeout=5.0)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to list Ollama models: {e}")
            return []
        return [
            ModelInfo(id=m["name"], name=m["name"], provider=self.name, is_free=True)
            for m in data.get("models", [])
        ]

    def is_available(self) -> bool:
        """Check whether the Ollama server answers."""
        try:
            httpx.get(f"{self.host}/api/tags", timeout=2.0).raise_for_status()
        except httpx.HTTPError:
            return False
        return True
