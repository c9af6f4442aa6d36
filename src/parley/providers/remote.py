"""Remote OpenAI-compatible provider (OpenRouter by default)."""

import logging
from typing import Optional, Sequence

import httpx
import openai
from openai import OpenAI

from ..models import Turn
from .base import (
    LLMProvider,
    LLMProviderError,
    ModelInfo,
    TransientError,
    classify_message,
    classify_status,
)

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_KEY_PATTERN = r"sk-or-v1-[0-9a-f]{64}"


class RemoteProvider(LLMProvider):
    """LLM provider for an authenticated OpenAI-compatible endpoint.

    Every call is made with the credential handed in by the dispatcher, so a
    single provider instance serves every key in the pool.
    """

    requires_credentials = True

    def __init__(
        self,
        default_model: str = "google/gemini-2.5-flash",
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 600.0,
        app_name: str = "parley",
        credential_pattern: Optional[str] = OPENROUTER_KEY_PATTERN,
    ):
        """Initialize the remote provider.

        Args:
            default_model: Default model to use for generation.
            base_url: Base URL of the chat-completions API.
            timeout: Request timeout in seconds.
            app_name: Application name sent in attribution headers.
            credential_pattern: Expected key shape, used only for warnings.
        """
        super().__init__()
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.app_name = app_name
        self.credential_pattern = credential_pattern
        self._clients: dict[str, OpenAI] = {}

    @property
    def name(self) -> str:
        """Return the provider name."""
        return "openrouter" if self.base_url == OPENROUTER_BASE_URL else "remote"

    def client_for(self, credential: str) -> OpenAI:
        """Get or create the OpenAI client bound to ``credential``."""
        client = self._clients.get(credential)
        if client is None:
            client = OpenAI(
                base_url=self.base_url,
                api_key=credential,
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                # Retries and key rotation belong to the dispatcher.
                max_retries=0,
                default_headers={"X-Title": self.app_name},
            )
            self._clients[credential] = client
        return client

    def send_turn(
        self,
        history: Sequence[Turn],
        turn: Turn,
        credential: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Turn:
        """Send a turn to the remote endpoint with the given credential.

        Raises:
            LLMProviderError: If the request fails; see :func:`classify_status`.
        """
        model_id = model or self.default_model
        if not credential:
            raise LLMProviderError(
                "A credential is required for this provider", provider=self.name, model=model_id
            )
        messages = self._build_messages(history, turn)
        logger.info(f"Sending {len(messages)} message(s) to {self.name} model: {model_id}")

        try:
            response = self.client_for(credential).chat.completions.create(
                model=model_id,
                messages=messages,
            )
        except Exception as e:
            error = self._classify(e, model_id)
            logger.warning(f"{self.name} error ({type(error).__name__}): {e}")
            raise error from e

        logger.info(f"{self.name} response received from {model_id}")
        return self._build_turn(response, model_id)

    def _classify(self, exc: Exception, model_id: str) -> LLMProviderError:
        message = str(exc)
        if isinstance(exc, openai.APITimeoutError):
            return TransientError(message, provider=self.name, model=model_id)
        if isinstance(exc, openai.APIConnectionError):
            return TransientError(message, provider=self.name, model=model_id)
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            return classify_status(status_code, message, provider=self.name, model=model_id)
        return classify_message(message, provider=self.name, model=model_id)

    def list_models(self, credential: Optional[str] = None) -> list[ModelInfo]:
        """List available models from the ``/models`` endpoint.

        Returns an empty list if the listing cannot be fetched.
        """
        headers = {"Authorization": f"Bearer {credential}"} if credential else {}
        logger.info(f"Fetching models from {self.base_url}")
        try:
            response = httpx.get(f"{self.base_url}/models", headers=headers, timeout=30.0)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch models from {self.name}: {e}")
            return []

        models = [ModelInfo.from_openai_compatible(m, self.name) for m in data.get("data", [])]
        logger.info(f"Fetched {len(models)} models from {self.name}")
        return models

    def is_available(self) -> bool:
        """Remote providers are usable whenever a key is configured."""
        return True
