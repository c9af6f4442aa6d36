"""Resolve model identifiers into provider instances."""

import logging
from dataclasses import dataclass

from ..config import Settings
from ..errors import ConfigurationError
from .base import LLMProvider
from .ollama import OLLAMA_HOST, OllamaProvider
from .remote import OPENROUTER_BASE_URL, OPENROUTER_KEY_PATTERN, RemoteProvider

logger = logging.getLogger(__name__)

BACKEND_SEPARATOR = "::"
REMOTE = "openrouter"
OLLAMA = "ollama"
BACKENDS = (REMOTE, OLLAMA)


@dataclass(frozen=True)
class ModelSpec:
    """A model identifier resolved to its backend."""

    backend: str
    model: str

    @property
    def identifier(self) -> str:
        """Canonical string form, as stored in conversation records."""
        if self.backend == REMOTE:
            return self.model
        return f"{self.backend}{BACKEND_SEPARATOR}{self.model}"


def resolve_model(identifier: str) -> ModelSpec:
    """Parse ``backend::model`` (or a bare remote model id) into a ModelSpec.

    Raises:
        ConfigurationError: If the backend is unknown or the model is empty.
    """
    identifier = identifier.strip()
    backend, separator, model = identifier.partition(BACKEND_SEPARATOR)
    if not separator:
        backend, model = REMOTE, identifier
    backend = backend.lower()

    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown provider '{backend}' in model '{identifier}'. "
            f"Use one of: {', '.join(b + BACKEND_SEPARATOR for b in BACKENDS)}"
        )
    if not model:
        raise ConfigurationError(f"No model name given in '{identifier}'")
    return ModelSpec(backend=backend, model=model)


def create_provider(spec: ModelSpec, settings: Settings) -> LLMProvider:
    """Build the provider for ``spec``."""
    if spec.backend == OLLAMA:
        logger.debug(f"Using local Ollama provider for {spec.model}")
        return OllamaProvider(
            default_model=spec.model,
            host=settings.ollama_host or OLLAMA_HOST,
            timeout=settings.timeout,
        )

    base_url = settings.base_url or OPENROUTER_BASE_URL
    logger.debug(f"Using remote provider at {base_url} for {spec.model}")
    return RemoteProvider(
        default_model=spec.model,
        base_url=base_url,
        timeout=settings.timeout,
        # Only OpenRouter keys have a known shape.
        credential_pattern=OPENROUTER_KEY_PATTERN if base_url == OPENROUTER_BASE_URL else None,
    )
