"""LLM providers for parley."""

from .base import (
    AllCredentialsExhaustedError,
    AuthenticationError,
    FatalError,
    LLMProvider,
    LLMProviderError,
    ModelInfo,
    ModelNotFoundError,
    RateLimitError,
    TransientError,
)
from .ollama import OllamaProvider
from .registry import ModelSpec, create_provider, resolve_model
from .remote import RemoteProvider

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "ModelInfo",
    "AllCredentialsExhaustedError",
    "AuthenticationError",
    "FatalError",
    "ModelNotFoundError",
    "RateLimitError",
    "TransientError",
    "OllamaProvider",
    "RemoteProvider",
    "ModelSpec",
    "create_provider",
    "resolve_model",
]
