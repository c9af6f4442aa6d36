"""Tests for model identifier resolution."""

import pytest

from parley.config import Settings
from parley.errors import ConfigurationError
from parley.providers import OllamaProvider, RemoteProvider
from parley.providers.registry import ModelSpec, create_provider, resolve_model


class TestResolveModel:
    """Tests for resolve_model."""

    def test_bare_identifier_is_remote(self):
        spec = resolve_model("google/gemini-2.5-flash")

        assert spec == ModelSpec(backend="openrouter", model="google/gemini-2.5-flash")
        assert spec.identifier == "google/gemini-2.5-flash"

    def test_ollama_prefix(self):
        spec = resolve_model("ollama::llama3.2")

        assert spec == ModelSpec(backend="ollama", model="llama3.2")
        assert spec.identifier == "ollama::llama3.2"

    def test_explicit_remote_prefix(self):
        assert resolve_model("OpenRouter::x/y") == ModelSpec(backend="openrouter", model="x/y")

    def test_model_with_colon_tag(self):
        assert resolve_model("ollama::qwen2:7b").model == "qwen2:7b"

    @pytest.mark.parametrize("identifier", ["mystery::model", "ollama::", ""])
    def test_invalid_identifiers(self, identifier):
        with pytest.raises(ConfigurationError):
            resolve_model(identifier)


class TestCreateProvider:
    """Tests for create_provider."""

    def test_creates_ollama(self):
        settings = Settings(ollama_host="http://box:11434", timeout=30.0)

        provider = create_provider(resolve_model("ollama::llama3.2"), settings)

        assert isinstance(provider, OllamaProvider)
        assert provider.host == "http://box:11434"
        assert provider.default_model == "llama3.2"
        assert provider.timeout == 30.0

    def test_creates_openrouter_with_key_pattern(self):
        provider = create_provider(resolve_model("x/y"), Settings())

        assert isinstance(provider, RemoteProvider)
        assert provider.credential_pattern is not None

    def test_custom_base_url_has_no_key_pattern(self):
        settings = Settings(base_url="https://generativelanguage.googleapis.com/v1beta/openai")

        provider = create_provider(resolve_model("gemini-2.5-flash"), settings)

        assert provider.base_url == settings.base_url
        assert provider.credential_pattern is None
