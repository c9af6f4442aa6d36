"""Test fixtures for the parley tests."""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from unittest.mock import Mock

from parley.models import ASSISTANT, TokenUsage, Turn
from parley.providers.base import LLMProvider, ModelInfo


class ScriptedProvider(LLMProvider):
    """Provider that replays a script of replies and errors.

    Each script entry is either an exception instance to raise or a string to
    return as the assistant's reply. Calls are recorded as
    ``(credential, history, turn)`` tuples.
    """

    def __init__(self, script: Sequence, requires_credentials: bool = True):
        super().__init__()
        self.script = list(script)
        self.requires_credentials = requires_credentials
        self.calls: List[tuple] = []

    @property
    def name(self) -> str:
        return "scripted"

    def send_turn(self, history, turn, credential=None, model=None):
        self._build_messages(history, turn)
        self.calls.append((credential, list(history), turn))
        outcome = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return Turn(
            role=ASSISTANT,
            content=outcome,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            model=model,
        )

    def list_models(self, credential=None):
        return [ModelInfo(id="scripted-model", name="Scripted", provider=self.name)]

    def is_available(self):
        return True

    @property
    def credentials_used(self) -> List[Optional[str]]:
        return [call[0] for call in self.calls]


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def create_mock_completion(content: Optional[str] = "Test response", usage: bool = True):
    """Create a mock chat-completions response."""
    mock = Mock()
    mock.id = "chatcmpl-123"
    mock.created = 1700000000
    mock.choices = [Mock(message=Mock(content=content))]
    mock.usage = (
        Mock(prompt_tokens=10, completion_tokens=20, total_tokens=30) if usage else None
    )
    return mock


class StatusError(Exception):
    """Exception carrying an HTTP status code, like the SDK's APIStatusError."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"Error code: {status_code}")
        self.status_code = status_code
