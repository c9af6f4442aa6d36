"""Pytest configuration shared by all tests."""

import sys
from pathlib import Path

import pytest

# Add the project root and src directory to Python path so tests can import properly
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "src"))

from parley.config import Settings  # noqa: E402
from parley.services.conversation_store import ConversationStore  # noqa: E402
from tests.fixtures import StepClock  # noqa: E402


@pytest.fixture
def store(tmp_path):
    """A conversation store in a temporary directory with a stepping clock."""
    return ConversationStore(tmp_path / "conversations", clock=StepClock())


@pytest.fixture
def settings(tmp_path):
    """Settings with two keys and a temporary home directory."""
    return Settings(api_keys="k1|k2", default_model="test/model", home=tmp_path)
