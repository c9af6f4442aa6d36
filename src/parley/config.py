"""Runtime configuration for parley.

Settings are read once at startup from an explicit mapping (normally
``os.environ`` after :func:`load_env_file`) and passed down. Nothing below
the client reads the environment on its own.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "google/gemini-2.5-flash"
DEFAULT_HOME = "~/.parley"


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration."""

    api_keys: str = ""
    default_model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    ollama_host: Optional[str] = None
    timeout: float = 600.0
    context_budget: int = 8000
    transient_retries: int = 2
    home: Path = Path(DEFAULT_HOME).expanduser()
    debug: bool = False

    @property
    def conversations_dir(self) -> Path:
        return self.home / "conversations"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from an environment mapping.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        # PARLEY_API_KEYS wins; a single OPENROUTER_API_KEY is accepted as well
        api_keys = env.get("PARLEY_API_KEYS") or env.get("OPENROUTER_API_KEY", "")
        return cls(
            api_keys=api_keys,
            default_model=env.get("PARLEY_DEFAULT_MODEL") or DEFAULT_MODEL,
            base_url=env.get("PARLEY_BASE_URL") or None,
            ollama_host=env.get("PARLEY_OLLAMA_HOST") or None,
            # Milliseconds, like the other timeouts users already set.
            timeout=_number(env, "PARLEY_TIMEOUT", "600000", float) / 1000,
            context_budget=_number(env, "PARLEY_CONTEXT_BUDGET", "8000", int),
            transient_retries=_number(env, "PARLEY_TRANSIENT_RETRIES", "2", int),
            home=Path(env.get("PARLEY_HOME") or DEFAULT_HOME).expanduser(),
            debug=bool(env.get("PARLEY_DEBUG")),
        )


def _number(env: Mapping[str, str], key: str, default: str, kind):
    raw = env.get(key) or default
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {raw!r}")
    return value


def load_env_file(home: Optional[str] = None) -> Optional[Path]:
    """Load the first ``.env`` file found into ``os.environ``.

    Looks in the current working directory, then the parley home directory,
    then next to this package. Variables already set in the environment win.

    Returns:
        The path that was loaded, or None if no file was found.
    """
    home_dir = Path(home or os.getenv("PARLEY_HOME") or DEFAULT_HOME).expanduser()
    env_locations = [
        Path.cwd() / ".env",
        home_dir / ".env",
        Path(__file__).resolve().parent / ".env",
    ]

    for env_path in env_locations:
        if env_path.is_file():
            logger.info(f"Loading .env from {env_path}")
            load_dotenv(env_path)
            return env_path

    logger.debug("No .env file found in expected locations")
    return None
