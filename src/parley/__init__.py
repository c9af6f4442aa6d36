"""parley: resumable conversations with LLM providers, with API key rotation."""

from .client import ConverseResult, ParleyClient
from .config import Settings

__version__ = "1.0.0"

__all__ = ["ConverseResult", "ParleyClient", "Settings", "__version__"]
