"""Credential pool with circular rotation."""

import hashlib
import logging
import random
import re
from typing import Iterator, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CREDENTIAL_DELIMITER = "|"


def fingerprint(credential: str) -> str:
    """Return a short, non-reversible identifier for a credential."""
    return hashlib.sha256(credential.encode()).hexdigest()[:12]


class CredentialPool:
    """Ordered, de-duplicated, read-only set of API keys.

    The pool carries no rotation cursor. A dispatch keeps its own index and
    walks the pool with :meth:`pick_start` and :meth:`next`.
    """

    def __init__(
        self,
        credentials: tuple[str, ...],
        provider: str = "",
        rng: Optional[random.Random] = None,
    ):
        if not credentials:
            raise ConfigurationError(
                f"No API key configured{f' for {provider}' if provider else ''}. "
                "Set PARLEY_API_KEYS (separate multiple keys with '|')."
            )
        if len(set(credentials)) != len(credentials):
            raise ConfigurationError(
                f"Duplicate API key configured{f' for {provider}' if provider else ''}"
            )
        self._credentials = tuple(credentials)
        self.provider = provider
        self._rng = rng or random.Random()

    @classmethod
    def load(
        cls,
        raw: Optional[str],
        pattern: Optional[str] = None,
        provider: str = "",
        rng: Optional[random.Random] = None,
    ) -> "CredentialPool":
        """Parse a ``|``-separated credential string.

        Duplicates are dropped keeping the first occurrence. Credentials that
        do not match ``pattern`` are kept, with a warning.

        Raises:
            ConfigurationError: If no credential remains after parsing.
        """
        seen: dict[str, None] = {}
        for item in (raw or "").split(CREDENTIAL_DELIMITER):
            item = item.strip()
            if item and item not in seen:
                seen[item] = None
        credentials = tuple(seen)

        if pattern:
            compiled = re.compile(pattern)
            for position, credential in enumerate(credentials, start=1):
                if not compiled.fullmatch(credential):
                    logger.warning(
                        f"API key #{position} ({fingerprint(credential)}) does not look like "
                        f"a valid {provider or 'provider'} key; using it anyway"
                    )

        pool = cls(credentials, provider=provider, rng=rng)
        logger.debug(f"Loaded {len(pool)} API key(s) for {provider or 'provider'}")
        return pool

    @property
    def size(self) -> int:
        return len(self._credentials)

    def __len__(self) -> int:
        return len(self._credentials)

    def __getitem__(self, index: int) -> str:
        return self._credentials[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self._credentials)

    def index_of(self, credential_fingerprint: str) -> Optional[int]:
        """Return the position of the credential with this fingerprint, if any."""
        for index, credential in enumerate(self._credentials):
            if fingerprint(credential) == credential_fingerprint:
                return index
        return None

    def pick_start(self, preferred: Optional[str] = None) -> tuple[int, str]:
        """Choose where a dispatch starts.

        Starts on the credential matching the ``preferred`` fingerprint when it
        is still in the pool, otherwise on a uniformly random one.
        """
        index = self.index_of(preferred) if preferred else None
        if index is None:
            index = self._rng.randrange(len(self._credentials))
        return index, self._credentials[index]

    def next(self, index: int) -> int:
        return (index + 1) % len(self._credentials)
