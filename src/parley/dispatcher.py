"""Request dispatcher with API key rotation.

One dispatch is one logical send. It starts on a key chosen by the pool,
moves to the next key whenever the provider reports a rate limit, and gives
up once it is back where it started. Authentication and fatal errors end the
dispatch at once; a fatal error is assumed to affect every key the same way.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .credentials import CredentialPool, fingerprint
from .errors import ConfigurationError
from .models import Turn
from .providers.base import (
    AllCredentialsExhaustedError,
    LLMProvider,
    LLMProviderError,
    RateLimitError,
    TransientError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptEvent:
    """A failed attempt, reported to the ``on_attempt`` observer."""

    attempt: int  # provider calls so far in this dispatch
    position: int  # which key of the rotation, 1-based
    pool_size: int
    error: LLMProviderError
    will_retry: bool


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a successful dispatch."""

    turn: Turn
    attempts: int
    pool_size: int
    credential: Optional[str] = None  # fingerprint of the key that succeeded


class RequestDispatcher:
    """Sends turns through a provider, rotating keys on rate limits."""

    def __init__(
        self,
        provider: LLMProvider,
        pool: Optional[CredentialPool] = None,
        transient_retries: int = 2,
        jitter: float = 0.0,
        on_attempt: Optional[Callable[[AttemptEvent], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the dispatcher.

        Args:
            provider: The provider to send through.
            pool: Keys to rotate through. Required if the provider needs keys,
                ignored otherwise.
            transient_retries: Extra attempts on the same key after a timeout
                or server error before moving to the next key.
            jitter: Upper bound in seconds of a random pause between attempts.
            on_attempt: Called after every failed attempt.
            sleep: Sleep function, replaceable in tests.

        Raises:
            ConfigurationError: If the provider needs keys and no pool is given.
        """
        if provider.requires_credentials and pool is None:
            raise ConfigurationError(f"No API keys configured for {provider.name}")
        self.provider = provider
        self.pool = pool if provider.requires_credentials else None
        self.transient_retries = transient_retries
        self.jitter = jitter
        self.on_attempt = on_attempt
        self._sleep = sleep

    @property
    def pool_size(self) -> int:
        return len(self.pool) if self.pool is not None else 1

    def dispatch(
        self,
        history: Sequence[Turn],
        turn: Turn,
        model: Optional[str] = None,
        preferred: Optional[str] = None,
    ) -> DispatchResult:
        """Send ``turn`` and return the provider's reply.

        Args:
            history: Prior turns to include, oldest first.
            turn: The new user turn.
            model: Model override passed to the provider.
            preferred: Fingerprint of the key to start with, if still pooled.

        Raises:
            AllCredentialsExhaustedError: Every key failed once since the start.
            LLMProviderError: An authentication or fatal error, unchanged
                except for its ``attempts`` count.
        """
        pool_size = self.pool_size
        if self.pool is not None:
            start, credential = self.pool.pick_start(preferred)
            logger.debug(f"Starting dispatch on key {start + 1}/{pool_size}")
        else:
            start, credential = 0, None

        index = start
        position = 1
        attempts = 0
        same_key_retries = 0

        while True:
            attempts += 1
            try:
                reply = self.provider.send_turn(history, turn, credential=credential, model=model)
            except (RateLimitError, TransientError) as e:
                retry_same_key = (
                    isinstance(e, TransientError) and same_key_retries < self.transient_retries
                )
                next_index = index if retry_same_key else self._next(index)
                exhausted = not retry_same_key and next_index == start

                self._notify(AttemptEvent(attempts, position, pool_size, e, not exhausted))
                if exhausted:
                    logger.error(f"All {pool_size} key(s) failed after {attempts} attempt(s)")
                    raise AllCredentialsExhaustedError(
                        attempts,
                        pool_size,
                        last_error=e,
                        provider=self.provider.name,
                        model=e.model,
                    ) from e

                if retry_same_key:
                    same_key_retries += 1
                    logger.info(
                        f"Transient error, retrying key {position}/{pool_size} "
                        f"({same_key_retries}/{self.transient_retries})"
                    )
                else:
                    index = next_index
                    position += 1
                    same_key_retries = 0
                    credential = self.pool[index] if self.pool is not None else None
                    logger.info(f"Rate limited, rotating to key {position}/{pool_size}")
                self._pause()
                continue
            except LLMProviderError as e:
                e.attempts = attempts
                self._notify(AttemptEvent(attempts, position, pool_size, e, False))
                logger.error(f"Dispatch aborted after {attempts} attempt(s): {e}")
                raise

            logger.debug(f"Dispatch succeeded after {attempts} attempt(s)")
            return DispatchResult(
                turn=reply,
                attempts=attempts,
                pool_size=pool_size,
                credential=fingerprint(credential) if credential else None,
            )

    def _next(self, index: int) -> int:
        if self.pool is None:
            return index
        return self.pool.next(index)

    def _notify(self, event: AttemptEvent) -> None:
        if self.on_attempt is not None:
            self.on_attempt(event)

    def _pause(self) -> None:
        if self.jitter > 0:
            self._sleep(random.uniform(0, self.jitter))
