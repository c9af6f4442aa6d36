"""Durable conversation storage.

Each conversation is one pretty-printed JSON file named after its
``<slug>-<suffix>`` id. Writes go to a temp file in the same directory which
then replaces the record, so a crash never leaves a half-written turn behind.
Every read-modify-write holds an exclusive lock on a sibling ``<id>.lock``
file, so separate processes appending to one conversation never lose turns.
"""

import contextlib
import json
import logging
import os
import re
import tempfile
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

try:
    import fcntl  # POSIX file locking (macOS/Linux)
except ImportError:  # pragma: no cover - Windows
    fcntl = None

from ..errors import AmbiguousSelectorError, NotFoundError, StorageError
from ..models import Conversation, ConversationSummary, Turn

logger = logging.getLogger(__name__)

SUFFIX_LENGTH = 4
MAX_SLUG_WORDS = 5
MAX_SLUG_LENGTH = 40
FALLBACK_SLUG = "conversation"
LOCK_TIMEOUT_SECONDS = 15.0

STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no
    nor not now of off on once only or other our ours ourselves out over own please
    same she should so some such than that the their theirs them themselves then
    there these they this those through to too under until up very was we were what
    when where which while who whom why will with would you your yours yourself
    yourselves tell explain give show let make can't don't i'm what's how's
    """.split()
)

Selector = Union[int, str]


def make_slug(prompt: str) -> str:
    """Build a readable slug from the significant words of a prompt."""
    words = [
        w for w in re.findall(r"[a-z0-9']+", prompt.lower()) if w not in STOPWORDS and len(w) > 1
    ]
    slug = ""
    for word in words[:MAX_SLUG_WORDS]:
        word = word.replace("'", "")
        candidate = f"{slug}-{word}" if slug else word
        if len(candidate) > MAX_SLUG_LENGTH:
            break
        slug = candidate
    if not slug and words:
        slug = words[0].replace("'", "")[:MAX_SLUG_LENGTH]
    return slug or FALLBACK_SLUG


class ConversationStore:
    """Creates, appends to, resolves and lists persisted conversations."""

    def __init__(
        self,
        directory: Union[str, Path],
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        self.directory = Path(directory).expanduser()
        self._clock = clock
        self._id_factory = id_factory
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def create(
        self,
        initial_prompt: str,
        *turns: Turn,
        model: str = "",
        preferred_credential: Optional[str] = None,
    ) -> Conversation:
        """Create and persist a conversation named after ``initial_prompt``.

        Any ``turns`` given are stored with the new record in the same write,
        so a failed save never leaves a conversation without its first turns.

        Raises:
            StorageError: If the record cannot be written.
        """
        slug = make_slug(initial_prompt)
        self._ensure_directory()
        while True:
            identifier = self._id_factory()
            conversation_id = f"{slug}-{identifier.hex[:SUFFIX_LENGTH]}"
            with self._lock(conversation_id):
                if self._path(conversation_id).exists():
                    logger.debug(f"Conversation id {conversation_id} taken, drawing a new one")
                    continue
                now = self._clock()
                conversation = Conversation(
                    id=conversation_id,
                    uuid=str(identifier),
                    slug=slug,
                    model=model,
                    turns=list(turns),
                    preferred_credential=preferred_credential,
                    created_at=now,
                    updated_at=now,
                )
                self._write(conversation)
                break
        logger.info(f"Created conversation {conversation_id}")
        return conversation

    def append(
        self,
        conversation_id: str,
        *turns: Turn,
        preferred_credential: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Conversation:
        """Append ``turns`` to a conversation in a single atomic write.

        Args:
            conversation_id: The full conversation id.
            *turns: Turns to append, in order.
            preferred_credential: Fingerprint of the key that last succeeded.
            model: Model identifier to continue with on the next resume.

        Returns:
            The updated conversation.

        Raises:
            NotFoundError: If no conversation has this id.
            StorageError: If the record cannot be read or written.
        """
        if not turns:
            raise ValueError("append() needs at least one turn")

        with self._lock(conversation_id):
            path = self._path(conversation_id)
            if not path.is_file():
                raise NotFoundError(f"Conversation {conversation_id} not found", conversation_id)
            conversation = self._read(path).with_turns(*turns, updated_at=self._clock())
            if preferred_credential:
                conversation.preferred_credential = preferred_credential
            if model:
                conversation.model = model
            self._write(conversation)

        logger.debug(f"Appended {len(turns)} turn(s) to {conversation_id}")
        return conversation

    def load(self, selector: Selector) -> Conversation:
        """Resolve ``selector`` and load the conversation.

        The selector may be a full id or UUID, a 1-based recency index (an int
        or a string of up to three digits, 1 = most recent), or an id suffix.

        Raises:
            NotFoundError: If nothing matches.
            AmbiguousSelectorError: If a suffix matches several conversations.
            StorageError: If the record cannot be read.
        """
        if isinstance(selector, str):
            selector = selector.strip()
            path = self._path(selector) if "/" not in selector and selector else None
            if path is not None and path.is_file():
                return self._read(path)

        conversations = self._load_all()

        if isinstance(selector, int) or (
            selector.isdigit() and len(selector) < SUFFIX_LENGTH
        ):
            position = int(selector)
            if 1 <= position <= len(conversations):
                return conversations[position - 1]
            raise NotFoundError(
                f"No conversation #{position}; there are {len(conversations)}", selector
            )

        for conversation in conversations:
            if conversation.uuid == selector:
                return conversation

        matches = [c for c in conversations if selector and c.id.endswith(selector)]
        if not matches:
            raise NotFoundError(f"No conversation matches '{selector}'", selector)
        if len(matches) > 1:
            ids = [c.id for c in matches]
            raise AmbiguousSelectorError(
                f"'{selector}' matches {len(ids)} conversations: {', '.join(ids)}",
                selector,
                ids,
            )
        return matches[0]

    def list(self) -> List[ConversationSummary]:
        """List conversations, most recently created first."""
        return [c.summary() for c in self._load_all()]

    def _load_all(self) -> List[Conversation]:
        if not self.directory.is_dir():
            return []
        conversations = []
        for path in self.directory.glob("*.json"):
            try:
                conversations.append(self._read(path))
            except StorageError as e:
                logger.warning(f"Skipping unreadable conversation {path.name}: {e}")
        conversations.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return conversations

    def _path(self, conversation_id: str) -> Path:
        return self.directory / f"{conversation_id}.json"

    @contextlib.contextmanager
    def _lock(self, conversation_id: str) -> Iterator[None]:
        """Hold the per-id thread lock and an exclusive lock on ``<id>.lock``."""
        with self._locks_guard:
            thread_lock = self._locks.setdefault(conversation_id, threading.Lock())

        with thread_lock:
            self._ensure_directory()
            lock_path = self.directory / f"{conversation_id}.lock"
            try:
                lock_file = lock_path.open("a+")
            except OSError as e:
                raise StorageError(f"Cannot open lock file {lock_path}: {e}") from e

            with lock_file:
                if fcntl is None:
                    yield
                    return

                deadline = time.monotonic() + LOCK_TIMEOUT_SECONDS
                while True:
                    try:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        if time.monotonic() >= deadline:
                            raise StorageError(
                                f"Timed out waiting for the lock on {conversation_id}"
                            ) from None
                        time.sleep(0.05)

                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create {self.directory}: {e}") from e

    def _read(self, path: Path) -> Conversation:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Conversation.from_dict(data)
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Corrupt conversation record {path}: {e}") from e

    def _write(self, conversation: Conversation) -> None:
        self._ensure_directory()
        target = self._path(conversation.id)
        payload = json.dumps(conversation.to_dict(), indent=2, ensure_ascii=False)
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=str(self.directory)
            )
        except OSError as e:
            raise StorageError(f"Cannot write {target}: {e}") from e

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise StorageError(f"Cannot write {target}: {e}") from e
