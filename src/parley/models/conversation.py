"""Conversation-related data models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)


@dataclass(frozen=True)
class ContentPart:
    """Reference to a media part attached to a turn."""

    kind: str  # "image" or "file"
    uri: str
    mime_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "uri": self.uri, "mime_type": self.mime_type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentPart":
        return cls(kind=data["kind"], uri=data["uri"], mime_type=data.get("mime_type"))


@dataclass(frozen=True)
class TokenUsage:
    """Token counts as reported by the provider. Any field may be unknown."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    def to_dict(self) -> dict[str, Optional[int]]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["TokenUsage"]:
        if not data:
            return None
        return cls(
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            total_tokens=data.get("total_tokens"),
        )


@dataclass(frozen=True)
class Turn:
    """A single role-tagged message within a conversation."""

    role: str  # "user" or "assistant"
    content: str
    parts: tuple[ContentPart, ...] = ()
    usage: Optional[TokenUsage] = None
    created_at: datetime = field(default_factory=datetime.now)
    model: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid turn role: {self.role!r}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }
        if self.parts:
            data["parts"] = [p.to_dict() for p in self.parts]
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.model:
            data["model"] = self.model
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Turn":
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            parts=tuple(ContentPart.from_dict(p) for p in data.get("parts", [])),
            usage=TokenUsage.from_dict(data.get("usage")),
            created_at=datetime.fromisoformat(data["created_at"]),
            model=data.get("model"),
        )


@dataclass
class Conversation:
    """A persisted multi-turn conversation.

    ``id`` is the human-readable ``<slug>-<suffix>`` key used on disk and in
    selectors; ``uuid`` is the full identifier the suffix was taken from.
    """

    id: str
    uuid: str
    slug: str
    model: str = ""
    turns: list[Turn] = field(default_factory=list)
    preferred_credential: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def with_turns(self, *turns: Turn, updated_at: datetime) -> "Conversation":
        """Return a copy with ``turns`` appended; the original is untouched."""
        return replace(self, turns=[*self.turns, *turns], updated_at=updated_at)

    def summary(self) -> "ConversationSummary":
        first = self.turns[0].content if self.turns else ""
        return ConversationSummary(
            id=self.id,
            slug=self.slug,
            model=self.model,
            turn_count=len(self.turns),
            created_at=self.created_at,
            updated_at=self.updated_at,
            preview=first[:50] if first else "Empty",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "slug": self.slug,
            "model": self.model,
            "preferred_credential": self.preferred_credential,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "turns": [t.to_dict() for t in self.turns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            uuid=data["uuid"],
            slug=data["slug"],
            model=data.get("model", ""),
            turns=[Turn.from_dict(t) for t in data.get("turns", [])],
            preferred_credential=data.get("preferred_credential"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(frozen=True)
class ConversationSummary:
    """Lightweight listing entry for a conversation."""

    id: str
    slug: str
    model: str
    turn_count: int
    created_at: datetime
    updated_at: datetime
    preview: str
