"""Broadcast and per-recipient notification records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

BROADCAST_KIND = "broadcast"


@dataclass(frozen=True, slots=True)
class Broadcast:
    """Durable record of one admin-authored message; immutable once persisted."""

    broadcast_id: int
    admin_id: int
    message: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Notification:
    """Per-recipient delivery unit derived from a broadcast."""

    recipient_id: int
    broadcast_id: int
    message: str
    kind: str = BROADCAST_KIND
    read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AudienceKind(str, Enum):
    everyone = "all"
    emoji_avatar = "emoji_avatar"


@dataclass(frozen=True, slots=True)
class AudienceSelector:
    """Describes which accounts a broadcast fans out to.

    ``everyone`` needs no value; attribute kinds carry the value that
    recipients must have for that attribute.
    """

    kind: AudienceKind = AudienceKind.everyone
    value: str | None = None

    @classmethod
    def everyone(cls) -> "AudienceSelector":
        return cls(AudienceKind.everyone)

    @classmethod
    def with_emoji_avatar(cls, emoji: str | None) -> "AudienceSelector":
        return cls(AudienceKind.emoji_avatar, emoji)

    @property
    def requires_value(self) -> bool:
        return self.kind is not AudienceKind.everyone
