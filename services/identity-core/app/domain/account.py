from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Canonical user identity reachable by email or linked external identity."""

    account_id: int
    email: str
    handle: str
    created_at: datetime
    password_hash: str | None = None
    external_id: str | None = None
    display_name: str = ""
    avatar_url: str = ""
    emoji_avatar: str = ""
    is_admin: bool = False
    is_online: bool = False
    last_seen: datetime | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
