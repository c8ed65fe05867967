"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel


class AccountProfile(BaseModel):
    """Public projection of an account; never carries credentials or external ids."""

    account_id: int
    email: str
    handle: str
    display_name: str = ""
    avatar_url: str = ""
    emoji_avatar: str = ""
    is_admin: bool = False
    is_online: bool = False
    last_seen: datetime | None = None
    created_at: datetime
