"""Broadcast and notification contracts exchanged over the delivery queue."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, Field


class NotificationEvent(BaseModel):
    recipient_id: int
    kind: str = "broadcast"
    broadcast_id: int = Field(..., alias="target_id")
    message: str
    read: bool = False
    created_at: datetime

    class Config:
        populate_by_name = True


class BroadcastPublished(BaseModel):
    broadcast_id: int
    admin_id: int
    message: str
    created_at: datetime
