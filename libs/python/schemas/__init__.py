"""Shared schema exports."""

from .account import AccountProfile
from .notification import BroadcastPublished, NotificationEvent

__all__ = [
    "AccountProfile",
    "BroadcastPublished",
    "NotificationEvent",
]
