"""Broadcast service: persist once, then fan out to a bounded delivery queue."""

from __future__ import annotations

import logging

from .broadcast import AudienceKind, AudienceSelector, Broadcast, Notification
from .contracts import AccountStore, BroadcastStore, DeliveryQueue
from .errors import EmptyMessage, MissingSelector
from ..metrics import NOTIFICATIONS_DROPPED, NOTIFICATIONS_ENQUEUED

logger = logging.getLogger(__name__)

DEFAULT_BROADCAST_LIMIT = 20


class BroadcastService:
    """Issue admin broadcasts without ever blocking on delivery.

    The persisted ``Broadcast`` is the source of truth. The delivery queue is a
    best-effort live channel: when it is full, notifications are dropped and
    recipients see the broadcast through the durable listing instead.
    """

    def __init__(
        self,
        broadcasts: BroadcastStore,
        accounts: AccountStore,
        queue: DeliveryQueue,
    ) -> None:
        self._broadcasts = broadcasts
        self._accounts = accounts
        self._queue = queue

    def broadcast(
        self,
        admin_id: int,
        message: str,
        audience: AudienceSelector | None = None,
    ) -> Broadcast:
        """Persist a broadcast and enqueue one notification per recipient.

        Raises
        ------
        EmptyMessage
            When ``message`` is empty or whitespace.
        MissingSelector
            When the audience kind needs a value and none was given.
        StorageFailure
            When the broadcast cannot be persisted (nothing is enqueued) or
            the audience cannot be resolved.
        """
        audience = audience or AudienceSelector.everyone()
        if not message or not message.strip():
            raise EmptyMessage()
        if audience.requires_value and not audience.value:
            raise MissingSelector(f"{audience.kind.value} audience requires a value")

        record = self._broadcasts.create(admin_id, message)
        recipients = self._resolve_audience(audience)

        enqueued = 0
        for recipient_id in recipients:
            notification = Notification(
                recipient_id=recipient_id,
                broadcast_id=record.broadcast_id,
                message=message,
            )
            if self._queue.try_enqueue(notification):
                enqueued += 1

        dropped = len(recipients) - enqueued
        NOTIFICATIONS_ENQUEUED.inc(enqueued)
        NOTIFICATIONS_DROPPED.inc(dropped)
        if dropped:
            logger.warning(
                "broadcast %s: delivery queue full, dropped %d of %d notifications",
                record.broadcast_id,
                dropped,
                len(recipients),
            )
        logger.info(
            "broadcast %s issued by admin %s to %d recipients",
            record.broadcast_id,
            admin_id,
            len(recipients),
        )
        return record

    def list_broadcasts(self, limit: int = DEFAULT_BROADCAST_LIMIT) -> list[Broadcast]:
        if limit <= 0:
            limit = DEFAULT_BROADCAST_LIMIT
        return self._broadcasts.list_recent(limit)

    def _resolve_audience(self, audience: AudienceSelector) -> list[int]:
        if audience.kind is AudienceKind.everyone:
            return self._accounts.list_ids()
        return self._accounts.list_ids_by_attribute(audience.kind.value, audience.value or "")
