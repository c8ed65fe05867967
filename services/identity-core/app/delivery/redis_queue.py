"""Redis-backed bounded delivery queue."""

from __future__ import annotations

import logging
from typing import Final

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError, ResponseError
from schemas import NotificationEvent

from ..domain.broadcast import Notification

logger = logging.getLogger(__name__)


class RedisDeliveryQueue:
    """Capacity-bounded Redis list shared by every process of the deployment."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])

    if redis.call('LLEN', key) >= capacity then
        return 0
    end
    redis.call('RPUSH', key, ARGV[2])
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        capacity: int,
        key: str = "notifications:delivery",
    ) -> None:
        """Initialise the Redis client, list key, capacity, and Lua script cache."""
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._client = client
        self._capacity = capacity
        self._key = key
        self._script = client.register_script(self._LUA_SCRIPT)

    @property
    def capacity(self) -> int:
        return self._capacity

    def try_enqueue(self, item: Notification) -> bool:
        """Return ``True`` when the list had room; Redis failures count as a drop."""
        payload = _encode(item)
        try:
            try:
                result = self._script(keys=[self._key], args=[self._capacity, payload])
                return int(result) == 1
            except ResponseError as exc:
                message = str(exc).lower()
                if "unknown command" in message and "eval" in message:
                    return self._enqueue_fallback(payload)
                raise
        except RedisError as exc:
            logger.warning("redis delivery queue unavailable, dropping notification: %s", exc)
            return False

    def _enqueue_fallback(self, payload: str) -> bool:
        """Non-atomic variant used when Lua scripting is unavailable; may overshoot under races."""
        if self._client.llen(self._key) >= self._capacity:
            return False
        self._client.rpush(self._key, payload)
        return True

    def drain(self, max_items: int) -> list[Notification]:
        """Pop up to ``max_items`` notifications from the head of the list.

        Entries that do not decode are logged and discarded; the rest of the
        batch is still returned.
        """
        raw = self._client.lpop(self._key, max_items)
        if not raw:
            return []
        notifications = []
        for entry in raw:
            try:
                notifications.append(_decode(entry))
            except ValidationError as exc:
                logger.warning("discarding malformed delivery queue entry: %s", exc)
        return notifications

    def __len__(self) -> int:
        return int(self._client.llen(self._key))


def _encode(item: Notification) -> str:
    event = NotificationEvent(
        recipient_id=item.recipient_id,
        kind=item.kind,
        broadcast_id=item.broadcast_id,
        message=item.message,
        read=item.read,
        created_at=item.created_at,
    )
    return event.model_dump_json(by_alias=True)


def _decode(raw: bytes | str) -> Notification:
    event = NotificationEvent.model_validate_json(raw)
    return Notification(
        recipient_id=event.recipient_id,
        broadcast_id=event.broadcast_id,
        message=event.message,
        kind=event.kind,
        read=event.read,
        created_at=event.created_at,
    )
