from __future__ import annotations

import pytest

from app.domain.broadcast import BROADCAST_KIND, AudienceSelector
from app.domain.errors import EmptyMessage, MissingSelector, StorageFailure


def seed_accounts(account_store, count: int, **fields) -> list[int]:
    return [
        account_store.seed(f"user{i}@example.com", f"user{i}", **fields).account_id
        for i in range(count)
    ]


def test_broadcast_over_capacity_returns_record_and_fills_queue(
    broadcast_service, account_store, broadcast_store, delivery_queue
):
    seed_accounts(account_store, 5)

    record = broadcast_service.broadcast(1, "maintenance tonight")

    assert record in broadcast_store.records
    assert record.message == "maintenance tonight"
    assert len(delivery_queue) == delivery_queue.capacity

    queued = delivery_queue.drain(10)
    assert all(n.broadcast_id == record.broadcast_id for n in queued)
    assert all(n.kind == BROADCAST_KIND and not n.read for n in queued)
    assert len({n.recipient_id for n in queued}) == len(queued)


def test_broadcast_with_room_enqueues_every_recipient(broadcast_service, account_store, delivery_queue):
    ids = seed_accounts(account_store, 2)

    broadcast_service.broadcast(1, "hello")

    assert sorted(n.recipient_id for n in delivery_queue.drain(10)) == ids


def test_broadcast_to_empty_audience_still_persists(broadcast_service, broadcast_store, delivery_queue):
    record = broadcast_service.broadcast(1, "anyone there?")

    assert broadcast_store.records == [record]
    assert len(delivery_queue) == 0


def test_broadcast_filters_by_emoji_avatar(broadcast_service, account_store, delivery_queue):
    seed_accounts(account_store, 2, emoji_avatar="🐱")
    dog_owner = account_store.seed("dog@example.com", "dog", emoji_avatar="🐶").account_id

    broadcast_service.broadcast(1, "woof", AudienceSelector.with_emoji_avatar("🐶"))

    assert [n.recipient_id for n in delivery_queue.drain(10)] == [dog_owner]


@pytest.mark.parametrize("message", ["", "   "])
def test_broadcast_rejects_empty_message(broadcast_service, broadcast_store, message):
    with pytest.raises(EmptyMessage):
        broadcast_service.broadcast(1, message)
    assert broadcast_store.records == []


def test_broadcast_rejects_missing_selector_value(broadcast_service, broadcast_store):
    with pytest.raises(MissingSelector):
        broadcast_service.broadcast(1, "hi", AudienceSelector.with_emoji_avatar(""))
    assert broadcast_store.records == []


def test_broadcast_persistence_failure_enqueues_nothing(
    broadcast_service, account_store, broadcast_store, delivery_queue
):
    seed_accounts(account_store, 2)
    broadcast_store.fail = True

    with pytest.raises(StorageFailure):
        broadcast_service.broadcast(1, "lost")
    assert len(delivery_queue) == 0


def test_list_broadcasts_newest_first_with_default_limit(broadcast_service):
    for i in range(25):
        broadcast_service.broadcast(1, f"message {i}")

    recent = broadcast_service.list_broadcasts()
    assert len(recent) == 20
    assert recent[0].message == "message 24"
    assert len(broadcast_service.list_broadcasts(0)) == 20
    assert len(broadcast_service.list_broadcasts(5)) == 5
