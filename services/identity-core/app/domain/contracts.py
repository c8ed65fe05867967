"""Domain-level contracts shared by multiple layers.

The engines depend on these protocols rather than on the Postgres or Redis
adapters so they can be driven by in-memory fakes in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from .account import Account
from .broadcast import Broadcast, Notification


@dataclass(slots=True)
class NewAccount:
    """Validated inputs required to persist an account."""

    email: str
    handle: str
    password_hash: str | None = None
    external_id: str | None = None
    display_name: str = ""
    avatar_url: str = ""
    is_admin: bool = False


@dataclass(frozen=True, slots=True)
class FederatedIdentity:
    """Claims extracted from an already-verified identity-provider assertion."""

    external_id: str
    email: str
    display_name: str = ""
    avatar_url: str = ""


class AccountStore(Protocol):
    def find_by_id(self, account_id: int) -> Account | None: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_handle(self, handle: str) -> Account | None: ...

    def find_by_external_id(self, external_id: str) -> Account | None: ...

    def create(self, payload: NewAccount) -> Account:
        """Persist an account, raising ``UniqueViolation`` naming the clashing field."""
        ...

    def link_external_id(self, account_id: int, external_id: str) -> bool:
        """Bind ``external_id`` unless a different one is already bound; report success."""
        ...

    def set_online(self, account_id: int, online: bool, seen_at: datetime) -> None: ...

    def set_privilege(self, account_id: int, is_admin: bool) -> None: ...

    def list_ids(self) -> list[int]: ...

    def list_ids_by_attribute(self, attribute: str, value: str) -> list[int]: ...


class BroadcastStore(Protocol):
    def create(self, admin_id: int, message: str) -> Broadcast: ...

    def list_recent(self, limit: int) -> list[Broadcast]: ...


class DeliveryQueue(Protocol):
    def try_enqueue(self, item: Notification) -> bool:
        """Accept ``item`` if there is room right now; never block or raise."""
        ...

    def drain(self, max_items: int) -> list[Notification]: ...


class NotificationSink(Protocol):
    def insert_many(self, notifications: Iterable[Notification]) -> int: ...


class AssertionVerifier(Protocol):
    def verify(self, raw_assertion: str) -> FederatedIdentity:
        """Return verified claims or raise ``ProviderUnavailable``."""
        ...
