from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable

import jwt
import pytest

from app.delivery.queue import BoundedDeliveryQueue
from app.domain.account import Account
from app.domain.broadcast import Broadcast, Notification
from app.domain.contracts import NewAccount
from app.domain.errors import StorageFailure, UniqueViolation
from app.domain.fanout import BroadcastService
from app.domain.service import AccountService
from app.security.federation import FederatedTokenVerifier
from app.security.passwords import PasswordHasher

FEDERATION_SECRET = "test-federation-secret-0123456789abcdef"
FEDERATION_ISSUER = "https://issuer.test"
FEDERATION_AUDIENCE = "social-app"
ADMIN_EMAIL = "root@example.com"


class FakeAccountStore:
    """In-memory account store mimicking the Postgres unique indexes."""

    def __init__(self) -> None:
        self._accounts: dict[int, Account] = {}
        self._seq = 0
        self.before_create: Callable[[NewAccount], None] | None = None
        self.create_calls = 0

    def seed(self, email: str, handle: str, **fields) -> Account:
        self._seq += 1
        account = Account(
            account_id=self._seq,
            email=email,
            handle=handle,
            created_at=datetime.now(timezone.utc),
            **fields,
        )
        self._accounts[account.account_id] = account
        return replace(account)

    def find_by_id(self, account_id: int):
        account = self._accounts.get(account_id)
        return replace(account) if account else None

    def find_by_email(self, email: str):
        return self._first(lambda a: a.email.lower() == email.lower())

    def find_by_handle(self, handle: str):
        return self._first(lambda a: a.handle == handle)

    def find_by_external_id(self, external_id: str):
        return self._first(lambda a: a.external_id == external_id)

    def create(self, payload: NewAccount) -> Account:
        self.create_calls += 1
        if self.before_create is not None:
            hook, self.before_create = self.before_create, None
            hook(payload)
        if self.find_by_email(payload.email):
            raise UniqueViolation("email")
        if self.find_by_handle(payload.handle):
            raise UniqueViolation("handle")
        if payload.external_id and self.find_by_external_id(payload.external_id):
            raise UniqueViolation("external_id")
        return self.seed(
            payload.email,
            payload.handle,
            password_hash=payload.password_hash,
            external_id=payload.external_id,
            display_name=payload.display_name,
            avatar_url=payload.avatar_url,
            is_admin=payload.is_admin,
        )

    def link_external_id(self, account_id: int, external_id: str) -> bool:
        account = self._accounts[account_id]
        if account.external_id not in (None, external_id):
            return False
        holder = self.find_by_external_id(external_id)
        if holder is not None and holder.account_id != account_id:
            raise UniqueViolation("external_id")
        account.external_id = external_id
        return True

    def set_online(self, account_id: int, online: bool, seen_at: datetime) -> None:
        account = self._accounts[account_id]
        account.is_online = online
        account.last_seen = seen_at

    def set_privilege(self, account_id: int, is_admin: bool) -> None:
        self._accounts[account_id].is_admin = is_admin

    def list_ids(self) -> list[int]:
        return sorted(self._accounts)

    def list_ids_by_attribute(self, attribute: str, value: str) -> list[int]:
        return sorted(
            account_id
            for account_id, account in self._accounts.items()
            if getattr(account, attribute) == value
        )

    def __len__(self) -> int:
        return len(self._accounts)

    def _first(self, predicate):
        for account in self._accounts.values():
            if predicate(account):
                return replace(account)
        return None


class FakeBroadcastStore:
    def __init__(self) -> None:
        self.records: list[Broadcast] = []
        self.fail = False

    def create(self, admin_id: int, message: str) -> Broadcast:
        if self.fail:
            raise StorageFailure()
        record = Broadcast(
            broadcast_id=len(self.records) + 1,
            admin_id=admin_id,
            message=message,
            created_at=datetime.now(timezone.utc),
        )
        self.records.append(record)
        return record

    def list_recent(self, limit: int) -> list[Broadcast]:
        return list(reversed(self.records))[:limit]


class FakeNotificationSink:
    def __init__(self) -> None:
        self.rows: list[Notification] = []
        self.fail = False

    def insert_many(self, notifications: Iterable[Notification]) -> int:
        if self.fail:
            raise StorageFailure()
        batch = list(notifications)
        self.rows.extend(batch)
        return len(batch)


def mint_assertion(
    sub: str,
    email: str | None,
    *,
    name: str = "",
    picture: str = "",
    secret: str = FEDERATION_SECRET,
    expires_in: int = 300,
    **extra_claims,
) -> str:
    """Sign an ID token the way the test identity provider would."""
    now = int(time.time())
    claims = {
        "iss": FEDERATION_ISSUER,
        "aud": FEDERATION_AUDIENCE,
        "sub": sub,
        "name": name,
        "picture": picture,
        "iat": now,
        "exp": now + expires_in,
    }
    if email is not None:
        claims["email"] = email
    claims.update(extra_claims)
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def account_store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def broadcast_store() -> FakeBroadcastStore:
    return FakeBroadcastStore()


@pytest.fixture
def hasher() -> PasswordHasher:
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def verifier() -> FederatedTokenVerifier:
    return FederatedTokenVerifier(
        issuer=FEDERATION_ISSUER,
        audience=FEDERATION_AUDIENCE,
        shared_secret=FEDERATION_SECRET,
    )


@pytest.fixture
def account_service(account_store, hasher, verifier) -> AccountService:
    return AccountService(
        account_store,
        hasher,
        initial_admins=(ADMIN_EMAIL.upper(),),
        verifier=verifier,
    )


@pytest.fixture
def delivery_queue() -> BoundedDeliveryQueue:
    return BoundedDeliveryQueue(capacity=3)


@pytest.fixture
def broadcast_service(broadcast_store, account_store, delivery_queue) -> BroadcastService:
    return BroadcastService(broadcast_store, account_store, delivery_queue)
