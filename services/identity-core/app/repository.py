"""Database repositories for accounts, broadcasts and notifications."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator

import psycopg
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.broadcast import Broadcast, Notification
from .domain.contracts import NewAccount
from .domain.errors import StorageFailure, UniqueViolation

_ACCOUNT_COLUMNS = """
    account_id, email, handle, password_hash, external_id, display_name,
    avatar_url, emoji_avatar, is_admin, is_online, last_seen, created_at
"""

# unique index name -> domain field, see migrations/001_identity_core.sql
_UNIQUE_INDEX_FIELDS = {
    "accounts_email_key": "email",
    "accounts_handle_key": "handle",
    "accounts_external_id_key": "external_id",
}

# audience attributes that may be used to filter account ids
_ATTRIBUTE_COLUMNS = {
    "emoji_avatar": "emoji_avatar",
}


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map psycopg failures onto the domain storage errors."""
    try:
        yield
    except psycopg.errors.UniqueViolation as exc:
        constraint = exc.diag.constraint_name or ""
        raise UniqueViolation(_UNIQUE_INDEX_FIELDS.get(constraint, constraint or "unknown")) from exc
    except psycopg.Error as exc:
        raise StorageFailure() from exc


class AccountRepository:
    """Postgres-backed account store; uniqueness is enforced by unique indexes."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_by_id(self, account_id: int) -> Account | None:
        return self._fetch_one("account_id = %s", (account_id,))

    def find_by_email(self, email: str) -> Account | None:
        """Case-insensitive email lookup backed by the ``lower(email)`` index."""
        return self._fetch_one("lower(email) = lower(%s)", (email,))

    def find_by_handle(self, handle: str) -> Account | None:
        return self._fetch_one("handle = %s", (handle,))

    def find_by_external_id(self, external_id: str) -> Account | None:
        return self._fetch_one("external_id = %s", (external_id,))

    def create(self, payload: NewAccount) -> Account:
        """Insert an account, raising ``UniqueViolation`` naming the clashing field."""
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (
                            email, handle, password_hash, external_id,
                            display_name, avatar_url, is_admin
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            payload.email,
                            payload.handle,
                            payload.password_hash,
                            payload.external_id,
                            payload.display_name,
                            payload.avatar_url,
                            payload.is_admin,
                        ),
                    )
                    row = cur.fetchone()
                    conn.commit()
        return self._map_record(row)

    def link_external_id(self, account_id: int, external_id: str) -> bool:
        """Bind ``external_id`` unless the account already carries a different one."""
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE accounts
                        SET external_id = %s
                        WHERE account_id = %s AND (external_id IS NULL OR external_id = %s)
                        """,
                        (external_id, account_id, external_id),
                    )
                    linked = cur.rowcount == 1
                    conn.commit()
        return linked

    def set_online(self, account_id: int, online: bool, seen_at: datetime) -> None:
        self._execute(
            "UPDATE accounts SET is_online = %s, last_seen = %s WHERE account_id = %s",
            (online, seen_at, account_id),
        )

    def set_privilege(self, account_id: int, is_admin: bool) -> None:
        self._execute(
            "UPDATE accounts SET is_admin = %s WHERE account_id = %s",
            (is_admin, account_id),
        )

    def list_ids(self) -> list[int]:
        return self._fetch_ids("SELECT account_id FROM accounts ORDER BY account_id", ())

    def list_ids_by_attribute(self, attribute: str, value: str) -> list[int]:
        column = _ATTRIBUTE_COLUMNS.get(attribute)
        if column is None:
            raise ValueError(f"unsupported account attribute: {attribute}")
        return self._fetch_ids(
            f"SELECT account_id FROM accounts WHERE {column} = %s ORDER BY account_id",
            (value,),
        )

    def _fetch_one(self, where_sql: str, params: tuple[Any, ...]) -> Account | None:
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {where_sql}", params)
                    row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def _fetch_ids(self, query: str, params: tuple[Any, ...]) -> list[int]:
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    return [row[0] for row in cur.fetchall()]

    def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    conn.commit()

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            handle=row[2],
            password_hash=row[3],
            external_id=row[4],
            display_name=row[5] or "",
            avatar_url=row[6] or "",
            emoji_avatar=row[7] or "",
            is_admin=row[8],
            is_online=row[9],
            last_seen=row[10],
            created_at=row[11],
        )


class BroadcastRepository:
    """Durable broadcast records; the source of truth for fan-out."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, admin_id: int, message: str) -> Broadcast:
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        INSERT INTO broadcasts (admin_id, message)
                        VALUES (%s, %s)
                        RETURNING broadcast_id, admin_id, message, created_at
                        """,
                        (admin_id, message),
                    )
                    row = cur.fetchone()
                    conn.commit()
        return Broadcast(*row)

    def list_recent(self, limit: int) -> list[Broadcast]:
        """Return the newest broadcasts first."""
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        """
                        SELECT broadcast_id, admin_id, message, created_at
                        FROM broadcasts
                        ORDER BY created_at DESC, broadcast_id DESC
                        LIMIT %s
                        """,
                        (limit,),
                    )
                    return [Broadcast(*row) for row in cur.fetchall()]


class NotificationRepository:
    """Per-recipient notification rows written by the delivery worker."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def insert_many(self, notifications: Iterable[Notification]) -> int:
        rows = [
            (n.recipient_id, n.kind, n.broadcast_id, n.message, n.read, n.created_at)
            for n in notifications
        ]
        if not rows:
            return 0
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.executemany(
                        """
                        INSERT INTO notifications (account_id, kind, target_id, message, read, created_at)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        """,
                        rows,
                    )
                    conn.commit()
        return len(rows)
