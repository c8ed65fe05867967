"""Prometheus counters for identity and notification workflows."""

from __future__ import annotations

from prometheus_client import Counter

LOGINS = Counter(
    "identity_logins_total",
    "Sign-in attempts by method and outcome.",
    ["method", "outcome"],
)

ACCOUNTS_CREATED = Counter(
    "identity_accounts_created_total",
    "Accounts created by sign-up method.",
    ["method"],
)

NOTIFICATIONS_ENQUEUED = Counter(
    "notifications_enqueued_total",
    "Per-recipient notifications accepted by the delivery queue.",
)

NOTIFICATIONS_DROPPED = Counter(
    "notifications_dropped_total",
    "Per-recipient notifications dropped because the delivery queue was full.",
)
