"""Typed failures surfaced by the identity and notification core."""

from __future__ import annotations

from enum import Enum


class CoreError(Exception):
    """Base class for every failure the core raises to its callers."""

    code: str = "core_error"
    default_message: str = "identity core failure"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidFormat(CoreError):
    code = "invalid_format"
    default_message = "invalid format"


class PasswordRule(str, Enum):
    """Password strength rules in the order they are evaluated."""

    length = "length"
    uppercase = "uppercase"
    lowercase = "lowercase"
    digit = "digit"
    symbol = "symbol"


_PASSWORD_RULE_MESSAGES = {
    PasswordRule.length: "password must be at least 8 characters",
    PasswordRule.uppercase: "password must contain at least one uppercase letter",
    PasswordRule.lowercase: "password must contain at least one lowercase letter",
    PasswordRule.digit: "password must contain at least one number",
    PasswordRule.symbol: "password must contain at least one special character",
}


class WeakPassword(CoreError):
    code = "weak_password"

    def __init__(self, rule: PasswordRule) -> None:
        self.rule = rule
        super().__init__(_PASSWORD_RULE_MESSAGES[rule])


class EmailTaken(CoreError):
    code = "email_taken"
    default_message = "email already exists"


class HandleTaken(CoreError):
    code = "handle_taken"
    default_message = "handle already exists"


class InvalidCredentials(CoreError):
    """Raised for every password-login failure so callers cannot probe for accounts."""

    code = "invalid_credentials"
    default_message = "invalid email or password"


class IdentityConflict(CoreError):
    code = "identity_conflict"
    default_message = "account is already linked to a different external identity"


class ProviderUnavailable(CoreError):
    code = "provider_unavailable"
    default_message = "identity provider could not verify the assertion"


class StorageFailure(CoreError):
    """Opaque storage error; retry policy belongs to the caller."""

    code = "storage_failure"
    default_message = "storage operation failed"


class AccountNotFound(CoreError):
    code = "account_not_found"
    default_message = "account not found"


class PrivilegeUnchanged(CoreError):
    code = "privilege_unchanged"
    default_message = "privilege already in requested state"


class EmptyMessage(CoreError):
    code = "empty_message"
    default_message = "message is required"


class MissingSelector(CoreError):
    code = "missing_selector"
    default_message = "audience selector requires a value"


class UniqueViolation(StorageFailure):
    """Store-level unique constraint violation naming the offending field.

    The reconciliation engine translates this into ``EmailTaken``,
    ``HandleTaken`` or ``IdentityConflict``; it never reaches transport.
    """

    code = "unique_violation"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"unique constraint violated on {field}")
