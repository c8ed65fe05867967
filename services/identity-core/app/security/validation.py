"""Identity-string and password-strength policy checks."""

from __future__ import annotations

import re
import unicodedata

from ..domain.errors import InvalidFormat, PasswordRule, WeakPassword

HANDLE_MIN_LENGTH = 3
HANDLE_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 8

_HANDLE_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

PASSWORD_REQUIREMENTS = [
    "At least 8 characters",
    "At least one uppercase letter (A-Z)",
    "At least one lowercase letter (a-z)",
    "At least one number (0-9)",
    "At least one special character (!@#$%^&*)",
]


def validate_email_shape(email: str) -> None:
    """Raise ``InvalidFormat`` unless ``email`` has one ``@`` between non-empty parts."""
    if email.count("@") != 1:
        raise InvalidFormat("invalid email format")
    local, domain = email.split("@")
    if not local or not domain:
        raise InvalidFormat("invalid email format")


def validate_handle_shape(handle: str) -> None:
    """Raise ``InvalidFormat`` unless ``handle`` is 3-30 ASCII letters, digits or underscores."""
    if not HANDLE_MIN_LENGTH <= len(handle) <= HANDLE_MAX_LENGTH:
        raise InvalidFormat(
            f"handle must be between {HANDLE_MIN_LENGTH} and {HANDLE_MAX_LENGTH} characters"
        )
    if not _HANDLE_PATTERN.match(handle):
        raise InvalidFormat("handle may only contain letters, numbers and underscores")


def _is_symbol(char: str) -> bool:
    return unicodedata.category(char)[0] in ("P", "S")


def first_failing_rule(password: str) -> PasswordRule | None:
    """Return the first unmet rule, in the order length, upper, lower, digit, symbol."""
    if len(password) < PASSWORD_MIN_LENGTH:
        return PasswordRule.length
    if not any(char.isupper() for char in password):
        return PasswordRule.uppercase
    if not any(char.islower() for char in password):
        return PasswordRule.lowercase
    if not any(char.isdigit() for char in password):
        return PasswordRule.digit
    if not any(_is_symbol(char) for char in password):
        return PasswordRule.symbol
    return None


def validate_password_strength(password: str) -> None:
    rule = first_failing_rule(password)
    if rule is not None:
        raise WeakPassword(rule)
