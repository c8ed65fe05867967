"""Public handle allocation from an email seed."""

from __future__ import annotations

import re
from typing import Callable

from ..security.validation import HANDLE_MAX_LENGTH

FIRST_SUFFIX = 2
MAX_SUFFIX_ATTEMPTS = 99
FILLER = "_"
EMPTY_BASE = "user"

# room for the widest numeric suffix
_BASE_MAX_LENGTH = HANDLE_MAX_LENGTH - len(str(FIRST_SUFFIX + MAX_SUFFIX_ATTEMPTS - 1))

_SEPARATORS = re.compile(r"[^a-z0-9]+")


def derive_base_handle(seed_email: str) -> str:
    """Lowercase the local part and collapse each separator run into one filler character."""
    local = seed_email.split("@", 1)[0].lower()
    base = _SEPARATORS.sub(FILLER, local).strip(FILLER)
    return base[:_BASE_MAX_LENGTH].rstrip(FILLER) or EMPTY_BASE


def fallback_handle(seed_email: str) -> str:
    """Base joined with the domain's alphanumerics, cut to the handle length limit."""
    base = derive_base_handle(seed_email)
    domain = seed_email.split("@", 1)[1] if "@" in seed_email else ""
    handle = f"{base}{FILLER}{_SEPARATORS.sub('', domain.lower())}"
    return handle[:HANDLE_MAX_LENGTH].rstrip(FILLER)


def allocate_handle(seed_email: str, exists: Callable[[str], bool]) -> str:
    """Return a handle that ``exists`` reports as free, or the domain fallback.

    The base candidate is tried first, then ``base2``, ``base3`` and so on for at
    most ``MAX_SUFFIX_ATTEMPTS`` probes. The fallback is returned without a probe
    and may already be taken; callers must re-check uniqueness when persisting.
    """
    base = derive_base_handle(seed_email)
    if not exists(base):
        return base

    for suffix in range(FIRST_SUFFIX, FIRST_SUFFIX + MAX_SUFFIX_ATTEMPTS):
        candidate = f"{base}{suffix}"
        if not exists(candidate):
            return candidate

    return fallback_handle(seed_email)
