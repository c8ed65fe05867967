"""One-way password hashing backed by bcrypt."""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12
# bcrypt only reads the first 72 bytes; newer releases reject longer input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted, cost-tunable password hashing.

    Parameters
    ----------
    rounds:
        bcrypt cost factor (log2 of the iteration count). Must be between 4 and 31.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest with a fresh random salt."""
        digest = bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=self._rounds))
        return digest.decode("utf-8")

    def verify(self, digest: str | None, plaintext: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``digest``; malformed digests never match."""
        if not digest:
            return False
        try:
            return bcrypt.checkpw(_encode(plaintext), digest.encode("utf-8"))
        except ValueError:
            return False


def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES]
