"""
auth/credentials.py -- Password hashing and verification (bcrypt).

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.

verify() is the only gate between a stored hash and a local login. It returns
False for a missing or blank hash, which is how Google-only accounts (no
password set) are kept out of the password path. It never raises.

Timing equalization: burn() runs one comparison against a dummy hash so that
a login for an unknown email costs the same bcrypt work as a wrong password.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from functools import cached_property

import bcrypt

# bcrypt only looks at the first 72 bytes of the input.
MAX_PASSWORD_BYTES = 72


class CredentialVerifier:
    """Hash and verify local passwords with a fixed bcrypt cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, raw_password: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Raises ValueError for passwords longer than 72 UTF-8 bytes instead of
        letting bcrypt truncate them.
        """
        encoded = raw_password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, raw_password: str | None, stored_hash: str | None) -> bool:
        """Return True if the plaintext password matches the stored bcrypt hash."""
        if not stored_hash or not stored_hash.strip() or raw_password is None:
            return False
        try:
            return bcrypt.checkpw(raw_password.encode("utf-8"), stored_hash.encode("utf-8"))
        except Exception:
            return False

    def burn(self, raw_password: str | None) -> None:
        """Spend one bcrypt comparison without a real hash to compare against."""
        self.verify(raw_password or "", self._dummy_hash)

    @cached_property
    def _dummy_hash(self) -> str:
        return self.hash("loginbackend_timing_dummy")
