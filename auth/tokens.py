"""
auth/tokens.py -- Bearer token issuance and validation (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry iss, sub (email), iat, exp plus
       the application claims `provider` and `uid`. The codec holds no
       server-side token table; validation is pure computation.

  Key: derived once in the constructor from the configured secret and never
       mutated afterwards. The secret may be base64 or raw text. Whichever
       path yields at least 32 bytes is used; otherwise construction fails
       with KeyMisconfiguredError. A short key never signs anything.

  Validation: validate() and validate_for() return False on any parse,
       signature, issuer or expiry failure and never raise. Which check
       failed is logged at DEBUG and not returned to the caller.

  subject_of(): reads the subject WITHOUT verifying the signature, so the
       gate can load the identity before running the full check against it.
       Its result must never be trusted on its own.

Layer rule: no imports from api/. core.config is read only by from_settings().
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwk, jwt

from auth.errors import KeyMisconfiguredError, MalformedTokenError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("loginbackend.auth.tokens")

ALGORITHM = "HS256"
MIN_KEY_BYTES = 32

# Claims the codec sets itself; callers cannot override them through `claims`.
_RESERVED_CLAIMS = frozenset({"iss", "sub", "iat", "exp"})


def derive_signing_key(secret: str) -> bytes:
    """Turn the configured secret into HMAC key bytes.

    Strict base64 is tried first and used when it decodes to at least 32
    bytes. Anything else falls back to the raw UTF-8 bytes of the secret.

    Raises:
        KeyMisconfiguredError: if neither path yields 32 bytes.
    """
    if not secret:
        raise KeyMisconfiguredError("JWT secret is empty")
    try:
        decoded = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) >= MIN_KEY_BYTES:
        return decoded
    raw = secret.encode("utf-8")
    if len(raw) < MIN_KEY_BYTES:
        raise KeyMisconfiguredError(f"JWT secret must be at least {MIN_KEY_BYTES} bytes for {ALGORITHM}")
    return raw


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Signs, parses and validates bearer tokens.

    Immutable after construction and safe to share across concurrent requests.

    Args:
        secret:             Signing secret, base64 or raw (see derive_signing_key).
        issuer:             Value written to and required in the `iss` claim.
        ttl_minutes:        Token lifetime.
        clock_skew_seconds: Leeway applied to the expiry check.
        clock:              Source of "now" for iat/exp. Defaults to UTC wall clock.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        ttl_minutes: int = 60,
        clock_skew_seconds: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if ttl_minutes < 1:
            raise ValueError("ttl_minutes must be at least 1")
        if not issuer:
            raise ValueError("issuer must not be empty")
        self._key = jwk.construct(derive_signing_key(secret), ALGORITHM)
        self.issuer = issuer
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock_skew_seconds = clock_skew_seconds
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            ttl_minutes=settings.jwt_ttl_minutes,
            clock_skew_seconds=settings.jwt_clock_skew_seconds,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, subject: str, claims: dict[str, Any] | None = None) -> str:
        """Encode a signed token for `subject` carrying `claims`."""
        now = self._clock()
        payload: dict[str, Any] = {k: v for k, v in (claims or {}).items() if k not in _RESERVED_CLAIMS}
        payload.update(
            {
                "iss": self.issuer,
                "sub": subject,
                "iat": now,
                "exp": now + self.ttl,
            }
        )
        return jwt.encode(payload, self._key, algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def claims_of(self, token: str) -> dict[str, Any] | None:
        """Return the verified claims, or None if the token is invalid for any reason."""
        try:
            return jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={
                    "require_exp": True,
                    "require_iss": True,
                    "require_sub": True,
                    "leeway": self.clock_skew_seconds,
                },
            )
        except (JWTError, ValueError, TypeError, AttributeError) as exc:
            logger.debug("Token rejected: %s", exc)
            return None

    def validate(self, token: str) -> bool:
        """Signature, issuer and expiry (with skew leeway) must all pass."""
        return self.claims_of(token) is not None

    def validate_for(self, token: str, expected_subject: str) -> bool:
        """validate() plus a case-insensitive match of `sub` against expected_subject."""
        claims = self.claims_of(token)
        if claims is None or not expected_subject:
            return False
        subject = claims.get("sub")
        return isinstance(subject, str) and subject.casefold() == expected_subject.casefold()

    def subject_of(self, token: str) -> str:
        """Read the `sub` claim without verifying the token.

        Raises:
            MalformedTokenError: if the token cannot be parsed or has no string subject.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except (JWTError, ValueError, TypeError, AttributeError) as exc:
            raise MalformedTokenError("Token could not be parsed") from exc
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError("Token has no subject")
        return subject
