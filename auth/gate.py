"""
auth/gate.py -- Per-request authentication decision.

authenticate() is a pure decision function:

    (token or None, codec, identity lookup) -> AuthContext

  1. No token                          -> anonymous.
  2. Subject cannot be read            -> anonymous.
  3. No identity for that subject,
     identity disabled, or the token
     fails validate_for(identity.email) -> anonymous.
  4. Otherwise                          -> authenticated as that identity.

Nothing raises past this boundary. Every failure degrades to anonymous and is
logged; whether anonymous access is allowed is decided later by the
dependencies in auth/dependencies.py.

Layer rule: no imports from api/ or core/. api/main.py wires this into the
request pipeline as middleware.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from auth.errors import MalformedTokenError
from auth.models import Identity
from auth.tokens import TokenCodec

logger = logging.getLogger("loginbackend.auth.gate")

IdentityLookup = Callable[[str], "Identity | None"]

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class AuthContext:
    """Outcome of the gate for one request. identity is None for anonymous callers."""

    identity: Identity | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


ANONYMOUS = AuthContext()


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header, or None."""
    if not authorization or authorization[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


def authenticate(token: str | None, codec: TokenCodec, lookup: IdentityLookup) -> AuthContext:
    if not token:
        return ANONYMOUS

    try:
        subject = codec.subject_of(token)
    except MalformedTokenError as exc:
        logger.debug("Bearer token ignored: %s", exc)
        return ANONYMOUS

    try:
        identity = lookup(subject)
    except Exception:
        logger.warning("Identity lookup failed during authentication", exc_info=True)
        return ANONYMOUS

    if identity is None:
        logger.info("Bearer token subject has no identity")
        return ANONYMOUS
    if not identity.enabled:
        logger.info("Bearer token for disabled identity id=%s", identity.id)
        return ANONYMOUS
    if not codec.validate_for(token, identity.email):
        logger.info("Bearer token failed validation for identity id=%s", identity.id)
        return ANONYMOUS

    return AuthContext(identity=identity)
