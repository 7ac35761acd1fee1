"""
auth/identity.py -- Resolve, create and link identities.

IdentityResolver is the only writer to the identity store. It owns three
flows:

  register_local()     -- new LOCAL account from email + password.
  authenticate_local() -- email + password login.
  upsert_from_oauth()  -- Google sign-in: find by (sub, GOOGLE), fall back to
                          email, else create. A matched local account is
                          linked in place.

Races are settled by the store's UNIQUE constraints, not by locks:
  - Two registrations for the same email: the loser's IntegrityError becomes
    DuplicateEmailError.
  - Two Google sign-ins for the same sub/email: the loser re-runs the lookup
    once and applies its changes to the row the winner created. A second
    collision raises IdentityConflictError.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialVerifier
from auth.errors import (
    AuthenticationDenied,
    DenialReason,
    DuplicateEmailError,
    IdentityConflictError,
    InvalidAssertionError,
)
from auth.models import Identity, Provider, normalize_email
from auth.store import IdentityStore

logger = logging.getLogger("loginbackend.auth.identity")


class IdentityResolver:
    def __init__(self, store: IdentityStore, verifier: CredentialVerifier) -> None:
        self.store = store
        self.verifier = verifier

    # ------------------------------------------------------------------
    # Local accounts
    # ------------------------------------------------------------------

    def register_local(self, email: str, raw_password: str, display_name: str | None = None) -> Identity:
        """Create a LOCAL identity.

        Raises:
            DuplicateEmailError: if the normalized email is already registered,
                including when a concurrent registration wins the insert.
        """
        normalized = normalize_email(email)
        if self.store.get_by_email(normalized) is not None:
            raise DuplicateEmailError(normalized)

        identity = Identity(
            email=normalized,
            provider=Provider.LOCAL,
            display_name=display_name,
            password_hash=self.verifier.hash(raw_password),
            enabled=True,
        )
        try:
            identity_id = self.store.create_identity(identity)
        except IntegrityError as exc:
            raise DuplicateEmailError(normalized) from exc

        logger.info("Registered local identity %s (id=%s)", normalized, identity_id)
        return self._reload(identity_id)

    def authenticate_local(self, email: str, raw_password: str) -> Identity:
        """Check an email/password pair.

        Always performs one bcrypt comparison, even for unknown emails, so the
        response time does not reveal whether the account exists.

        Raises:
            AuthenticationDenied: reason NOT_FOUND, INVALID_CREDENTIALS or DISABLED.
        """
        normalized = normalize_email(email)
        identity = self.store.get_by_email(normalized)
        if identity is None:
            self.verifier.burn(raw_password)
            raise AuthenticationDenied(DenialReason.NOT_FOUND, normalized)
        if not identity.password_hash:
            # Google-only account: no password was ever set.
            self.verifier.burn(raw_password)
            raise AuthenticationDenied(DenialReason.INVALID_CREDENTIALS, normalized)
        if not self.verifier.verify(raw_password, identity.password_hash):
            raise AuthenticationDenied(DenialReason.INVALID_CREDENTIALS, normalized)
        if not identity.enabled:
            raise AuthenticationDenied(DenialReason.DISABLED, normalized)
        return identity

    # ------------------------------------------------------------------
    # Google accounts
    # ------------------------------------------------------------------

    def upsert_from_oauth(self, external_id: str | None, email: str | None, display_name: str | None) -> Identity:
        """Find or create the identity behind a Google assertion.

        Idempotent: repeating a call with the same arguments changes nothing
        (no fields, no updated_at).

        Raises:
            InvalidAssertionError: external_id or email is missing.
            IdentityConflictError: the write collided twice with concurrent writers.
        """
        if not external_id or not external_id.strip() or not email or not email.strip():
            raise InvalidAssertionError("Google assertion is missing sub or email")
        normalized = normalize_email(email)

        try:
            return self._upsert_once(external_id, normalized, display_name)
        except IntegrityError:
            logger.info("Upsert for %s lost a race; retrying lookup once", normalized)
        try:
            return self._upsert_once(external_id, normalized, display_name)
        except IntegrityError as exc:
            raise IdentityConflictError(f"Could not upsert Google identity for {normalized}") from exc

    def _upsert_once(self, external_id: str, email: str, display_name: str | None) -> Identity:
        identity = self.store.get_by_external_id(external_id, Provider.GOOGLE)
        if identity is None:
            identity = self.store.get_by_email(email)

        if identity is None:
            identity_id = self.store.create_identity(
                Identity(
                    email=email,
                    provider=Provider.GOOGLE,
                    display_name=display_name,
                    external_id=external_id,
                    enabled=True,
                )
            )
            logger.info("Created Google identity %s (id=%s)", email, identity_id)
            return self._reload(identity_id)

        changes = _link_changes(identity, external_id, display_name)
        if not changes:
            return identity

        if identity.external_id and identity.external_id != external_id:
            logger.warning(
                "Relinking identity id=%s from Google subject %s to %s", identity.id, identity.external_id, external_id
            )
        self.store.update_identity(identity.id, **changes)
        logger.info("Linked Google identity %s (id=%s): %s", email, identity.id, sorted(changes))
        return self._reload(identity.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reload(self, identity_id: int) -> Identity:
        identity = self.store.get_by_id(identity_id)
        if identity is None:
            raise LookupError(f"Identity {identity_id} vanished after write")
        return identity


def _link_changes(identity: Identity, external_id: str, display_name: str | None) -> dict:
    """Fields to write when a Google sign-in matches `identity`. Empty when already linked."""
    changes: dict = {}
    if identity.provider != Provider.GOOGLE:
        changes["provider"] = Provider.GOOGLE
    if identity.external_id != external_id:
        changes["external_id"] = external_id
    if identity.display_name is None and display_name is not None:
        changes["display_name"] = display_name
    if not identity.enabled:
        changes["enabled"] = True
    return changes
