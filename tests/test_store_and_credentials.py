"""
tests/test_store_and_credentials.py -- IdentityStore persistence and CredentialVerifier.

Coverage:
  - create/get round trip, case-insensitive email lookup
  - UNIQUE(email) and UNIQUE(external_id); unlinked rows never collide
  - LOCAL identities require a password hash
  - update_identity bumps updated_at and rejects unknown fields
  - CredentialVerifier: match, mismatch, missing/blank/garbage hash, 72-byte cap
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialVerifier
from auth.models import Identity, Provider
from auth.store import IdentityStore


def _local(email: str, password_hash: str = "$2b$04$placeholderplaceholderplacehold") -> Identity:
    return Identity(email=email, provider=Provider.LOCAL, password_hash=password_hash)


class TestIdentityStore:
    def test_create_and_lookup(self, store: IdentityStore) -> None:
        uid = store.create_identity(_local("Alice@Example.com"))
        by_id = store.get_by_id(uid)
        assert by_id is not None
        assert by_id.email == "alice@example.com"
        assert by_id.created_at and by_id.updated_at
        assert store.get_by_email("ALICE@example.COM") == by_id

    def test_missing_lookups_return_none(self, store: IdentityStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_external_id("g-404") is None

    def test_email_unique_case_insensitive(self, store: IdentityStore) -> None:
        store.create_identity(_local("dup@example.com"))
        with pytest.raises(IntegrityError):
            store.create_identity(_local("DUP@example.com"))

    def test_external_id_unique_when_present(self, store: IdentityStore) -> None:
        store.create_identity(Identity(email="a@example.com", provider=Provider.GOOGLE, external_id="g-1"))
        with pytest.raises(IntegrityError):
            store.create_identity(Identity(email="b@example.com", provider=Provider.GOOGLE, external_id="g-1"))

    def test_null_external_ids_do_not_collide(self, store: IdentityStore) -> None:
        store.create_identity(_local("one@example.com"))
        store.create_identity(_local("two@example.com"))
        assert store.count_identities() == 2

    def test_external_id_lookup_is_scoped_to_provider(self, store: IdentityStore) -> None:
        store.create_identity(Identity(email="g@example.com", provider=Provider.GOOGLE, external_id="g-2"))
        assert store.get_by_external_id("g-2", Provider.GOOGLE) is not None
        assert store.get_by_external_id("g-2", Provider.LOCAL) is None

    def test_local_identity_requires_password_hash(self, store: IdentityStore) -> None:
        with pytest.raises(ValueError):
            store.create_identity(Identity(email="nohash@example.com", provider=Provider.LOCAL))

    def test_update_bumps_updated_at(self, store: IdentityStore) -> None:
        uid = store.create_identity(_local("upd@example.com"))
        before = store.get_by_id(uid)
        assert store.update_identity(uid, display_name="Updated", provider=Provider.GOOGLE) is True
        after = store.get_by_id(uid)
        assert after.display_name == "Updated"
        assert after.provider == Provider.GOOGLE
        assert after.created_at == before.created_at
        assert after.updated_at >= before.updated_at

    def test_update_missing_row(self, store: IdentityStore) -> None:
        assert store.update_identity(12345, display_name="x") is False

    def test_update_rejects_unknown_fields(self, store: IdentityStore) -> None:
        uid = store.create_identity(_local("bad@example.com"))
        with pytest.raises(ValueError):
            store.update_identity(uid, id=99)

    def test_ping(self, store: IdentityStore) -> None:
        assert store.ping() is True


class TestCredentialVerifier:
    def test_hash_and_verify(self, verifier: CredentialVerifier) -> None:
        hashed = verifier.hash("pw123456")
        assert hashed.startswith("$2")
        assert verifier.verify("pw123456", hashed) is True
        assert verifier.verify("pw1234567", hashed) is False

    @pytest.mark.parametrize("stored", [None, "", "   ", "not-a-bcrypt-hash"])
    def test_unusable_hash_is_false(self, verifier: CredentialVerifier, stored) -> None:
        assert verifier.verify("pw123456", stored) is False

    def test_none_password_is_false(self, verifier: CredentialVerifier) -> None:
        assert verifier.verify(None, verifier.hash("pw123456")) is False

    def test_password_over_72_bytes_rejected(self, verifier: CredentialVerifier) -> None:
        with pytest.raises(ValueError):
            verifier.hash("é" * 40)  # 80 UTF-8 bytes

    def test_burn_does_not_raise(self, verifier: CredentialVerifier) -> None:
        verifier.burn("anything")
        verifier.burn(None)
