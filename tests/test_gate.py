"""
tests/test_gate.py -- Unit tests for the per-request authentication decision.

authenticate() must only ever return an AuthContext: every failure path
(no token, garbage, unknown subject, disabled identity, bad signature,
expired token, lookup blowing up) degrades to ANONYMOUS.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.gate import ANONYMOUS, AuthContext, authenticate, extract_bearer
from auth.models import Identity, Provider
from auth.tokens import TokenCodec
from tests.utils import TEST_ISSUER, TEST_SECRET

ALICE = Identity(id=1, email="alice@example.com", provider=Provider.LOCAL, password_hash="x")


def _lookup(*identities: Identity):
    by_email = {i.email: i for i in identities}
    return lambda email: by_email.get(email.lower())


class TestExtractBearer:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("Bearer   abc  ", "abc"),
            ("Bearer ", None),
            ("Basic dXNlcjpwdw==", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected) -> None:
        assert extract_bearer(header) == expected


class TestAuthenticate:
    def test_valid_token_authenticates(self, codec: TokenCodec) -> None:
        token = codec.issue(ALICE.email, {"uid": ALICE.id})
        context = authenticate(token, codec, _lookup(ALICE))
        assert context.is_authenticated
        assert context.identity == ALICE

    def test_subject_case_does_not_matter(self, codec: TokenCodec) -> None:
        token = codec.issue("ALICE@example.com", {})
        assert authenticate(token, codec, _lookup(ALICE)).identity == ALICE

    @pytest.mark.parametrize("token", [None, ""])
    def test_no_token_is_anonymous(self, codec: TokenCodec, token) -> None:
        assert authenticate(token, codec, _lookup(ALICE)) is ANONYMOUS

    def test_garbage_is_anonymous(self, codec: TokenCodec) -> None:
        assert authenticate("garbage", codec, _lookup(ALICE)) is ANONYMOUS

    def test_unknown_subject_is_anonymous(self, codec: TokenCodec) -> None:
        token = codec.issue("ghost@example.com", {})
        assert authenticate(token, codec, _lookup(ALICE)) is ANONYMOUS

    def test_disabled_identity_is_anonymous(self, codec: TokenCodec) -> None:
        disabled = Identity(id=2, email="off@example.com", provider=Provider.LOCAL, password_hash="x", enabled=False)
        token = codec.issue(disabled.email, {})
        assert authenticate(token, codec, _lookup(disabled)) is ANONYMOUS

    def test_foreign_signature_is_anonymous(self, codec: TokenCodec) -> None:
        forger = TokenCodec(secret="forged-secret-forged-secret-forged-secret", issuer=TEST_ISSUER)
        assert authenticate(forger.issue(ALICE.email, {}), codec, _lookup(ALICE)) is ANONYMOUS

    def test_expired_token_is_anonymous(self, codec: TokenCodec) -> None:
        old = datetime.now(timezone.utc) - timedelta(hours=3)
        stale = TokenCodec(secret=TEST_SECRET, issuer=TEST_ISSUER, clock=lambda: old)
        assert authenticate(stale.issue(ALICE.email, {}), codec, _lookup(ALICE)) is ANONYMOUS

    def test_lookup_failure_is_anonymous(self, codec: TokenCodec) -> None:
        def broken_lookup(email: str):
            raise RuntimeError("database is down")

        token = codec.issue(ALICE.email, {})
        assert authenticate(token, codec, broken_lookup) is ANONYMOUS

    def test_anonymous_context(self) -> None:
        assert ANONYMOUS == AuthContext()
        assert ANONYMOUS.is_authenticated is False
