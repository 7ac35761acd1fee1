"""
tests/conftest.py -- Shared test fixtures.

This module provides:
  - store: isolated named shared-memory SQLite identity store (tests/utils.py)
  - verifier / codec / resolver / service: unit-level building blocks
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient against the real FastAPI app

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers and the gate lookup in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread.

DEBUG, BCRYPT_ROUNDS and LOGIN_RATE_LIMIT must be set before any api/auth
import so get_settings() generates a dev JWT secret, hashes cheaply, and does
not rate-limit a test module that logs in many times.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.credentials import CredentialVerifier
from auth.identity import IdentityResolver
from auth.service import AuthService
from auth.store import IdentityStore
from auth.tokens import TokenCodec
from core.config import get_settings
from tests.utils import TEST_ISSUER, TEST_SECRET, make_test_store


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    s = make_test_store()
    yield s
    s.close()


@pytest.fixture(scope="session")
def verifier() -> CredentialVerifier:
    # Minimum bcrypt cost keeps the suite fast.
    return CredentialVerifier(rounds=4)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(secret=TEST_SECRET, issuer=TEST_ISSUER, ttl_minutes=60, clock_skew_seconds=60)


@pytest.fixture
def resolver(store: IdentityStore, verifier: CredentialVerifier) -> IdentityResolver:
    return IdentityResolver(store, verifier)


@pytest.fixture
def service(resolver: IdentityResolver, codec: TokenCodec) -> AuthService:
    return AuthService(resolver, codec)


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: IdentityStore, oauth: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so TestClient routes see an isolated
    DB, and installs a mocked OAuth registry to prevent real network calls.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        codec = TokenCodec.from_settings(settings)
        app.state.identity_store = store
        app.state.token_codec = codec
        app.state.auth_service = AuthService(IdentityResolver(store, CredentialVerifier(rounds=4)), codec)
        app.state.oauth = oauth
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, IdentityStore, MagicMock], None, None]:
    """Yield (client, store, oauth_registry) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so tests
    hit real middleware, route handlers and exception handlers. Emails must be
    unique per test: the store is shared by every test in the module.
    """
    store = make_test_store("api")
    oauth = MagicMock()
    app.router.lifespan_context = _patch_lifespan(store, oauth)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, oauth

    store.close()
