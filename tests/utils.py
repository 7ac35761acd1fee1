"""
tests/utils.py -- Constants and helpers shared by fixtures and test modules.
"""

from __future__ import annotations

import uuid

from auth.store import IdentityStore

TEST_SECRET = "test-secret-that-is-long-enough-for-hs256-signing"
TEST_ISSUER = "test-issuer"


def make_test_store(prefix: str = "identities") -> IdentityStore:
    """Create an isolated named shared-memory SQLite store.

    A random suffix keeps function-scoped stores from seeing each other's rows.
    """
    url = f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return IdentityStore(db_url=url)
