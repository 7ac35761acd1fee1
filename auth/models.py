"""
auth/models.py -- Domain dataclasses for identities.

Pattern: Data class (pure data container). The store maps rows to Identity;
the resolver and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Provider(str, Enum):
    LOCAL = "LOCAL"
    GOOGLE = "GOOGLE"


def normalize_email(email: str) -> str:
    """Trim and lowercase an email. Every store read and write goes through this."""
    return email.strip().lower()


@dataclass
class Identity:
    """A stored account, local or Google-authenticated.

    provider records how the account was last established and is upgraded
    LOCAL -> GOOGLE when a Google sign-in links to an existing local account.
    capabilities is what actually decides which login paths work: a linked
    account keeps its password hash, so it still supports local login even
    though provider now reads GOOGLE.

    password_hash is None for Google-only accounts.
    external_id is the Google `sub` claim, None until the first Google sign-in.
    """

    email: str
    provider: Provider
    id: int | None = None
    display_name: str | None = None
    password_hash: str | None = None
    external_id: str | None = None
    enabled: bool = True
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def capabilities(self) -> frozenset[Provider]:
        caps = set()
        if self.password_hash:
            caps.add(Provider.LOCAL)
        if self.external_id:
            caps.add(Provider.GOOGLE)
        return frozenset(caps)
