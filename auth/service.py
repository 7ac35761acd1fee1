"""
auth/service.py -- Login, registration and Google sign-in flows.

AuthService ties the resolver to the token codec and returns one result shape
for all three flows. Every flow mints a first-party token with the same claim
set ({provider, uid, name}); the token Google hands back during the OAuth code
exchange is never passed on to clients.

Failures are the typed AuthError subclasses raised by IdentityResolver. They
propagate unchanged; the API layer maps them to HTTP responses.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.identity import IdentityResolver
from auth.models import Identity
from auth.tokens import TokenCodec


@dataclass(frozen=True)
class AuthResult:
    token: str
    identity: Identity


class AuthService:
    def __init__(self, resolver: IdentityResolver, codec: TokenCodec) -> None:
        self.resolver = resolver
        self.codec = codec

    def login(self, email: str, password: str) -> AuthResult:
        identity = self.resolver.authenticate_local(email, password)
        return AuthResult(token=self.issue_for(identity), identity=identity)

    def register(self, email: str, password: str, display_name: str | None = None) -> AuthResult:
        identity = self.resolver.register_local(email, password, display_name)
        return AuthResult(token=self.issue_for(identity), identity=identity)

    def complete_oauth(self, external_id: str | None, email: str | None, display_name: str | None) -> AuthResult:
        identity = self.resolver.upsert_from_oauth(external_id, email, display_name)
        return AuthResult(token=self.issue_for(identity), identity=identity)

    def issue_for(self, identity: Identity) -> str:
        """Mint a token for `identity`: sub=email, claims provider + uid (+ name when set)."""
        claims: dict = {"provider": identity.provider.value, "uid": identity.id}
        if identity.display_name:
            claims["name"] = identity.display_name
        return self.codec.issue(identity.email, claims)
