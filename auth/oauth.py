"""
auth/oauth.py -- Authlib Google OAuth/OIDC configuration.

build_oauth() registers Google only when both client ID and secret are
configured. The registry is built once at startup and stored on app.state.

Security notes:
  Email verification is mandatory. get_google_identity() raises
  InvalidAssertionError if Google does not confirm the email is verified --
  an unverified address could belong to someone else, and the resolver links
  Google sign-ins to existing local accounts by email.

  OAuth state (CSRF protection) is handled by authlib through Starlette's
  SessionMiddleware: the state is stored in the session before the redirect
  and checked in the callback.

Layer rule: no imports from api/. core.config is read for provider settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from auth.errors import InvalidAssertionError
from core.config import Settings

logger = logging.getLogger("loginbackend.auth.oauth")

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass(frozen=True)
class GoogleIdentity:
    """The parts of a Google ID token the resolver needs."""

    sub: str
    email: str
    name: str | None = None


def build_oauth(settings: Settings) -> OAuth:
    """Return an Authlib registry with Google registered when configured."""
    oauth = OAuth()
    if settings.google_enabled:
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    else:
        logger.info("Google OAuth not configured -- /oauth2 routes will return 404")
    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return {"name", "label"} for every configured OAuth provider."""
    providers: list[dict] = []
    if settings.google_enabled:
        providers.append({"name": "google", "label": "Google"})
    return providers


def get_google_identity(token: dict) -> GoogleIdentity:
    """Extract (sub, email, name) from the token response of a Google code exchange.

    Raises:
        InvalidAssertionError: no userinfo, unverified email, or missing sub/email.
    """
    userinfo = token.get("userinfo") if token else None
    if not userinfo:
        raise InvalidAssertionError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise InvalidAssertionError("google OAuth: email is not verified")

    sub = userinfo.get("sub")
    email = userinfo.get("email")
    if not sub or not email:
        raise InvalidAssertionError("google OAuth: missing email or sub claim in userinfo")

    return GoogleIdentity(sub=str(sub), email=email, name=userinfo.get("name"))
