"""
api/routes/oauth.py -- Google OAuth2/OIDC sign-in.

Routes:
  GET /oauth2/authorization/google   -- redirect to Google's consent screen
  GET /login/oauth2/code/google      -- callback; upserts the identity and
                                        answers with a first-party token

Both routes are public and return 404 when Google is not configured.

The callback writes {"message", "token", "email", "name"} directly in the
response body. Any failure (state mismatch, code exchange error, unverified
email, missing claims, account conflict) becomes one generic 401
"oauth_failed" -- the cause is logged, never returned.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.models import ErrorDetail, ErrorResponse, OAuthLoginResponse
from auth.errors import AuthError
from auth.oauth import get_google_identity
from auth.service import AuthService

logger = logging.getLogger("loginbackend.api.oauth")

router = APIRouter()


def _google_client(request: Request):
    client = request.app.state.oauth.create_client("google")
    if client is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "provider_disabled", "message": "Google sign-in is not configured."},
        )
    return client


@router.get("/oauth2/authorization/google")
async def google_authorize(request: Request):
    """Start the authorization code flow. authlib stores the state in the session."""
    client = _google_client(request)
    redirect_uri = request.url_for("google_callback")
    return await client.authorize_redirect(request, str(redirect_uri))


@router.get("/login/oauth2/code/google", name="google_callback")
async def google_callback(request: Request) -> JSONResponse:
    """Exchange the code, upsert the identity, and return a first-party token."""
    client = _google_client(request)
    service: AuthService = request.app.state.auth_service
    try:
        token = await client.authorize_access_token(request)
        google = get_google_identity(token)
        result = await run_in_threadpool(service.complete_oauth, google.sub, google.email, google.name)
    except (OAuthError, AuthError) as exc:
        logger.warning("Google sign-in failed: %s", exc)
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="oauth_failed", message="Authentication with Google failed.")
            ).model_dump(exclude_none=True),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    logger.info("Google sign-in completed for identity id=%s", result.identity.id)
    resp = JSONResponse(
        content=OAuthLoginResponse(
            token=result.token,
            email=result.identity.email,
            name=result.identity.display_name,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
