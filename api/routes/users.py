"""
api/routes/users.py -- Endpoints for the authenticated caller.

Routes:
  GET /api/users/me  -- identity behind the bearer token (requires auth)

The whole router is mounted with Depends(get_current_identity), so every
route here answers 401 to anonymous callers and handlers can read the
identity from the gate's AuthContext.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MeResponse
from auth.dependencies import get_auth_context, get_current_identity
from auth.gate import AuthContext, extract_bearer
from auth.tokens import TokenCodec

router = APIRouter(dependencies=[Depends(get_current_identity)])


@router.get("/users/me", response_model=MeResponse)
async def me(request: Request, context: AuthContext = Depends(get_auth_context)) -> MeResponse:
    """Return the current identity and when its token expires (epoch seconds)."""
    codec: TokenCodec = request.app.state.token_codec
    claims = codec.claims_of(extract_bearer(request.headers.get("Authorization")) or "")
    return MeResponse.build(context.identity, token_expires_at=claims.get("exp") if claims else None)
