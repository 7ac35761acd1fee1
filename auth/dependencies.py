"""
auth/dependencies.py -- FastAPI Depends() helpers for authorization.

The authentication decision itself is made once per request by the gate
middleware in api/main.py, which stores an AuthContext on request.state.auth.
These helpers only read that decision:

  get_auth_context()     -- the soft variant; anonymous callers get ANONYMOUS.
  get_current_identity() -- raises HTTP 401 if the request is anonymous.

Routes under /api/auth, /oauth2 and /login/oauth2 are public. Every other
router is mounted with Depends(get_current_identity).

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.gate import ANONYMOUS, AuthContext
from auth.models import Identity


def get_auth_context(request: Request) -> AuthContext:
    """Return the gate's decision for this request. Never raises."""
    return getattr(request.state, "auth", ANONYMOUS)


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    context = get_auth_context(request)
    if context.identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context.identity
