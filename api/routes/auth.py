"""
api/routes/auth.py -- Local login and registration endpoints.

Routes:
  POST /api/auth             -- email/password login; returns a bearer token
  POST /api/auth/users       -- register a local account; returns a bearer token
  GET  /api/auth/providers   -- list enabled OAuth providers

All three are public. Failures are raised as AuthError subclasses by
AuthService and turned into error envelopes by the handler in api/main.py:
  AuthenticationDenied -> 401 INVALID_CREDENTIALS (same body for unknown
                          email, wrong password, Google-only and disabled)
  DuplicateEmailError  -> 409 DUPLICATE_EMAIL

Security:
  Login and registration are rate-limited per IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries a token.

Handlers are plain `def` so bcrypt runs in the threadpool, not on the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import AuthResponse, LoginRequest, OAuthProviderInfo, RegisterRequest
from auth.oauth import get_enabled_providers
from auth.service import AuthService
from core.config import get_settings

router = APIRouter()


def _token_response(status_code: int, body: AuthResponse) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth", response_model=AuthResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and return a bearer token."""
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password)
    return _token_response(200, AuthResponse.build(result.token, result.identity))


@router.post("/auth/users", response_model=AuthResponse, status_code=201)
@limiter.limit(login_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account and return a bearer token for it."""
    service: AuthService = request.app.state.auth_service
    result = service.register(body.email, body.password, body.name)
    return _token_response(201, AuthResponse.build(result.token, result.identity))


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when Google is not configured."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(get_settings())]
