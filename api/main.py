"""
api/main.py -- FastAPI application entry point.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests           -- method, path, status, latency
  2. authenticate_request   -- the authentication gate; stores an AuthContext
                               on request.state.auth, never rejects a request
  3. SessionMiddleware      -- OAuth state storage for authlib
  4. SlowAPIMiddleware      -- per-route rate limits from api.limiter
  5. CORSMiddleware         -- CORS headers for allowed browser origins

Authorization happens after the gate, per router: public routers are
mounted bare, protected routers carry Depends(get_current_identity).

Lifespan builds the store, codec, resolver and OAuth registry once from the
frozen Settings and tears the store down on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.oauth import router as oauth_router
from api.routes.users import router as users_router
from auth.credentials import CredentialVerifier
from auth.errors import AuthenticationDenied, AuthError
from auth.gate import ANONYMOUS, authenticate, extract_bearer
from auth.identity import IdentityResolver
from auth.oauth import build_oauth
from auth.service import AuthService
from auth.store import IdentityStore
from auth.tokens import TokenCodec
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("loginbackend.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup and release the store on shutdown.

    The codec is constructed first: a misconfigured signing key raises
    KeyMisconfiguredError here and the server never starts accepting requests.
    """
    settings = get_settings()
    logger.info("Login backend starting up")
    app.state.token_codec = TokenCodec.from_settings(settings)
    app.state.identity_store = IdentityStore(settings.database_url)
    resolver = IdentityResolver(app.state.identity_store, CredentialVerifier(rounds=settings.bcrypt_rounds))
    app.state.auth_service = AuthService(resolver, app.state.token_codec)
    app.state.oauth = build_oauth(settings)
    logger.info(
        "Auth initialized (issuer=%s, ttl=%dm, google=%s)",
        settings.jwt_issuer,
        settings.jwt_ttl_minutes,
        settings.google_enabled,
    )

    yield

    app.state.identity_store.close()
    logger.info("Login backend shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Login Backend API",
    description="Local email/password and Google sign-in issuing stateless bearer tokens.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() and @app.middleware() both wrap the current stack, so the
# last registration is the outermost layer.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allow_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# authlib keeps the OAuth state value in this session between the redirect
# to Google and the callback.
app.add_middleware(SessionMiddleware, secret_key=_settings.jwt_secret)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def authenticate_request(request: Request, call_next):
    """Run the authentication gate once per request.

    Never rejects: anonymous requests continue with ANONYMOUS and the route's
    dependencies decide whether that is acceptable.
    """
    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        request.state.auth = ANONYMOUS
    else:
        request.state.auth = await run_in_threadpool(
            authenticate,
            token,
            request.app.state.token_codec,
            request.app.state.identity_store.get_by_email,
        )
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(oauth_router, tags=["OAuth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map typed identity failures to their status and public message.

    The internal detail (including the denial reason) goes to the log only.
    """
    if isinstance(exc, AuthenticationDenied):
        logger.info("Login denied on %s: %s", request.url.path, exc.reason.value)
    else:
        logger.info("%s on %s: %s", exc.code, request.url.path, exc)
    response = _error(exc.status_code, exc.code, exc.public_message)
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation.

    Only field locations and messages are echoed; submitted values (passwords)
    are not.
    """
    fields = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
    return _error(422, "validation_error", "Request validation failed.", fields)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured error for HTTPException. A dict detail is used as the error body as-is."""
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability. Public."""
    db_ok = request.app.state.identity_store.ping()
    return HealthResponse(version=VERSION, components={"app": "ok", "database": "ok" if db_ok else "error"})
