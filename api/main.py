"""
api/main.py -- FastAPI application entry point for the asset tracker.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- access log line per request, added last
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for the dashboard origins
  4. SlowAPIMiddleware     -- applies default limits; per-route limits come
                              from the @limiter.limit decorators in api/routes/

Starlette wraps each add_middleware() around the stack built so far, so the
last one added is the outermost.

Lifespan builds the stores, the notifier and the AuthService once, starts
the unverified-account sweep, and tears everything down symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.assets import router as assets_router
from api.routes.auth import router as auth_router
from api.routes.dashboard import router as dashboard_router
from assets.store import AssetStore
from auth.errors import (
    AlreadyVerifiedError,
    AuthError,
    DeliveryFailedError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    InvalidOrExpiredOtpError,
    InvalidTokenError,
    NotFoundError,
    NotVerifiedError,
    UnauthorizedError,
    ValidationError,
)
from auth.notifier import build_notifier
from auth.service import AuthService
from auth.store import AccountStore
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("assettracker.api")

_settings = get_settings()

# AuthError class -> HTTP status. Most specific class first; lookup walks the MRO.
_AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    ValidationError: 400,
    DuplicateIdentityError: 400,
    InvalidCredentialsError: 400,
    InvalidOrExpiredOtpError: 400,
    AlreadyVerifiedError: 400,
    UnauthorizedError: 401,
    InvalidTokenError: 403,
    NotVerifiedError: 403,
    NotFoundError: 404,
    DeliveryFailedError: 500,
}


def _status_for(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _AUTH_ERROR_STATUS:
            return _AUTH_ERROR_STATUS[cls]
    return 400


# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired unverified registrations every interval_seconds.

    asyncio.sleep yields to the event loop between runs; the blocking DELETE
    runs in a worker thread. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(app.state.auth_service.purge_unverified)
        except Exception:
            logger.exception("Unverified account sweep failed; retrying next interval")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- they create their tables.
      2. Notifier and AuthService -- the service needs the account store.
      3. Sweep task last -- it calls into the service.
    """
    logger.info("Asset tracker API starting up")
    app.state.account_store = AccountStore(_settings.database_url)
    app.state.asset_store = AssetStore(_settings.database_url)
    logger.info("Stores initialized")
    app.state.notifier = build_notifier(_settings)
    app.state.auth_service = AuthService(app.state.account_store, app.state.notifier, _settings)
    logger.info(
        "Auth initialized (login_otp_required=%s, otp_ttl=%ds)",
        _settings.login_otp_required,
        _settings.otp_ttl_seconds,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    close_notifier = getattr(app.state.notifier, "close", None)
    if close_notifier is not None:
        close_notifier()
    app.state.asset_store.close()
    app.state.account_store.close()
    logger.info("Asset tracker API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Asset Tracker API",
    description="Personal asset portfolio tracking with OTP-verified accounts.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack -- the last one added is outermost, so register innermost
# first: SlowAPI, then CORS, then TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, tags=["Auth"])
app.include_router(assets_router, tags=["Assets"])
app.include_router(dashboard_router, tags=["Dashboard"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render the auth taxonomy. Only the stable code and message leave the process."""
    response = JSONResponse(
        status_code=_status_for(exc),
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    if isinstance(exc, UnauthorizedError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when a body, path or query parameter fails validation.

    Input values are stripped from the detail so passwords never echo back.
    """
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")} for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(errors),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Registered on the Starlette base class so router-level 404 and 405
    responses share the envelope too.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoints
#
# Defined directly in main.py (not in a router) so they are always reachable.
# No rate limit -- load balancers and monitors must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    db_ok = request.app.state.account_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )


@app.get("/ping", tags=["Health"])
def ping() -> dict:
    """Cheap reachability check used by the login page before submitting forms."""
    return {"message": "pong"}
