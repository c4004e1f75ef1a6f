"""
api/main.py -- FastAPI application entry point for CarListings.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every collaborator from Settings (user store, car store,
token service, media store) and attaches it to app.state; route handlers and
auth dependencies only ever read app.state. Tests replace the lifespan and
call configure_state() with in-memory stores and a fixed secret.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.cars import router as cars_router
from auth.store import UserStore
from auth.tokens import TokenService
from cars.media import MediaStore, MediaUploadError, build_media_store
from cars.store import CarStore
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("carlistings.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def configure_state(
    app: FastAPI,
    settings: Settings,
    user_store: UserStore,
    car_store: CarStore,
    media: MediaStore,
) -> None:
    """Attach every request-time collaborator to app.state."""
    app.state.user_store = user_store
    app.state.car_store = car_store
    app.state.media = media
    app.state.token_service = TokenService(settings.secret_key, settings.token_expire_seconds)
    app.state.secure_cookies = settings.secure_cookies
    app.state.max_image_bytes = settings.max_image_bytes


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create stores on startup and dispose of their engines on shutdown."""
    logger.info("CarListings API starting up")
    settings = get_settings()
    configure_state(
        app,
        settings,
        user_store=UserStore(settings.database_url),
        car_store=CarStore(settings.database_url),
        media=build_media_store(settings),
    )
    logger.info("Stores initialized (token expiry %ds)", settings.token_expire_seconds)

    yield

    app.state.user_store.close()
    app.state.car_store.close()
    logger.info("CarListings API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CarListings API",
    description="Car listings with user accounts, bearer-token auth and image uploads.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url=None,
    openapi_url="/api/openapi.json",
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # the auth cookie must travel with frontend requests
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

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

app.include_router(auth_router, prefix="/api/v1", tags=["Users"])
app.include_router(cars_router, prefix="/api/v1", tags=["Cars"])

# Locally stored images are served straight from the media directory.
if _settings.media_backend == "local":
    app.mount(
        _settings.media_url_prefix,
        StaticFiles(directory=_settings.media_dir, check_dir=False),
        name="media",
    )


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# Server-side failures are logged with the caller identity when known; the
# response body never carries driver messages or tracebacks.
# ---------------------------------------------------------------------------


def _caller(request: Request) -> str:
    user = getattr(request.state, "user", None)
    return user.username if user is not None else "anonymous"


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 listing each failing field as "field: message"."""
    problems = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        problems.append(f"{'.'.join(loc) or 'request'}: {err.get('msg', 'invalid value')}")
    return _error(422, "validation_error", "Request validation failed.", "; ".join(problems))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail. When detail is
    already a structured dict, use it directly as the error field rather than
    stringifying it.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for name, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[name] = value
    return response


@app.exception_handler(MediaUploadError)
async def media_error_handler(request: Request, exc: MediaUploadError) -> JSONResponse:
    """Image storage failed -- nothing was persisted for this request."""
    logger.error(
        "Image upload failed on %s %s (user=%s): %s",
        request.method,
        request.url.path,
        _caller(request),
        exc,
        exc_info=exc,
    )
    return _error(500, "upload_failed", "Image upload failed. Please try again.")


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failure -- log the driver error, return a generic message."""
    logger.error(
        "Storage error on %s %s (user=%s)",
        request.method,
        request.url.path,
        _caller(request),
        exc_info=exc,
    )
    return _error(500, "storage_error", "A storage error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors."""
    logger.error(
        "Unhandled exception on %s %s (user=%s)",
        request.method,
        request.url.path,
        _caller(request),
        exc_info=exc,
    )
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    db_ok = request.app.state.user_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
