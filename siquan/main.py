"""
siquan/main.py — FastAPI application entry point
Includes: lifespan management, CORS, rate limiting, security headers,
          error rendering, startup validation, ping and health endpoints.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from siquan.clients import database, gmail_client
from siquan.config import get_settings
from siquan.core import logging as app_logging
from siquan.core.errors import ServiceError
from siquan.core.logging import setup_logging
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.routers import admin, auth, community, library, newsletter, pages, posts, tracking, triggers
from siquan.utils.timezone import isoformat_utc, utc_now

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan: startup → yield → shutdown.
    Startup: initialise logging, ensure the schema, validate env vars.
    """
    setup_logging(settings.log_level)
    logger.info(f"{settings.site_name} backend starting up ({settings.environment})...")

    database.init_db()
    _validate_env()

    logger.info("Startup complete.")
    yield
    logger.info(f"Shutting down {settings.site_name} backend.")


def _validate_env() -> None:
    """
    Warn about missing secrets. The app still starts; mail endpoints and
    cron triggers fail until the settings are provided.
    """
    required = [
        ("gmail_user", "GMAIL_USER"),
        ("gmail_client_id", "GMAIL_CLIENT_ID"),
        ("gmail_client_secret", "GMAIL_CLIENT_SECRET"),
        ("gmail_refresh_token", "GMAIL_REFRESH_TOKEN"),
        ("cron_secret", "CRON_SECRET"),
    ]
    missing = [env_name for attr, env_name in required if not getattr(settings, attr, None)]

    if missing:
        logger.critical(f"Missing env vars: {', '.join(missing)}")
        logger.warning("App will start but affected features will be unavailable until credentials are set.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=f"{settings.site_name} API",
    description=(
        "Blog and community backend: posts, comments, discussion groups, "
        "book library and the email newsletter."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)

# ── Rate limiting — slowapi ───────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda req, exc: JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Slow down."},
    ),
)
app.add_middleware(SlowAPIMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [settings.site_url],
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── Error rendering — every error body is {"error": message} ──────────────────
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid {field}: {first.get('msg', 'bad request')}"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    app_logging.log_error("app", request.url.path, exc, {"method": request.method})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(newsletter.router, prefix="/api", tags=["newsletter"])
app.include_router(tracking.router, prefix="/api/track", tags=["tracking"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(posts.router, prefix="/api/posts", tags=["posts"])
app.include_router(community.router, prefix="/api/groups", tags=["community"])
app.include_router(library.router, prefix="/api/books", tags=["library"])
app.include_router(triggers.router, prefix="/trigger", tags=["triggers"])
app.include_router(pages.router, tags=["pages"])


# ── Ping & health ─────────────────────────────────────────────────────────────
@app.get("/api/ping", tags=["health"])
async def ping():
    """Keep-alive for the hosting platform. Touches nothing external."""
    return {"status": "ok", "version": VERSION}


@app.get("/api/health", tags=["health"])
@limiter.limit(RATE_LIMITS["health"])
def health_check(request: Request) -> JSONResponse:
    """
    Database connectivity and mail configuration.
    Returns HTTP 200 if healthy, 503 if degraded.
    """
    checks: dict[str, Any] = {
        "database_connected": database.check_connection(),
        "gmail_configured": gmail_client.is_configured(),
        "cron_secret_set": bool(settings.cron_secret),
    }
    healthy = checks["database_connected"]
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "checks": checks,
            "timestamp": isoformat_utc(utc_now()),
        },
    )


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs" if not settings.is_production else "/api/ping")
