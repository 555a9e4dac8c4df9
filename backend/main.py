"""Zekka Workspace API - FastAPI application."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.middleware.rate_limit import limiter
from api.routes import api_router
from core.exceptions import ServiceError
from infrastructure.config import get_settings
from infrastructure.database import close_db, init_db
from infrastructure.logging_config import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 5 * 1024 * 1024
_UNLOGGED_PREFIX = "/api/v1/health"


def _init_sentry() -> None:
    """Error tracking, when SENTRY_DSN is set. Runs at import so startup failures are reported."""
    if not settings.sentry_dsn:
        return
    if not settings.sentry_dsn.startswith(("https://", "http://")):
        logger.warning("SENTRY_DSN is not an http(s) URL; error tracking disabled")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="url"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )


_init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(
        json_output=settings.is_production and not settings.debug,
        level="DEBUG" if settings.debug else "INFO",
    )
    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.environment)

    settings.validate_production_secrets()

    # Outside development the schema belongs to zekka-migrate and alembic
    if settings.is_development:
        logger.info("Creating missing tables for development")
        await init_db()

    yield

    await close_db()
    logger.info("Stopped %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Projects, conversations and sources for the Zekka workspace",
    version=settings.app_version,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# SlowAPIMiddleware and the per-route decorators both look up app.state.limiter
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("Service error on %s: %s", request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    if settings.is_production:
        # Type and a truncated message only; full tracebacks go to Sentry
        logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, str(exc)[:200])
    else:
        logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.middleware("http")
async def reject_oversized_bodies(request: Request, call_next):
    declared = request.headers.get("content-length", "")
    if request.method in ("POST", "PUT", "PATCH") and declared.isdigit():
        if int(declared) > MAX_BODY_BYTES:
            return JSONResponse(status_code=413, content={"detail": "Request body too large (max 5MB)"})
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def _request_id(incoming: str | None) -> str:
    """A caller's X-Request-ID is kept only when it is a UUID."""
    if incoming:
        try:
            return str(uuid.UUID(incoming))
        except ValueError:
            pass
    return str(uuid.uuid4())


@app.middleware("http")
async def request_context(request: Request, call_next):
    request.state.request_id = _request_id(request.headers.get("X-Request-ID"))
    started = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    response.headers["X-Request-ID"] = request.state.request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"
    if not request.url.path.startswith(_UNLOGGED_PREFIX):
        logger.info(
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": request.state.request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Content-Disposition"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.is_development else "disabled",
        "health": "/api/v1/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        workers=1 if settings.is_development else settings.workers,
    )
