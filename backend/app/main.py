"""FormGate Backend: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog runs before any module that calls structlog.get_logger,
# because structlog freezes the processor chain on the first log call.
from app.core.logging import configure_structlog
from app.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from app.api.routes import api_router
from app.core.auth import build_security
from app.core.config import Settings, get_settings
from app.core.exceptions import FormGateError
from app.db import init_db, close_db, init_redis, close_redis
from app.db.base import get_session_factory
from app.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)
from app.services.forwarding import BacklogForwarder
from app.services.magic_link import LoggingMagicLinkSender
from app.services.users import UserService

logger = structlog.get_logger(__name__)


def configure_app_state(app: FastAPI, settings: Settings, redis: Redis | None = None) -> None:
    """Build the shared security components and services onto ``app.state``.

    Requires init_db() to have run. Raises ConfigurationError on missing secrets
    outside debug mode.
    """
    factory = get_session_factory()
    security = build_security(settings, user_exists=UserService(factory).exists, redis=redis)

    app.state.security = security
    app.state.redis = redis
    app.state.magic_link_sender = LoggingMagicLinkSender()
    app.state.forwarder = BacklogForwarder(
        factory,
        security.secret_box,
        security.rate_limiter,
        timeout=settings.backlog_timeout_seconds,
        tz_name=settings.display_timezone,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database (and Redis when it backs rate limiting), then build app state."""
    # Set by SIGTERM; /api/health answers 503 while draining
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="draining")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, environment=settings.environment)

    await init_db()
    logger.info("db_initialized")

    redis = None
    if settings.rate_limit_backend == "redis":
        redis = await init_redis()
        logger.info("redis_initialized")

    configure_app_state(app, settings, redis)
    logger.info("security_initialized", rate_limit_backend=settings.rate_limit_backend)

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _error_response(
    request: Request,
    event: str,
    status_code: int,
    detail,
    headers: dict | None = None,
    **log_fields,
) -> JSONResponse:
    """Log ``event`` under a fresh debug_id and return ``{"detail", "debug_id"}``.

    The client sees only the detail and the id; stack traces and exception
    messages stay in the server log.
    """
    debug_id = str(uuid.uuid4())
    log = logger.error if status_code >= 500 else logger.warning
    log(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        detail=detail,
        **log_fields,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "debug_id": debug_id},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException -> its status and detail; headers such as Retry-After pass through."""
    return _error_response(
        request,
        "http_exception",
        exc.status_code,
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def formgate_error_handler(request: Request, exc: FormGateError) -> JSONResponse:
    """Application errors that escaped their caller (misconfiguration, undecryptable secrets)."""
    return _error_response(
        request,
        "formgate_error",
        500,
        "Internal server error",
        error_type=type(exc).__name__,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else: generic 500, traceback in the log only."""
    return _error_response(
        request,
        "unhandled_exception",
        500,
        "Internal server error",
        error_type=type(exc).__name__,
        exc_info=True,
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(FormGateError)(formgate_error_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="FormGate - hosted forms with plan quotas and Backlog forwarding",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Credentials are allowed so the session cookie works cross-origin from the frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it wraps CORS and sees every request first
    setup_correlation_middleware(app)

    install_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=_early_settings.debug)
