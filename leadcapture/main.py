# leadcapture/main.py
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from redis.asyncio import Redis
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from leadcapture import __version__
from leadcapture.core.config import Settings
from leadcapture.core.exceptions import BaseAPIException, StorageError
from leadcapture.core.logging import configure_structlog, get_structlog_logger
from leadcapture.db.session import create_database_engine, create_schema, create_session_factory
from leadcapture.middleware.logging import LoggingMiddleware
from leadcapture.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from leadcapture.routes import health, leads
from leadcapture.services.lead_store import LeadStore
from leadcapture.services.rate_limiter import RateLimitFailurePolicy, RateLimiter
from leadcapture.services.redis import close_redis_client, create_redis_client
from leadcapture.services.retrieval import RetrievalHandler
from leadcapture.services.spam import SpamFilter
from leadcapture.services.submission import SubmissionHandler

logger = get_structlog_logger(__name__)


def build_services(app: FastAPI, settings: Settings, session_factory, redis_client: Redis) -> None:
    """Construct the request handlers once and attach them to ``app.state``."""
    store = LeadStore(
        session_factory,
        timeout_seconds=settings.store_timeout_seconds,
        max_page_size=settings.max_page_size,
        max_custom_fields=settings.max_custom_fields,
    )
    rate_limiter = RateLimiter(
        redis_client,
        on_store_error=(
            RateLimitFailurePolicy.ALLOW
            if settings.rate_limit_fail_open
            else RateLimitFailurePolicy.DENY
        ),
        timeout_seconds=settings.rate_limit_timeout_seconds,
    )
    spam_filter = SpamFilter(
        name_tokens=settings.name_tokens(),
        disposable_domains=settings.disposable_domains(),
        custom_field_threshold=settings.spam_custom_field_threshold,
        min_signals=settings.spam_min_signals,
    )

    app.state.lead_store = store
    app.state.rate_limiter = rate_limiter
    app.state.submission_handler = SubmissionHandler(
        store=store,
        rate_limiter=rate_limiter,
        spam_filter=spam_filter,
        max_requests_per_hour=settings.max_requests_per_hour,
        max_custom_fields=settings.max_custom_fields,
        reject_duplicate_emails=settings.reject_duplicate_emails,
    )
    app.state.retrieval_handler = RetrievalHandler(
        store=store,
        api_key=settings.api_key,
        default_page_size=settings.default_page_size,
        export_field_prefix=settings.export_field_prefix,
    )


def _init_sentry(settings: Settings) -> None:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[
            AsyncioIntegration(),
            FastApiIntegration(),
            StarletteIntegration(),
        ],
        traces_sample_rate=1.0 if settings.is_development else 0.1,
        send_default_pii=False,
    )
    logger.info("sentry.initialized")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Render client-facing errors as the structured envelope."""
        if exc.status_code >= 500:
            logger.error(
                "api.server_error",
                code=exc.code,
                error_type=type(exc).__name__,
                details=exc.details,
                path=request.url.path,
                method=request.method,
            )
        else:
            logger.warning(
                "api.exception",
                status_code=exc.status_code,
                code=exc.code,
                field=exc.field,
                path=request.url.path,
                method=request.method,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_envelope(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", []) if part not in ("body", "query", "header", "path")]
        logger.warning("validation.error", path=request.url.path, method=request.method, errors=len(errors))

        error = {"code": "VALIDATION_ERROR", "message": first.get("msg", "Request validation failed")}
        if loc:
            error["field"] = loc[0]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": error},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        error_id = f"err_{int(time.time())}_{hash(str(exc)) % 10000:04d}"
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "unhandled.exception",
            error_id=error_id,
            request_id=request_id,
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            method=request.method,
            exc_info=exc,
        )
        headers = {"X-Error-ID": error_id}
        # Runs outside RequestIdMiddleware, so the header is set here
        if request_id:
            headers[REQUEST_ID_HEADER] = request_id
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=StorageError().to_envelope(),
            headers=headers,
        )


def create_app(settings: Settings, redis_client: Optional[Redis] = None) -> FastAPI:
    """Build the application.

    ``redis_client`` replaces the client built from ``settings.redis_url``;
    the caller then owns its lifecycle.
    """
    configure_structlog(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("application.starting", environment=settings.environment)

        engine = create_database_engine(settings)
        if settings.auto_create_schema:
            await create_schema(engine)

        client = redis_client if redis_client is not None else create_redis_client(settings)
        app.state.redis = client
        build_services(app, settings, create_session_factory(engine), client)

        if settings.sentry_dsn:
            _init_sentry(settings)

        logger.info("application.started")
        yield

        logger.info("application.shutting_down")
        if redis_client is None:
            await close_redis_client(client)
        await engine.dispose()
        logger.info("database.connection_closed")
        logger.info("application.shutdown_complete")

    app = FastAPI(
        title="Lead Capture API",
        version=__version__,
        description="Lead form intake with validation, spam screening and paginated export",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins(),
        allow_credentials="*" not in settings.origins(),
        allow_methods=settings.methods(),
        allow_headers=settings.headers(),
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(leads.router, prefix=settings.api_prefix)

    if not settings.is_testing:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    logger.info("application.configured", environment=settings.environment)
    return app


def run() -> None:
    import uvicorn

    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
