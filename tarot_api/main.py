"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tarot_api.api.admin_routes import router as admin_router
from tarot_api.api.routes import router
from tarot_api.config import Settings, get_settings
from tarot_api.db.migration_runner import run_migrations
from tarot_api.db.session import Database
from tarot_api.exceptions import TarotError, UpstreamError
from tarot_api.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from tarot_api.observability.tracing import instrument_fastapi, instrument_sqlalchemy
from tarot_api.services.bootstrap import seed_demo_accounts
from tarot_api.services.generator import GeminiClient, TextGenerator
from tarot_api.services.metering import AccountLockRegistry

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    generator: TextGenerator | None = None,
) -> FastAPI:
    """
    Build the application.

    Settings are injected here once; handlers reach them through app.state.
    database and generator may be supplied (tests); otherwise they are built
    from settings at startup.
    """
    settings = settings or get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_starting",
            service=settings.api_title,
            version=settings.api_version,
            tracing_enabled=settings.tracing_enabled,
            metrics_enabled=settings.metrics_enabled,
            upstream_configured=settings.upstream_configured,
        )

        db = database or Database(settings)
        gen = generator or GeminiClient(settings)
        app.state.database = db
        app.state.generator = gen
        instrument_sqlalchemy(db.engine, settings)

        if settings.run_migrations_on_startup:
            await asyncio.to_thread(run_migrations, settings)

        if settings.auto_create_schema:
            await db.create_schema()
            logger.info("database_schema_created")

        if settings.seed_demo_accounts:
            async with db.session() as session:
                await seed_demo_accounts(session)

        yield

        logger.info("application_shutting_down")
        if isinstance(gen, GeminiClient):
            await gen.close()
        await db.dispose()
        logger.info("database_engine_closed")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.account_locks = AccountLockRegistry()

    metrics.set_service_info(settings)
    instrument_fastapi(app, settings)

    @app.exception_handler(TarotError)
    async def tarot_error_handler(request: Request, exc: TarotError) -> JSONResponse:
        """Convert gateway errors to the JSON error body."""
        detail = exc.message
        if isinstance(exc, UpstreamError):
            # Provider detail stays in the server log
            logger.error(
                "upstream_failure",
                path=request.url.path,
                error_code=exc.error_code,
                error=exc.message,
            )
            detail = {
                "upstream_timeout": "The reading took too long to generate",
                "upstream_not_configured": "Reading generation is not configured",
            }.get(exc.error_code, "Failed to generate reading")
        elif exc.status_code >= 500:
            logger.error("request_error", path=request.url.path, error_code=exc.error_code)

        metrics.record_error(type(exc).__name__, request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": detail, "error": exc.error_code},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log detailed validation errors and answer 400."""
        sanitized_errors = []
        for error in exc.errors():
            sanitized = {
                "type": error.get("type"),
                "loc": error.get("loc"),
                "msg": error.get("msg"),
            }
            if "ctx" in error:
                sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
            sanitized_errors.append(sanitized)

        logger.warning(
            "validation_error",
            path=request.url.path,
            method=request.method,
            errors=sanitized_errors,
        )
        first = sanitized_errors[0] if sanitized_errors else {}
        loc = ".".join(str(part) for part in first.get("loc") or () if part != "body")
        return JSONResponse(
            status_code=400,
            content={
                "detail": f"Invalid request: {loc} {first.get('msg', '')}".strip(),
                "error": "validation_error",
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_cors_origins,
        allow_credentials=settings.allowed_cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests with timing."""
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        endpoint = request.url.path
        method = request.method

        with log_context(request_id=request_id):
            logger.info("request_started", method=method, path=endpoint)
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

            try:
                response = await call_next(request)
                duration = time.perf_counter() - start_time
                metrics.record_http_request(endpoint, method, response.status_code, duration)

                logger.info(
                    "request_completed",
                    method=method,
                    path=endpoint,
                    status_code=response.status_code,
                    duration_seconds=duration,
                )
                response.headers["X-Request-ID"] = request_id
                return response
            except Exception as e:
                duration = time.perf_counter() - start_time
                metrics.record_http_request(endpoint, method, 500, duration)
                metrics.record_error(type(e).__name__, "http_request")

                logger.error(
                    "request_failed",
                    method=method,
                    path=endpoint,
                    error=str(e),
                    duration_seconds=duration,
                    exc_info=True,
                )
                raise
            finally:
                metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()

    app.include_router(router)
    app.include_router(admin_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format.
        """
        if not settings.metrics_enabled:
            return PlainTextResponse("metrics disabled\n", status_code=404)
        return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
