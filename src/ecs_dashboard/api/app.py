"""FastAPI application for the ECS dashboard."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ecs_dashboard.api.dependencies import METRICS_LIMITER, SERVICES_LIMITER
from ecs_dashboard.api.routes import router as api_router
from ecs_dashboard.aws.base import EcsBackend
from ecs_dashboard.aws.boto import BotoEcsBackend
from ecs_dashboard.aws.errors import RemoteError
from ecs_dashboard.config import Settings, settings as default_settings
from ecs_dashboard.fanout import AggregationTimeoutError, EnrichmentGate, FanoutScheduler, RetryPolicy
from ecs_dashboard.governance import RateLimiter, RateLimitExceeded, ValidationError, Validator
from ecs_dashboard.security import AdminAccessDenied
from ecs_dashboard.scheduler import SchedulerService, register_sweep
from ecs_dashboard.services import DashboardService

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _error_body(message: str, **extra: Any) -> dict[str, Any]:
    return {
        "error": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


def build_limiters(config: Settings) -> dict[str, RateLimiter]:
    """Strict limiter for metrics queries, looser one for listings."""
    return {
        METRICS_LIMITER: RateLimiter(
            max_requests=config.metrics_rate_limit_requests,
            window_seconds=config.metrics_rate_limit_window_seconds,
            block_seconds=config.metrics_rate_limit_block_seconds,
            max_violations=config.metrics_rate_limit_max_violations,
            name=METRICS_LIMITER,
        ),
        SERVICES_LIMITER: RateLimiter(
            max_requests=config.services_rate_limit_requests,
            window_seconds=config.services_rate_limit_window_seconds,
            block_seconds=config.services_rate_limit_block_seconds,
            max_violations=config.services_rate_limit_max_violations,
            name=SERVICES_LIMITER,
        ),
    }


def build_dashboard(config: Settings, backend: EcsBackend | None = None) -> DashboardService:
    """Wire the backend, the shared enrichment gate and the fan-out scheduler."""
    if backend is None:
        backend = BotoEcsBackend(
            region=config.aws_region,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
            session_token=config.aws_session_token,
        )

    scheduler = FanoutScheduler(
        gate=EnrichmentGate(
            max_concurrent=config.enrichment_max_concurrency,
            min_interval=config.enrichment_min_interval,
        ),
        retry_policy=RetryPolicy(
            max_attempts=config.remote_max_attempts,
            base_delay=config.remote_retry_base_delay,
            max_delay=config.remote_retry_max_delay,
            jitter=config.remote_retry_jitter,
        ),
        batch_size=config.ecs_describe_batch_size,
        batch_delay=config.fanout_batch_delay,
        stagger_delay=config.fanout_stagger_delay,
    )

    return DashboardService(
        backend=backend,
        scheduler=scheduler,
        validator=Validator(config.allowed_clusters),
        page_size=config.ecs_list_page_size,
        aggregate_timeout=config.aggregate_timeout_seconds,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure as a structured JSON body."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
        return JSONResponse(
            status_code=400,
            content=_error_body(f"Invalid request: {'; '.join(problems)}"),
        )

    @app.exception_handler(AdminAccessDenied)
    async def admin_denied_handler(request: Request, exc: AdminAccessDenied) -> JSONResponse:
        return JSONResponse(status_code=403, content=_error_body(exc.message))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        decision = exc.decision
        body = decision.to_dict()
        return JSONResponse(
            status_code=429,
            content=_error_body(
                exc.message,
                limiter=exc.limiter,
                reset_at=body["reset_at"],
                blocked_until=body["blocked_until"],
            ),
            headers={"Retry-After": str(decision.retry_after())},
        )

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
        logger.error(f"AWS error on {request.url.path}: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, code=exc.code),
        )

    @app.exception_handler(AggregationTimeoutError)
    async def timeout_handler(request: Request, exc: AggregationTimeoutError) -> JSONResponse:
        return JSONResponse(status_code=504, content=_error_body(exc.message))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def create_app(
    config: Settings | None = None,
    backend: EcsBackend | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings to use (module settings if None)
        backend: ECS backend (boto3 if None)
    """
    config = config or default_settings
    limiters = build_limiters(config)
    dashboard = build_dashboard(config, backend)
    maintenance = SchedulerService()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        # Startup
        logger.info("Starting ECS dashboard API...")
        register_sweep(
            maintenance,
            limiters.values(),
            interval_minutes=config.rate_limit_sweep_interval,
        )
        maintenance.start()
        yield
        # Shutdown
        logger.info("Shutting down ECS dashboard API...")
        maintenance.shutdown()

    app = FastAPI(
        title="ECS Dashboard API",
        description="Governed access to ECS cluster status, deployments and metrics",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.limiters = limiters
    app.state.dashboard = dashboard
    app.state.maintenance = maintenance

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API key authentication middleware (optional)
    if config.api_key:
        from ecs_dashboard.security import ApiKeyMiddleware
        app.add_middleware(ApiKeyMiddleware, api_key=config.api_key)
        logger.info("API key authentication enabled")

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    register_error_handlers(app)
    app.include_router(api_router, prefix="/v1")

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": VERSION}

    @app.get("/")
    async def root():
        return {
            "name": "ECS Dashboard API",
            "version": VERSION,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app
