"""Anime API Gateway — FastAPI application entry point.

Invariants:
    - Pipeline order is fixed at startup: CORS → rate limit → dispatch, normalizer outermost
    - Bootstrap routes (/, /ping, /test, /doc, /ui) are FastAPI routes behind the same pipeline
    - /api/v1 handlers are registered on the gateway Router, never on FastAPI directly
    - FastAPI's generated docs are disabled; /doc serves the static artifact

Design Decisions:
    - Lifespan over @app.on_event: configures logging and runs the expired-window sweep
    - create_app() factory so tests build isolated apps with explicit Settings
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gateway.api.error_handlers import register_error_handlers
from gateway.api.middleware import PipelineMiddleware
from gateway.api.routes import docs, health
from gateway.api.routes.v1 import RouteRegistrar, register_v1_routes
from gateway.config import Settings, get_settings
from gateway.core.cors import CorsPolicy
from gateway.core.pipeline import (
    CorsStage, DispatchStage, ErrorNormalizer, Pipeline, RateLimitStage,
)
from gateway.core.rate_limiter import (
    FixedWindowRateLimiter, RateLimitConfig, get_key_generator,
)
from gateway.core.router import Router
from gateway.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


def build_limiter(settings: Settings) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(RateLimitConfig(
        window_ms=settings.rate_limit_window_ms,
        limit=settings.rate_limit_limit,
        max_keys=settings.rate_limit_max_keys,
    ))


def build_pipeline(
    settings: Settings, router: Router, limiter: FixedWindowRateLimiter,
) -> Pipeline:
    """Compose the request pipeline. Stage order is the request order."""
    return Pipeline(
        stages=[
            CorsStage(CorsPolicy(settings.cors_origins)),
            RateLimitStage(limiter, get_key_generator(settings.rate_limit_key_strategy)),
            DispatchStage(router, timeout_ms=settings.handler_timeout_ms),
        ],
        normalizer=ErrorNormalizer(),
    )


async def sweep_expired_windows(limiter: FixedWindowRateLimiter) -> None:
    """Drop elapsed rate-limit windows once per window period."""
    interval = limiter.config.window_ms / 1000
    while True:
        await asyncio.sleep(interval)
        removed = limiter.sweep_expired()
        if removed:
            logger.debug(f"Swept {removed} expired rate-limit window(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_format)
    sweeper = asyncio.create_task(sweep_expired_windows(app.state.limiter))
    logger.info(
        f"Anime API gateway started (stages: {', '.join(app.state.pipeline.stage_names)})",
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        logger.info("Anime API gateway shutting down")


def create_app(
    settings: Settings | None = None, *registrars: RouteRegistrar,
) -> FastAPI:
    """Build the gateway: FastAPI host, router, limiter and pipeline."""
    settings = settings or get_settings()
    router = register_v1_routes(Router(), *registrars)
    limiter = build_limiter(settings)
    pipeline = build_pipeline(settings, router, limiter)

    app = FastAPI(
        title="Anime API", version="1.0.0", lifespan=lifespan,
        docs_url=None, redoc_url=None, openapi_url=None,
    )
    app.state.settings = settings
    app.state.router = router
    app.state.limiter = limiter
    app.state.pipeline = pipeline

    app.add_middleware(
        PipelineMiddleware, pipeline=pipeline, router=router,
        max_body_bytes=settings.max_body_bytes,
    )
    register_error_handlers(app)

    # Routes — explicit registration
    app.include_router(health.router)
    app.include_router(docs.router)
    return app


app = create_app()
