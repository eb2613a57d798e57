from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, Response

from flami.app.core.config import Settings, settings
from flami.app.core.file_cache import FileCache
from flami.app.core.logging import get_logger, setup_logging
from flami.app.middleware.rate_limit import RateLimitMiddleware, SlidingWindowRateLimiter
from flami.app.middleware.request_id import RequestIdMiddleware
from flami.app.services.dispatcher import Dispatcher
from flami.app.services.renderer import Renderer

SERVED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use instead of the global instance

    Returns:
        Configured FastAPI application instance
    """
    app_settings = app_settings or settings

    setup_logging(app_settings)
    logger = get_logger(__name__)

    rate_limiter = SlidingWindowRateLimiter(
        max_requests=app_settings.rate_limit_max_requests,
        window_seconds=app_settings.rate_limit_window_seconds,
        ban_seconds=app_settings.rate_limit_ban_seconds,
        sweep_interval=app_settings.rate_limit_sweep_interval_seconds,
    )
    file_cache = FileCache()
    renderer = Renderer(app_settings, file_cache)
    dispatcher = Dispatcher(renderer, debug=app_settings.debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Starts the rate limiter's eviction sweep on startup and stops it on
        shutdown.
        """
        if not app_settings.resolved_root.is_dir():
            logger.warning(f"Site root {app_settings.resolved_root} is not a directory")

        await rate_limiter.start()
        logger.info(
            "Application startup complete",
            extra={
                "site_root": str(app_settings.resolved_root),
                "rate_limit_max_requests": app_settings.rate_limit_max_requests,
                "rate_limit_ban_seconds": app_settings.rate_limit_ban_seconds,
                "debug_mode": app_settings.debug,
            }
        )

        yield

        await rate_limiter.stop()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="flami",
        description="Origin server for static assets, component scripts, pages and JSON API pages",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.settings = app_settings
    app.state.rate_limiter = rate_limiter
    app.state.file_cache = file_cache
    app.state.renderer = renderer
    app.state.dispatcher = dispatcher

    # Add middleware (order matters: last added = first executed)
    # Request ID middleware (innermost - closest to the dispatcher)
    app.add_middleware(RequestIdMiddleware)

    # Rate limit middleware (outermost - rejects banned clients before any work)
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)

    @app.api_route("/{full_path:path}", methods=SERVED_METHODS, include_in_schema=False)
    async def serve(request: Request) -> Response:
        """Catch-all route: every path goes through the dispatcher."""
        return await dispatcher.handle(request)

    return app


# Create the application instance
app = create_app()
