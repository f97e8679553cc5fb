"""
FastAPI gateway: /health, /api/config (current, per-domain, reload, feature), /api/config/updates (WebSocket).
"""

import asyncio
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request

from liveconf import __version__
from liveconf.channels import FanoutChannel, RedisChannel, WebSocketHub
from liveconf.config.loader import get_settings
from liveconf.config.logging import configure_logging
from liveconf.engine import ConfigEngine, build_engine
from liveconf.routers import config as config_router
from liveconf.routers import health as health_router

logger = structlog.get_logger(__name__)


def _default_engine(hub: WebSocketHub) -> ConfigEngine:
    """Engine from $CONFIG_DIR/liveconf.yaml; notifications go to WebSocket clients (and Redis when configured)."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    channels = [hub]
    if settings.redis_url:
        channels.append(RedisChannel(settings.redis_url, timeout=settings.redis_timeout_seconds))
    return build_engine(settings, channel=FanoutChannel(channels))


def create_app(engine: ConfigEngine | None = None, hub: WebSocketHub | None = None) -> FastAPI:
    """Build the API. Without an engine, one is created from settings at startup."""
    hub = hub or WebSocketHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: load every config document (fatal on failure) and start watching. Shutdown: stop."""
        logger.info("startup_start")
        eng = app.state.engine or _default_engine(hub)
        app.state.engine = eng
        hub.bind_loop(asyncio.get_running_loop())
        await asyncio.to_thread(eng.start)
        logger.info("application_ready", watch=eng.watch_strategy)
        yield
        logger.info("shutdown_start")
        await asyncio.to_thread(eng.stop)
        hub.bind_loop(None)
        channel = eng.broadcaster.channel
        if channel is not None and hasattr(channel, "close"):
            channel.close()

    app = FastAPI(title="liveconf", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.hub = hub

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log each request (method, path, status, duration) while running."""
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response

    app.include_router(health_router.router)
    app.include_router(config_router.router)
    return app


app = create_app()
