from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agent_usage import __version__
from agent_usage.core.handlers import add_exception_handlers
from agent_usage.core.middleware import add_request_id_middleware
from agent_usage.modules.health import api as health_api
from agent_usage.modules.usage import api as usage_api
from agent_usage.modules.usage.cache import UsageCache, build_usage_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cache: UsageCache = app.state.usage_cache
    logger.info("Usage cache ready types=%s ttl_ms=%s", sorted(cache.supported_types), cache.ttl_ms)
    try:
        yield
    finally:
        await cache.aclose()


def create_app(*, usage_cache: UsageCache | None = None) -> FastAPI:
    app = FastAPI(
        title="agent-usage-stats",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.usage_cache = usage_cache or build_usage_cache()

    add_request_id_middleware(app)
    add_exception_handlers(app)

    app.include_router(health_api.router)
    app.include_router(usage_api.router)
    app.include_router(usage_api.rpc_router)

    return app


app = create_app()
