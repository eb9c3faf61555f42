"""
FastAPI application factory.

Usage:
    from autorest_engine import AutoRestEngine, EngineConfig
    from autorest_engine.api import create_app

    app = create_app(AutoRestEngine(EngineConfig()))
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.engine import AutoRestEngine
from ..observability import HealthStatus, get_metrics_collector
from .errors import register_exception_handlers
from .middleware import RequestIdMiddleware
from .routes import create_router

logger = logging.getLogger(__name__)


def create_app(engine: Optional[AutoRestEngine] = None, title: str = "Auto-REST Engine") -> FastAPI:
    """
    Build the FastAPI application.

    The engine is initialized when the application starts and shut down
    when it stops. ``/health`` and ``/metrics`` are served outside the API
    prefix.
    """
    engine = engine or AutoRestEngine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await engine.initialize()
        logger.info(f"Auto-REST API mounted at {engine.config.api_prefix}")
        try:
            yield
        finally:
            await engine.shutdown()

    app = FastAPI(title=title, version=__version__, lifespan=lifespan)
    app.state.engine = engine

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)
    app.include_router(create_router(), prefix=engine.config.api_prefix.rstrip("/"))

    @app.get("/health")
    async def health():
        report = await engine.health()
        healthy = report.get("status") in (HealthStatus.HEALTHY.value, HealthStatus.DEGRADED.value)
        return JSONResponse(status_code=200 if healthy else 503, content=report)

    @app.get("/metrics")
    async def metrics():
        return get_metrics_collector().get_summary()

    return app
