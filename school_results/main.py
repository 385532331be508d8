# school_results/main.py
"""Application factory.

Run with ``uvicorn school_results.main:create_app --factory``.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .core.cache import CacheManager
from .core.config import Settings, get_settings
from .core.database import Database
from .core.exceptions import add_exception_handlers
from .core.logging import setup_logging
from .routers import class_statistics, health, student_results

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    app.state.db = Database.from_settings(settings)
    app.state.cache = CacheManager(settings.redis_url)
    await app.state.cache.connect()
    logger.info("Cache enabled" if app.state.cache.enabled else "Cache disabled; no REDIS_URL configured")

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await app.state.cache.close()
    await app.state.db.dispose()
    logger.info("Shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="School Results API",
        description="Multi-tenant student results, class statistics and change history",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    add_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(student_results.router)
    app.include_router(class_statistics.router)

    return app
