"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..core.database import Database, get_database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/")
async def health_check(request: Request):
    """Basic health check"""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/db")
async def database_health(database: Database = Depends(get_database)):
    """Database health check"""
    if await database.health_check():
        return {"status": "healthy", "database": "connected"}

    logger.warning("Database health check reported unhealthy")
    return JSONResponse(
        status_code=503,
        content={"status": "unhealthy", "database": "unreachable"},
    )
