# school_results/routers/class_statistics.py
"""Class statistics endpoints."""
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.authorization import Action, ResourceRef, enforce
from ..core.database import get_db
from ..core.security import TenantContext, get_tenant_context
from ..schemas.result_schemas import ClassStatisticsResponse, CohortKey, RecalculateResponse
from ..services.statistics_service import Cohort, StatisticsService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/class-statistics", tags=["Class Statistics"])


def get_statistics_service(request: Request, db: AsyncSession = Depends(get_db)) -> StatisticsService:
    settings = request.app.state.settings
    return StatisticsService(db, request.app.state.cache, settings.statistics_cache_ttl)


@router.get("/", response_model=ClassStatisticsResponse)
async def get_class_statistics(
    subject_name: str = Query(..., min_length=1),
    class_name: str = Query(..., alias="class", min_length=1),
    session: str = Query(..., min_length=1),
    term: str = Query(..., min_length=1),
    service: StatisticsService = Depends(get_statistics_service),
    context: TenantContext = Depends(get_tenant_context),
):
    """Stored statistics for one cohort; 404 until they have been calculated"""
    enforce(context, Action.VIEW_STATISTICS, ResourceRef(context.school_id), "Class statistics")
    return await service.get(Cohort(context.school_id, subject_name, class_name, session, term))


@router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate_class_statistics(
    cohort_key: CohortKey,
    service: StatisticsService = Depends(get_statistics_service),
    context: TenantContext = Depends(get_tenant_context),
):
    """Recompute statistics and positions for a cohort now"""
    enforce(context, Action.RECALCULATE, ResourceRef(context.school_id), "Class statistics")
    cohort = Cohort(
        context.school_id,
        cohort_key.subject_name,
        cohort_key.class_name,
        cohort_key.session,
        cohort_key.term,
    )
    statistics, ranked = await service.recalculate_all(cohort)

    logger.info(f"User {context.user_id} recalculated statistics for {cohort}")
    if statistics is None:
        message = "No results found for this class; statistics cleared"
    else:
        message = "Class statistics recalculated successfully"
    return {"message": message, "statistics": statistics, "positions_updated": ranked}
