# school_results/routers/student_results.py
"""Student result endpoints.

Every handler resolves the caller's tenant context from the bearer token,
checks it against the authorization gate, then calls the result store.
Statistics for affected cohorts are recomputed after the mutation has
committed; a failure there is logged and does not fail the request.
"""
import logging
from typing import Iterable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.authorization import Action, ResourceRef, enforce
from ..core.database import get_db
from ..core.exceptions import ResultsServiceError
from ..core.security import TenantContext, get_tenant_context
from ..schemas.result_schemas import (
    BulkUpdateRequest,
    BulkUpdateResponse,
    DeleteResultResponse,
    ResultHistoryResponse,
    StudentResultCreate,
    StudentResultResponse,
    StudentResultUpdate,
    TeacherSubject,
)
from ..services.audit_service import AuditService
from ..services.statistics_service import Cohort, StatisticsService
from ..services.student_result_service import DEFAULT_LIMIT, StudentResultService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/student-results", tags=["Student Results"])

# A class view returns the whole cohort unless the caller pages
CLASS_LIMIT = 1000


def client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


async def refresh_statistics(request: Request, db: AsyncSession, cohorts: Iterable[Cohort]):
    """Recompute statistics and positions for each cohort, one transaction per step."""
    settings = request.app.state.settings
    if not settings.auto_recalculate_statistics:
        return

    service = StatisticsService(db, request.app.state.cache, settings.statistics_cache_ttl)
    for cohort in dict.fromkeys(cohorts):
        try:
            await service.recalculate_all(cohort)
        except ResultsServiceError as e:
            logger.warning(f"Statistics refresh failed for {cohort}: {e.message}")


def result_ref(result: dict) -> ResourceRef:
    return ResourceRef(
        school_id=result["school_id"],
        student_id=result["student_id"],
        teacher_id=result["teacher_id"],
    )


@router.post("/", response_model=StudentResultResponse, status_code=201)
async def create_student_result(
    payload: StudentResultCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Create a new student result"""
    enforce(
        context,
        Action.CREATE,
        ResourceRef(context.school_id, student_id=payload.student_id, teacher_id=payload.teacher_id),
    )
    service = StudentResultService(db)
    result = await service.create(context.school_id, payload.model_dump(), created_by=context.user_id)

    await refresh_statistics(request, db, [Cohort.of(result)])
    return await service.get_by_id(result["id"], context.school_id)


@router.get("/teacher", response_model=List[StudentResultResponse])
async def get_my_results(
    subject_name: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None, alias="class"),
    session: Optional[str] = Query(None),
    term: Optional[str] = Query(None),
    student_search: Optional[str] = Query(None, description="Student name or email contains"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Results recorded by the calling teacher"""
    enforce(context, Action.LIST_TEACHER, ResourceRef(context.school_id, teacher_id=context.user_id))
    return await StudentResultService(db).list_results(
        context.school_id,
        teacher_id=context.user_id,
        subject_name=subject_name,
        class_name=class_name,
        session=session,
        term=term,
        student_search=student_search,
        limit=limit,
        offset=offset,
    )


@router.get("/teacher-subjects", response_model=List[TeacherSubject])
async def get_teacher_subjects(
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Distinct subject/class/session/term combinations the caller has results for"""
    enforce(context, Action.LIST_TEACHER, ResourceRef(context.school_id, teacher_id=context.user_id))
    return await StudentResultService(db).get_teacher_subjects(context.school_id, context.user_id)


@router.get("/teacher/{teacher_id}", response_model=List[StudentResultResponse])
async def get_teacher_results(
    teacher_id: UUID,
    subject_name: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None, alias="class"),
    session: Optional[str] = Query(None),
    term: Optional[str] = Query(None),
    student_search: Optional[str] = Query(None, description="Student name or email contains"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Results recorded by one teacher (admins, or the teacher themself)"""
    enforce(context, Action.LIST_TEACHER, ResourceRef(context.school_id, teacher_id=teacher_id))
    return await StudentResultService(db).list_results(
        context.school_id,
        teacher_id=teacher_id,
        subject_name=subject_name,
        class_name=class_name,
        session=session,
        term=term,
        student_search=student_search,
        limit=limit,
        offset=offset,
    )


@router.get("/class", response_model=List[StudentResultResponse])
async def get_class_results(
    subject_name: str = Query(..., min_length=1),
    class_name: str = Query(..., alias="class", min_length=1),
    session: str = Query(..., min_length=1),
    term: str = Query(..., min_length=1),
    search: Optional[str] = Query(None, description="Student name or email contains"),
    limit: int = Query(CLASS_LIMIT, ge=1, le=CLASS_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """All results in a cohort, highest total first"""
    enforce(context, Action.LIST_CLASS, ResourceRef(context.school_id))
    return await StudentResultService(db).list_results(
        context.school_id,
        subject_name=subject_name,
        class_name=class_name,
        session=session,
        term=term,
        student_search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/student/{student_id}", response_model=List[StudentResultResponse])
async def get_student_results(
    student_id: UUID,
    session: Optional[str] = Query(None),
    term: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    enforce(context, Action.LIST_STUDENT, ResourceRef(context.school_id, student_id=student_id))
    return await StudentResultService(db).list_results(
        context.school_id,
        student_id=student_id,
        session=session,
        term=term,
        limit=limit,
        offset=offset,
    )


@router.put("/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update_results(
    payload: BulkUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Update several results at once; either every update applies or none does"""
    service = StudentResultService(db)

    # Ownership is checked for the whole batch before anything is written
    for item in payload.updates:
        record = await service.get_record(item.id, context.school_id)
        enforce(
            context,
            Action.UPDATE,
            ResourceRef(record.school_id, student_id=record.student_id, teacher_id=record.teacher_id),
        )

    ip_address, user_agent = client_info(request)
    results = await service.bulk_update(
        [item.model_dump(exclude_unset=True) for item in payload.updates],
        context.school_id,
        updated_by=context.user_id,
        change_reason=payload.change_reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    await refresh_statistics(request, db, [Cohort.of(result) for result in results])
    results = [await service.get_by_id(result["id"], context.school_id) for result in results]
    return {
        "message": f"Successfully updated {len(results)} results",
        "updated_count": len(results),
        "results": results,
    }


@router.get("/history/{result_id}", response_model=List[ResultHistoryResponse])
async def get_result_history(
    result_id: UUID,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Change history of a result, newest first"""
    audit = AuditService(db)
    await audit.ensure_tracked(result_id, context.school_id)
    enforce(context, Action.VIEW_HISTORY, ResourceRef(context.school_id))
    return await audit.get_history(result_id, context.school_id)


@router.get("/{result_id}", response_model=StudentResultResponse)
async def get_student_result(
    result_id: UUID,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    result = await StudentResultService(db).get_by_id(result_id, context.school_id)
    enforce(context, Action.READ, result_ref(result))
    return result


@router.put("/{result_id}", response_model=StudentResultResponse)
async def update_student_result(
    result_id: UUID,
    payload: StudentResultUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Partially update a result; total score and grade are recomputed"""
    service = StudentResultService(db)
    existing = await service.get_by_id(result_id, context.school_id)
    enforce(context, Action.UPDATE, result_ref(existing))

    ip_address, user_agent = client_info(request)
    result = await service.update(
        result_id,
        payload.model_dump(exclude_unset=True, exclude={"change_reason"}),
        context.school_id,
        updated_by=context.user_id,
        change_reason=payload.change_reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    await refresh_statistics(request, db, [Cohort.of(result)])
    return await service.get_by_id(result_id, context.school_id)


@router.delete("/{result_id}", response_model=DeleteResultResponse)
async def delete_student_result(
    result_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    """Delete a result (admin only)"""
    service = StudentResultService(db)
    existing = await service.get_by_id(result_id, context.school_id)
    enforce(context, Action.DELETE, result_ref(existing))
    result = await service.delete(result_id, context.school_id)

    await refresh_statistics(request, db, [Cohort.of(result)])
    return {"message": "Student result deleted successfully", "result": result}
