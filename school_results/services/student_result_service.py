# school_results/services/student_result_service.py
"""Result store: tenant-scoped CRUD for per-subject student results."""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .audit_service import AuditService, snapshot
from .base_service import BaseService
from .grading import (
    SCORE_FIELDS, derive_fields, remark_for_grade, validate_attendance, validate_components,
)
from ..core.exceptions import ConflictError, NotFoundError, ResultsServiceError, StorageError, ValidationError
from ..core.security_utils import sanitize_search_term
from ..models.tenant_specific.student_result import StudentResult
from ..models.tenant_specific.user import User, UserRole

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("student_id", "subject_name", "teacher_id", "class_name", "session", "term")
UPDATABLE_FIELDS = SCORE_FIELDS + ("remark", "teacher_comment", "days_present", "days_school_opened")
DERIVED_FIELDS = ("total_score", "grade", "position")
DEFAULT_LIMIT = 50
DUPLICATE_MESSAGE = (
    "A result already exists for this student, subject, class, session and term; "
    "update it instead"
)

Student = aliased(User, name="student")
Teacher = aliased(User, name="teacher")


class StudentResultService(BaseService[StudentResult]):
    def __init__(self, db: AsyncSession):
        super().__init__(StudentResult, db)
        self.audit = AuditService(db)

    # Reads

    def _select_with_users(self):
        return (
            select(
                StudentResult,
                Student.first_name,
                Student.last_name,
                Student.email,
                Student.admission_number,
                Teacher.first_name,
                Teacher.last_name,
            )
            .join(Student, StudentResult.student_id == Student.id)
            .outerjoin(Teacher, StudentResult.teacher_id == Teacher.id)
            # Positions and timestamps may have been written by another session
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _to_dict(result: StudentResult, row: Optional[tuple] = None) -> Dict[str, Any]:
        data = {column.key: getattr(result, column.key) for column in StudentResult.__mapper__.column_attrs}
        if row is not None:
            _, s_first, s_last, s_email, admission_number, t_first, t_last = row
            data["student_name"] = f"{s_first} {s_last}"
            data["student_email"] = s_email
            data["admission_number"] = admission_number
            data["teacher_name"] = f"{t_first} {t_last}" if t_first is not None else None
        return data

    async def get_record(self, result_id: UUID, school_id: UUID) -> StudentResult:
        """The ORM row, or ``NotFoundError`` when absent or in another school."""
        result = await self.get(result_id, school_id)
        if not result:
            raise NotFoundError("Student result")
        return result

    async def get_by_id(self, result_id: UUID, school_id: UUID) -> Dict[str, Any]:
        """Get single student result with student and teacher display fields"""
        stmt = self._select_with_users().where(
            StudentResult.id == result_id,
            StudentResult.school_id == school_id,
        )
        row = (await self.db.execute(stmt)).first()
        if not row:
            raise NotFoundError("Student result")
        return self._to_dict(row[0], row)

    async def list_results(
        self,
        school_id: UUID,
        teacher_id: Optional[UUID] = None,
        subject_name: Optional[str] = None,
        class_name: Optional[str] = None,
        session: Optional[str] = None,
        term: Optional[str] = None,
        student_id: Optional[UUID] = None,
        student_search: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Filtered results, best total first, ties by student last name."""
        if school_id is None:
            raise ValidationError("school_id is required", field="school_id")

        stmt = self._select_with_users().where(StudentResult.school_id == school_id)

        if teacher_id:
            stmt = stmt.where(StudentResult.teacher_id == teacher_id)
        if subject_name:
            stmt = stmt.where(StudentResult.subject_name == subject_name)
        if class_name:
            stmt = stmt.where(StudentResult.class_name == class_name)
        if session:
            stmt = stmt.where(StudentResult.session == session)
        if term:
            stmt = stmt.where(StudentResult.term == term)
        if student_id:
            stmt = stmt.where(StudentResult.student_id == student_id)

        if student_search:
            term_pattern = sanitize_search_term(student_search)
            if term_pattern:
                pattern = f"%{term_pattern}%"
                stmt = stmt.where(
                    or_(
                        Student.first_name.ilike(pattern, escape="\\"),
                        Student.last_name.ilike(pattern, escape="\\"),
                        Student.email.ilike(pattern, escape="\\"),
                    )
                )

        stmt = (
            stmt.order_by(
                StudentResult.total_score.desc(),
                Student.last_name.asc(),
                Student.first_name.asc(),
                StudentResult.id.asc(),
            )
            .limit(limit if limit and limit > 0 else DEFAULT_LIMIT)
            .offset(max(offset or 0, 0))
        )

        try:
            rows = (await self.db.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch student results: {e}")
            raise StorageError("Failed to fetch student results")
        return [self._to_dict(row[0], row) for row in rows]

    async def get_teacher_subjects(self, school_id: UUID, teacher_id: UUID) -> List[Dict[str, str]]:
        """Distinct (subject, class, session, term) a teacher has results for"""
        stmt = (
            select(
                StudentResult.subject_name,
                StudentResult.class_name,
                StudentResult.session,
                StudentResult.term,
            )
            .where(
                StudentResult.school_id == school_id,
                StudentResult.teacher_id == teacher_id,
            )
            .distinct()
            .order_by(
                StudentResult.subject_name,
                StudentResult.class_name,
                StudentResult.session,
                StudentResult.term,
            )
        )
        rows = (await self.db.execute(stmt)).all()
        return [
            {"subject_name": subject, "class_name": class_name, "session": session, "term": term}
            for subject, class_name, session, term in rows
        ]

    # Writes

    async def _require_member(self, user_id: UUID, school_id: UUID, roles: tuple, field: str):
        stmt = select(User.role).where(User.id == user_id, User.school_id == school_id)
        role = (await self.db.execute(stmt)).scalar_one_or_none()
        if role is None or role not in {r.value for r in roles}:
            label = " or ".join(r.value for r in roles)
            raise ValidationError(f"{field} does not refer to a {label} of this school", field=field)

    async def _exists(self, school_id: UUID, payload: Dict[str, Any]) -> bool:
        stmt = select(StudentResult.id).where(
            StudentResult.school_id == school_id,
            StudentResult.student_id == payload["student_id"],
            StudentResult.subject_name == payload["subject_name"],
            StudentResult.class_name == payload["class_name"],
            StudentResult.session == payload["session"],
            StudentResult.term == payload["term"],
        )
        return (await self.db.execute(stmt)).first() is not None

    async def create(self, school_id: UUID, payload: Dict[str, Any], created_by: UUID) -> Dict[str, Any]:
        """Create a new student result"""
        data = dict(payload)
        if "class" in data and "class_name" not in data:
            data["class_name"] = data.pop("class")

        for field in REQUIRED_FIELDS:
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{field} is required", field=field)
        for field in DERIVED_FIELDS:
            if data.get(field) is not None:
                raise ValidationError(f"{field} is derived and cannot be set", field=field)

        scores = {field: data.get(field) if data.get(field) is not None else 0 for field in SCORE_FIELDS}
        validate_components(scores)
        days_present = data.get("days_present") or 0
        days_school_opened = data.get("days_school_opened") or 0
        validate_attendance(days_present, days_school_opened)

        await self._require_member(data["student_id"], school_id, (UserRole.STUDENT,), "student_id")
        await self._require_member(
            data["teacher_id"], school_id, (UserRole.TEACHER, UserRole.ADMIN), "teacher_id"
        )

        if await self._exists(school_id, data):
            raise ConflictError(DUPLICATE_MESSAGE)

        derived = derive_fields(**scores)
        result = StudentResult(
            school_id=school_id,
            student_id=data["student_id"],
            teacher_id=data["teacher_id"],
            subject_name=data["subject_name"].strip(),
            class_name=data["class_name"].strip(),
            session=data["session"].strip(),
            term=data["term"].strip(),
            remark=data.get("remark") or remark_for_grade(derived["grade"]),
            teacher_comment=data.get("teacher_comment"),
            days_present=days_present,
            days_school_opened=days_school_opened,
            last_updated_by=created_by,
            **scores,
            **derived,
        )
        self.db.add(result)
        # A concurrent insert of the same tuple surfaces as an integrity error here
        await self.commit(conflict_message=DUPLICATE_MESSAGE)

        logger.info(
            f"Created result {result.id} ({result.subject_name}, {result.class_name}, "
            f"{result.session}, {result.term}) in school {school_id}"
        )
        return await self.get_by_id(result.id, school_id)

    async def _apply_update(
        self,
        result_id: UUID,
        patch: Dict[str, Any],
        school_id: UUID,
        updated_by: UUID,
        change_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> StudentResult:
        """Apply one partial update and its history entry without committing."""
        for field in DERIVED_FIELDS:
            if patch.get(field) is not None:
                raise ValidationError(f"{field} is derived and cannot be set", field=field)
        unknown = [k for k in patch if k not in UPDATABLE_FIELDS and k not in DERIVED_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown field: {unknown[0]}", field=unknown[0])

        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS and v is not None}
        validate_components({k: v for k, v in changes.items() if k in SCORE_FIELDS})

        result = await self.get(result_id, school_id, for_update=True)
        if not result:
            raise NotFoundError("Student result", str(result_id))

        validate_attendance(
            changes.get("days_present", result.days_present),
            changes.get("days_school_opened", result.days_school_opened),
        )

        previous = snapshot(result)
        for field, value in changes.items():
            setattr(result, field, value)

        derived = derive_fields(*(getattr(result, field) for field in SCORE_FIELDS))
        result.total_score = derived["total_score"]
        result.grade = derived["grade"]
        result.last_updated_by = updated_by
        await self.flush()

        await self.audit.record(
            school_id=school_id,
            student_result_id=result.id,
            previous_values=previous,
            new_values=snapshot(result),
            changed_by=updated_by,
            change_reason=change_reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return result

    async def update(
        self,
        result_id: UUID,
        patch: Dict[str, Any],
        school_id: UUID,
        updated_by: UUID,
        change_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update student result; fields missing from ``patch`` keep their value"""
        try:
            await self._apply_update(
                result_id, patch, school_id, updated_by,
                change_reason=change_reason, ip_address=ip_address, user_agent=user_agent,
            )
        except ResultsServiceError:
            await self.db.rollback()
            raise
        await self.commit()
        return await self.get_by_id(result_id, school_id)

    async def bulk_update(
        self,
        updates: List[Dict[str, Any]],
        school_id: UUID,
        updated_by: UUID,
        change_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Apply every update in one transaction; any failure rolls back all of them."""
        if not updates:
            raise ValidationError("Updates array is required and cannot be empty", field="updates")

        applied: List[UUID] = []
        try:
            for index, item in enumerate(updates):
                item = dict(item)
                result_id = item.pop("id", None)
                if result_id is None:
                    raise ValidationError(f"updates[{index}].id is required", field="id")
                reason = item.pop("change_reason", None) or change_reason
                await self._apply_update(
                    result_id, item, school_id, updated_by,
                    change_reason=reason, ip_address=ip_address, user_agent=user_agent,
                )
                applied.append(result_id)
        except ResultsServiceError as e:
            await self.db.rollback()
            logger.warning(
                f"Bulk update of {len(updates)} results rolled back at item {len(applied)}: {e.message}"
            )
            raise
        await self.commit()

        logger.info(f"Bulk updated {len(applied)} results in school {school_id}")
        return [await self.get_by_id(result_id, school_id) for result_id in dict.fromkeys(applied)]

    async def delete(self, result_id: UUID, school_id: UUID) -> Dict[str, Any]:
        """Hard delete; returns the values the row had"""
        deleted = await self.get_by_id(result_id, school_id)
        result = await self.get_record(result_id, school_id)
        await self.db.delete(result)
        await self.commit()
        logger.info(f"Deleted result {result_id} in school {school_id}")
        return deleted
