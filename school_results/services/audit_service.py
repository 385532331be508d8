# school_results/services/audit_service.py
"""Write-only history of changes to student results."""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError, StorageError
from ..models.tenant_specific.student_result import ResultHistory, StudentResult
from ..models.tenant_specific.user import User

logger = logging.getLogger(__name__)

AUDITED_FIELDS = ("assessment1", "assessment2", "ca_test", "exam_score", "total_score", "grade")


def snapshot(result: StudentResult) -> Dict[str, object]:
    """The audited values of a result as they are right now."""
    return {field: getattr(result, field) for field in AUDITED_FIELDS}


class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        school_id: UUID,
        student_result_id: UUID,
        previous_values: Dict[str, object],
        new_values: Dict[str, object],
        changed_by: UUID,
        change_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[ResultHistory]:
        """Append one history entry inside the caller's transaction.

        The insert runs in a savepoint so it commits or rolls back together
        with the change it describes. A failed insert is logged and
        swallowed; it never fails the score update.
        """
        entry = ResultHistory(
            school_id=school_id,
            student_result_id=student_result_id,
            changed_by=changed_by,
            change_reason=change_reason,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            # Set here rather than by the server so entries in one transaction stay ordered
            created_at=datetime.now(timezone.utc),
            **{f"previous_{field}": previous_values.get(field) for field in AUDITED_FIELDS},
            **{f"new_{field}": new_values.get(field) for field in AUDITED_FIELDS},
        )
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
        except Exception as e:
            logger.error(f"Failed to create history entry for result {student_result_id}: {e}")
            return None
        return entry

    async def ensure_tracked(self, student_result_id: UUID, school_id: UUID):
        """Raise ``NotFoundError`` unless the result, or history of it, exists in this school.

        Deleted results keep their history; foreign or unknown ids are not found.
        """
        exists = await self.db.execute(
            select(StudentResult.id).where(
                StudentResult.id == student_result_id,
                StudentResult.school_id == school_id,
            )
        )
        if exists.scalar_one_or_none() is not None:
            return
        orphaned = await self.db.execute(
            select(ResultHistory.id).where(
                ResultHistory.student_result_id == student_result_id,
                ResultHistory.school_id == school_id,
            ).limit(1)
        )
        if orphaned.scalar_one_or_none() is None:
            raise NotFoundError("Student result")

    async def get_history(self, student_result_id: UUID, school_id: UUID) -> List[Dict[str, object]]:
        """All entries for a result, newest first, with the acting user's name."""
        await self.ensure_tracked(student_result_id, school_id)

        stmt = (
            select(ResultHistory, User.first_name, User.last_name)
            .outerjoin(User, ResultHistory.changed_by == User.id)
            .where(
                ResultHistory.student_result_id == student_result_id,
                ResultHistory.school_id == school_id,
            )
            .order_by(ResultHistory.created_at.desc(), ResultHistory.id.desc())
        )
        try:
            rows = (await self.db.execute(stmt)).all()
        except Exception as e:
            logger.error(f"Failed to fetch result history: {e}")
            raise StorageError("Failed to fetch result history")

        history = []
        for entry, first_name, last_name in rows:
            item = {column.key: getattr(entry, column.key) for column in ResultHistory.__table__.columns}
            item["changed_by_name"] = f"{first_name} {last_name}" if first_name is not None else None
            history.append(item)
        return history
