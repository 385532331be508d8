# school_results/services/statistics_service.py
"""Statistics engine: class aggregates and positions per cohort.

A cohort is every result sharing (school, subject, class, session, term).
Statistics and positions are derived data. They are recomputed after a
result changes, each in its own transaction, so readers may briefly see a
new score next to statistics computed from the previous cohort.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .base_service import BaseService
from .grading import GRADES, PASS_MARK, competition_rank
from ..core.cache import CacheManager
from ..core.exceptions import ConflictError, NotFoundError, StorageError
from ..models.tenant_specific.student_result import ClassStatistics, StudentResult

logger = logging.getLogger(__name__)

AGGREGATE_FIELDS = (
    "total_students", "average_score", "highest_score", "lowest_score", "pass_count",
) + tuple(f"{grade.lower()}_count" for grade in GRADES)


class Cohort(NamedTuple):
    school_id: UUID
    subject_name: str
    class_name: str
    session: str
    term: str

    @classmethod
    def of(cls, result: Dict[str, Any]) -> "Cohort":
        return cls(
            result["school_id"], result["subject_name"], result["class_name"],
            result["session"], result["term"],
        )

    def where(self, model) -> tuple:
        return (
            model.school_id == self.school_id,
            model.subject_name == self.subject_name,
            model.class_name == self.class_name,
            model.session == self.session,
            model.term == self.term,
        )


class StatisticsService(BaseService[ClassStatistics]):
    def __init__(self, db: AsyncSession, cache: Optional[CacheManager] = None, cache_ttl: int = 300):
        super().__init__(ClassStatistics, db)
        self.cache = cache
        self.cache_ttl = cache_ttl

    def _cache_key(self, cohort: Cohort) -> str:
        return self.cache.make_key("class_statistics", *cohort)

    async def _invalidate(self, cohort: Cohort):
        if self.cache:
            await self.cache.delete(self._cache_key(cohort))

    @staticmethod
    def _to_dict(stats: ClassStatistics) -> Dict[str, Any]:
        return {column.key: getattr(stats, column.key) for column in ClassStatistics.__mapper__.column_attrs}

    async def _aggregate(self, cohort: Cohort) -> Dict[str, Any]:
        total = StudentResult.total_score
        columns = [
            func.count(StudentResult.id).label("total_students"),
            func.avg(total).label("average_score"),
            func.max(total).label("highest_score"),
            func.min(total).label("lowest_score"),
            func.sum(case((total >= PASS_MARK, 1), else_=0)).label("pass_count"),
        ]
        columns += [
            func.sum(case((StudentResult.grade == grade, 1), else_=0)).label(f"{grade.lower()}_count")
            for grade in GRADES
        ]
        row = (await self.db.execute(select(*columns).where(*cohort.where(StudentResult)))).one()

        values = dict(row._mapping)
        for field in AGGREGATE_FIELDS:
            if field.endswith("_count") or field == "total_students":
                values[field] = int(values[field] or 0)
        if values["average_score"] is not None:
            values["average_score"] = round(float(values["average_score"]), 2)
        return values

    async def _upsert(self, cohort: Cohort, values: Dict[str, Any]) -> ClassStatistics:
        stmt = (
            select(ClassStatistics)
            .where(*cohort.where(ClassStatistics))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        stats = (await self.db.execute(stmt)).scalar_one_or_none()

        if stats is None:
            stats = ClassStatistics(
                school_id=cohort.school_id,
                subject_name=cohort.subject_name,
                class_name=cohort.class_name,
                session=cohort.session,
                term=cohort.term,
            )
            self.db.add(stats)
        elif all(getattr(stats, field) == values[field] for field in AGGREGATE_FIELDS):
            # Nothing changed; keep the row and its calculated_at as they are
            return stats

        for field in AGGREGATE_FIELDS:
            setattr(stats, field, values[field])
        stats.calculated_at = datetime.now(timezone.utc)
        return stats

    async def recalculate(self, cohort: Cohort) -> Optional[Dict[str, Any]]:
        """Recompute and store the cohort's statistics row.

        Idempotent: repeated calls over unchanged results leave the stored
        row untouched. An empty cohort removes its statistics row.
        """
        try:
            values = await self._aggregate(cohort)
            if values["total_students"] == 0:
                await self.db.execute(delete(ClassStatistics).where(*cohort.where(ClassStatistics)))
                await self.commit()
                await self._invalidate(cohort)
                logger.info(f"Cleared statistics for empty cohort {cohort}")
                return None

            try:
                stats = await self._upsert(cohort, values)
                await self.commit(conflict_message="Class statistics were written concurrently")
            except ConflictError:
                # Another recompute inserted the row first; overwrite it
                stats = await self._upsert(cohort, values)
                await self.commit()
            # Timestamps are generated by the database
            await self.db.refresh(stats)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to recalculate class statistics for {cohort}: {e}")
            raise StorageError("Failed to recalculate class statistics")

        await self._invalidate(cohort)
        logger.info(
            f"Recalculated statistics for {cohort}: {values['total_students']} students, "
            f"average {values['average_score']}"
        )
        return self._to_dict(stats)

    async def update_positions(self, cohort: Cohort) -> int:
        """Rank the cohort by total score (competition ranking) and store each position."""
        try:
            stmt = (
                select(StudentResult.id, StudentResult.total_score, StudentResult.position)
                .where(*cohort.where(StudentResult))
                .order_by(StudentResult.total_score.desc(), StudentResult.id)
                .with_for_update()
            )
            rows = (await self.db.execute(stmt)).all()
            positions = competition_rank([row.total_score for row in rows])

            changed = 0
            for row, position in zip(rows, positions):
                if row.position == position:
                    continue
                await self.db.execute(
                    update(StudentResult)
                    .where(StudentResult.id == row.id)
                    # A rank change is not an edit of the result
                    .values(position=position, updated_at=StudentResult.updated_at)
                    .execution_options(synchronize_session=False)
                )
                changed += 1
            await self.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update class positions for {cohort}: {e}")
            raise StorageError("Failed to update class positions")

        logger.info(f"Ranked {len(rows)} results for {cohort} ({changed} positions changed)")
        return len(rows)

    async def recalculate_all(self, cohort: Cohort) -> Tuple[Optional[Dict[str, Any]], int]:
        """Statistics then positions, each committed on its own."""
        stats = await self.recalculate(cohort)
        ranked = await self.update_positions(cohort)
        return stats, ranked

    async def get(self, cohort: Cohort) -> Dict[str, Any]:
        """Stored statistics for a cohort; ``NotFoundError`` until first computed"""
        if self.cache:
            cached = await self.cache.get(self._cache_key(cohort))
            if cached:
                return cached

        stmt = select(ClassStatistics).where(*cohort.where(ClassStatistics)).execution_options(populate_existing=True)
        stats = (await self.db.execute(stmt)).scalar_one_or_none()
        if not stats:
            raise NotFoundError("Class statistics")

        data = self._to_dict(stats)
        if self.cache:
            await self.cache.set(self._cache_key(cohort), data, expire=self.cache_ttl)
        return data

    async def list_cohorts(self, school_id: UUID) -> List[Cohort]:
        stmt = (
            select(
                StudentResult.subject_name,
                StudentResult.class_name,
                StudentResult.session,
                StudentResult.term,
            )
            .where(StudentResult.school_id == school_id)
            .distinct()
            .order_by(StudentResult.subject_name, StudentResult.class_name)
        )
        rows = (await self.db.execute(stmt)).all()
        return [Cohort(school_id, *row) for row in rows]
