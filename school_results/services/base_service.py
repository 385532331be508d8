# school_results/services/base_service.py
"""Base service with common tenant-scoped operations."""
import logging
from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, StorageError

logger = logging.getLogger(__name__)

# Define generic type
T = TypeVar('T')


class BaseService(Generic[T]):
    """Every query is filtered by ``school_id``; there is no unscoped getter."""

    def __init__(self, model: Type[T], db: AsyncSession):
        self.model = model
        self.db = db

    async def get(self, id: Any, school_id: UUID, for_update: bool = False) -> Optional[T]:
        stmt = select(self.model).where(
            self.model.id == id,
            self.model.school_id == school_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def commit(self, conflict_message: str = "Record already exists"):
        """Commit the session, rolling back and translating any failure."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(f"Integrity error on commit: {e.orig}")
            raise ConflictError(conflict_message)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error on commit: {e}")
            raise StorageError("Failed to save changes")

    async def flush(self, conflict_message: str = "Record already exists"):
        """Flush pending changes without committing; failures abort the transaction."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(f"Integrity error on flush: {e.orig}")
            raise ConflictError(conflict_message)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error on flush: {e}")
            raise StorageError("Failed to save changes")
