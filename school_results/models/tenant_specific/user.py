# school_results/models/tenant_specific/user.py
"""User accounts: admins, teachers and students of one school."""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from ..base import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class User(Base):
    __tablename__ = "users"

    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)

    # Stored as plain strings, not a database enum
    role = Column(String(20), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(254), nullable=False)
    admission_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('school_id', 'email', name='uq_user_school_email'),
        CheckConstraint("role IN ('admin', 'teacher', 'student')", name='ck_user_role'),
        Index('idx_user_school_role', 'school_id', 'role'),
    )
