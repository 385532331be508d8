# school_results/models/shared/school.py
"""School (tenant) model definition."""
import re

from sqlalchemy import Boolean, Column, Index, String, UniqueConstraint
from sqlalchemy.orm import validates

from ..base import Base


class School(Base):
    __tablename__ = "schools"

    school_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(254), nullable=True)
    address = Column(String(500), nullable=True)
    state = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    @validates('email')
    def validate_email(self, key, value):
        if value is None:
            return value
        if not re.match(r'^[^@]+@[^@]+\.[^@]+$', value):
            raise ValueError("Invalid email address format")
        return value

    __table_args__ = (
        UniqueConstraint('school_code', name='uq_school_code'),
        Index('idx_school_active_name', 'is_active', 'name'),
    )
