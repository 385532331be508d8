# school_results/models/__init__.py
"""Import all models here so Alembic and create_all see every table."""
from .base import Base

# Shared models
from .shared.school import School

# Tenant-specific models
from .tenant_specific.user import User, UserRole
from .tenant_specific.student_result import StudentResult, ClassStatistics, ResultHistory

__all__ = [
    "Base",
    "School",
    "User",
    "UserRole",
    "StudentResult",
    "ClassStatistics",
    "ResultHistory",
]
