# school_results/models/tenant_specific/student_result.py
"""Per-subject termly results and the records derived from them."""
from sqlalchemy import (
    CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.dialects.postgresql import UUID

from ..base import Base


class StudentResult(Base):
    __tablename__ = "student_results"

    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Cohort key
    subject_name = Column(String(100), nullable=False)
    class_name = Column("class", String(50), nullable=False)
    session = Column(String(20), nullable=False)
    term = Column(String(20), nullable=False)

    # Component scores
    assessment1 = Column(Float, nullable=False, default=0)
    assessment2 = Column(Float, nullable=False, default=0)
    ca_test = Column(Float, nullable=False, default=0)
    exam_score = Column(Float, nullable=False, default=0)

    # Derived from the components on every write
    total_score = Column(Float, nullable=False, default=0)
    grade = Column(String(2), nullable=False)

    # Written by the statistics engine only
    position = Column(Integer, nullable=True)

    remark = Column(String(100), nullable=True)
    teacher_comment = Column(Text, nullable=True)
    days_present = Column(Integer, nullable=False, default=0)
    days_school_opened = Column(Integer, nullable=False, default=0)
    last_updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'school_id', 'student_id', 'subject_name', 'class', 'session', 'term',
            name='uq_student_result_cohort'
        ),
        CheckConstraint('assessment1 >= 0 AND assessment1 <= 15', name='ck_assessment1_range'),
        CheckConstraint('assessment2 >= 0 AND assessment2 <= 15', name='ck_assessment2_range'),
        CheckConstraint('ca_test >= 0 AND ca_test <= 10', name='ck_ca_test_range'),
        CheckConstraint('exam_score >= 0 AND exam_score <= 60', name='ck_exam_score_range'),
        CheckConstraint('total_score >= 0 AND total_score <= 100', name='ck_total_score_range'),
        Index('idx_result_cohort', 'school_id', 'subject_name', 'class', 'session', 'term'),
        Index('idx_result_teacher', 'school_id', 'teacher_id'),
    )


class ClassStatistics(Base):
    __tablename__ = "class_statistics"

    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_name = Column(String(100), nullable=False)
    class_name = Column("class", String(50), nullable=False)
    session = Column(String(20), nullable=False)
    term = Column(String(20), nullable=False)

    total_students = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=True)
    highest_score = Column(Float, nullable=True)
    lowest_score = Column(Float, nullable=True)
    pass_count = Column(Integer, nullable=False, default=0)

    # Grade distribution
    a1_count = Column(Integer, nullable=False, default=0)
    b2_count = Column(Integer, nullable=False, default=0)
    b3_count = Column(Integer, nullable=False, default=0)
    c4_count = Column(Integer, nullable=False, default=0)
    c5_count = Column(Integer, nullable=False, default=0)
    c6_count = Column(Integer, nullable=False, default=0)
    d7_count = Column(Integer, nullable=False, default=0)
    e8_count = Column(Integer, nullable=False, default=0)
    f9_count = Column(Integer, nullable=False, default=0)

    calculated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('school_id', 'subject_name', 'class', 'session', 'term', name='uq_class_statistics_cohort'),
    )


class ResultHistory(Base):
    """Append-only audit ledger; rows are never updated or deleted."""
    __tablename__ = "result_history"

    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    # No foreign key: history outlives a deleted result
    student_result_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    previous_assessment1 = Column(Float)
    previous_assessment2 = Column(Float)
    previous_ca_test = Column(Float)
    previous_exam_score = Column(Float)
    previous_total_score = Column(Float)
    previous_grade = Column(String(2))

    new_assessment1 = Column(Float)
    new_assessment2 = Column(Float)
    new_ca_test = Column(Float)
    new_exam_score = Column(Float)
    new_total_score = Column(Float)
    new_grade = Column(String(2))

    changed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    change_reason = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    __table_args__ = (
        Index('idx_history_result_created', 'student_result_id', 'created_at'),
    )
