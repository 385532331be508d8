"""create schools, users, student results, class statistics and result history

Revision ID: 0001_results_tables
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_results_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _school_fk():
    return sa.Column(
        'school_id', postgresql.UUID(as_uuid=True),
        sa.ForeignKey('schools.id', ondelete='CASCADE'), nullable=False,
    )


def _cohort_columns():
    return [
        sa.Column('subject_name', sa.String(100), nullable=False),
        sa.Column('class', sa.String(50), nullable=False),
        sa.Column('session', sa.String(20), nullable=False),
        sa.Column('term', sa.String(20), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'schools',
        *_base_columns(),
        sa.Column('school_code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(254), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('school_code', name='uq_school_code'),
    )
    op.create_index('ix_schools_created_at', 'schools', ['created_at'])
    op.create_index('ix_schools_name', 'schools', ['name'])
    op.create_index('idx_school_active_name', 'schools', ['is_active', 'name'])

    op.create_table(
        'users',
        *_base_columns(),
        _school_fk(),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(254), nullable=False),
        sa.Column('admission_number', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('school_id', 'email', name='uq_user_school_email'),
        sa.CheckConstraint("role IN ('admin', 'teacher', 'student')", name='ck_user_role'),
    )
    op.create_index('ix_users_created_at', 'users', ['created_at'])
    op.create_index('ix_users_school_id', 'users', ['school_id'])
    op.create_index('idx_user_school_role', 'users', ['school_id', 'role'])

    op.create_table(
        'student_results',
        *_base_columns(),
        _school_fk(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('teacher_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        *_cohort_columns(),
        sa.Column('assessment1', sa.Float(), nullable=False),
        sa.Column('assessment2', sa.Float(), nullable=False),
        sa.Column('ca_test', sa.Float(), nullable=False),
        sa.Column('exam_score', sa.Float(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('grade', sa.String(2), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('remark', sa.String(100), nullable=True),
        sa.Column('teacher_comment', sa.Text(), nullable=True),
        sa.Column('days_present', sa.Integer(), nullable=False),
        sa.Column('days_school_opened', sa.Integer(), nullable=False),
        sa.Column('last_updated_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.UniqueConstraint(
            'school_id', 'student_id', 'subject_name', 'class', 'session', 'term',
            name='uq_student_result_cohort'
        ),
        sa.CheckConstraint('assessment1 >= 0 AND assessment1 <= 15', name='ck_assessment1_range'),
        sa.CheckConstraint('assessment2 >= 0 AND assessment2 <= 15', name='ck_assessment2_range'),
        sa.CheckConstraint('ca_test >= 0 AND ca_test <= 10', name='ck_ca_test_range'),
        sa.CheckConstraint('exam_score >= 0 AND exam_score <= 60', name='ck_exam_score_range'),
        sa.CheckConstraint('total_score >= 0 AND total_score <= 100', name='ck_total_score_range'),
    )
    op.create_index('ix_student_results_created_at', 'student_results', ['created_at'])
    op.create_index('ix_student_results_school_id', 'student_results', ['school_id'])
    op.create_index('ix_student_results_student_id', 'student_results', ['student_id'])
    op.create_index('ix_student_results_teacher_id', 'student_results', ['teacher_id'])
    op.create_index(
        'idx_result_cohort', 'student_results', ['school_id', 'subject_name', 'class', 'session', 'term']
    )
    op.create_index('idx_result_teacher', 'student_results', ['school_id', 'teacher_id'])

    op.create_table(
        'class_statistics',
        *_base_columns(),
        _school_fk(),
        *_cohort_columns(),
        sa.Column('total_students', sa.Integer(), nullable=False),
        sa.Column('average_score', sa.Float(), nullable=True),
        sa.Column('highest_score', sa.Float(), nullable=True),
        sa.Column('lowest_score', sa.Float(), nullable=True),
        sa.Column('pass_count', sa.Integer(), nullable=False),
        *[
            sa.Column(f'{grade}_count', sa.Integer(), nullable=False)
            for grade in ('a1', 'b2', 'b3', 'c4', 'c5', 'c6', 'd7', 'e8', 'f9')
        ],
        sa.Column('calculated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            'school_id', 'subject_name', 'class', 'session', 'term', name='uq_class_statistics_cohort'
        ),
    )
    op.create_index('ix_class_statistics_created_at', 'class_statistics', ['created_at'])
    op.create_index('ix_class_statistics_school_id', 'class_statistics', ['school_id'])

    op.create_table(
        'result_history',
        *_base_columns(),
        _school_fk(),
        sa.Column('student_result_id', postgresql.UUID(as_uuid=True), nullable=False),
        *[
            sa.Column(f'{prefix}_{field}', sa.Float(), nullable=True)
            for prefix in ('previous', 'new')
            for field in ('assessment1', 'assessment2', 'ca_test', 'exam_score', 'total_score')
        ],
        sa.Column('previous_grade', sa.String(2), nullable=True),
        sa.Column('new_grade', sa.String(2), nullable=True),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('change_reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
    )
    op.create_index('ix_result_history_created_at', 'result_history', ['created_at'])
    op.create_index('ix_result_history_school_id', 'result_history', ['school_id'])
    op.create_index('ix_result_history_student_result_id', 'result_history', ['student_result_id'])
    op.create_index('idx_history_result_created', 'result_history', ['student_result_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('result_history')
    op.drop_table('class_statistics')
    op.drop_table('student_results')
    op.drop_table('users')
    op.drop_table('schools')
