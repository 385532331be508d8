# school_results/schemas/result_schemas.py
"""Pydantic schemas for student results, class statistics and history."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# "class" is reserved in Python; accept either spelling, emit "class"
def class_field():
    return Field(
        ...,
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("class", "class_name"),
        serialization_alias="class",
    )


class CohortKey(BaseModel):
    subject_name: str = Field(..., min_length=1, max_length=100)
    class_name: str = class_field()
    session: str = Field(..., min_length=1, max_length=20, description="e.g. 2024/2025")
    term: str = Field(..., min_length=1, max_length=20, description="e.g. First Term")


class StudentResultCreate(BaseModel):
    student_id: UUID
    subject_name: str = Field(..., min_length=1, max_length=100)
    teacher_id: UUID
    class_name: str = class_field()
    session: str = Field(..., min_length=1, max_length=20)
    term: str = Field(..., min_length=1, max_length=20)

    # Ranges are checked by the service so every caller gets the same errors
    assessment1: float = Field(default=0, description="0-15")
    assessment2: float = Field(default=0, description="0-15")
    ca_test: float = Field(default=0, description="0-10")
    exam_score: float = Field(default=0, description="0-60")

    remark: Optional[str] = Field(default=None, max_length=100)
    teacher_comment: Optional[str] = None
    days_present: int = 0
    days_school_opened: int = 0


class StudentResultUpdate(BaseModel):
    """Partial update; omitted (or null) fields keep their stored value."""
    assessment1: Optional[float] = None
    assessment2: Optional[float] = None
    ca_test: Optional[float] = None
    exam_score: Optional[float] = None
    remark: Optional[str] = Field(default=None, max_length=100)
    teacher_comment: Optional[str] = None
    days_present: Optional[int] = None
    days_school_opened: Optional[int] = None
    change_reason: Optional[str] = None


class BulkUpdateItem(StudentResultUpdate):
    id: UUID


class BulkUpdateRequest(BaseModel):
    updates: List[BulkUpdateItem] = Field(..., min_length=1)
    change_reason: Optional[str] = None


class StudentResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    student_id: UUID
    teacher_id: UUID
    subject_name: str
    class_name: str = class_field()
    session: str
    term: str
    assessment1: float
    assessment2: float
    ca_test: float
    exam_score: float
    total_score: float
    grade: str
    position: Optional[int] = None
    remark: Optional[str] = None
    teacher_comment: Optional[str] = None
    days_present: int
    days_school_opened: int
    last_updated_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Display fields joined from users
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    admission_number: Optional[str] = None
    teacher_name: Optional[str] = None


class BulkUpdateResponse(BaseModel):
    message: str
    updated_count: int
    results: List[StudentResultResponse]


class DeleteResultResponse(BaseModel):
    message: str
    result: StudentResultResponse


class TeacherSubject(BaseModel):
    subject_name: str
    class_name: str = class_field()
    session: str
    term: str


class ClassStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    school_id: UUID
    subject_name: str
    class_name: str = class_field()
    session: str
    term: str
    total_students: int
    average_score: Optional[float] = None
    highest_score: Optional[float] = None
    lowest_score: Optional[float] = None
    pass_count: int = 0
    a1_count: int = 0
    b2_count: int = 0
    b3_count: int = 0
    c4_count: int = 0
    c5_count: int = 0
    c6_count: int = 0
    d7_count: int = 0
    e8_count: int = 0
    f9_count: int = 0
    calculated_at: Optional[datetime] = None


class RecalculateResponse(BaseModel):
    message: str
    statistics: Optional[ClassStatisticsResponse] = None
    positions_updated: int


class ResultHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    student_result_id: UUID
    previous_assessment1: Optional[float] = None
    previous_assessment2: Optional[float] = None
    previous_ca_test: Optional[float] = None
    previous_exam_score: Optional[float] = None
    previous_total_score: Optional[float] = None
    previous_grade: Optional[str] = None
    new_assessment1: Optional[float] = None
    new_assessment2: Optional[float] = None
    new_ca_test: Optional[float] = None
    new_exam_score: Optional[float] = None
    new_total_score: Optional[float] = None
    new_grade: Optional[str] = None
    changed_by: UUID
    changed_by_name: Optional[str] = None
    change_reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
