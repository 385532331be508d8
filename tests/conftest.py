import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from school_results.core.config import Settings
from school_results.core.database import Database, enable_sqlite_transactions
from school_results.core.security import create_access_token
from school_results.main import create_app
from school_results.models import School, User

SUBJECT = "Mathematics"
CLASS = "JSS1"
SESSION = "2024/2025"
TERM = "First Term"

STUDENTS = [("Amina", "Bello"), ("Chidi", "Okafor"), ("Dayo", "Adeyemi"), ("Efe", "Obi")]


async def seed_school(session, code: str) -> SimpleNamespace:
    """One school with an admin, two teachers and four students."""
    school = School(school_code=code, name=f"School {code}")
    session.add(school)
    await session.flush()

    domain = f"{code.lower()}.test"

    def user(role, first_name, last_name, admission_number=None):
        return User(
            school_id=school.id,
            role=role,
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}.{last_name.lower()}@{domain}",
            admission_number=admission_number,
        )

    admin = user("admin", "Ada", "Admin")
    teacher = user("teacher", "Tunde", "Teacher")
    other_teacher = user("teacher", "Grace", "Eze")
    students = [
        user("student", first, last, admission_number=f"{code}-{index:03d}")
        for index, (first, last) in enumerate(STUDENTS, start=1)
    ]
    session.add_all([admin, teacher, other_teacher, *students])
    await session.commit()

    return SimpleNamespace(
        id=school.id,
        admin=admin.id,
        teacher=teacher.id,
        other_teacher=other_teacher.id,
        students=[student.id for student in students],
    )


def result_payload(school, student=0, teacher=None, **overrides):
    payload = {
        "student_id": school.students[student],
        "teacher_id": teacher or school.teacher,
        "subject_name": SUBJECT,
        "class_name": CLASS,
        "session": SESSION,
        "term": TERM,
        "assessment1": 12,
        "assessment2": 13,
        "ca_test": 9,
        "exam_score": 50,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def database():
    database = Database("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_transactions(database.engine)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


@pytest.fixture
async def school(db):
    return await seed_school(db, "SCH-A")


@pytest.fixture
async def other_school(db):
    return await seed_school(db, "SCH-B")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'results.db'}",
        jwt_secret_key="test-secret-key",
        redis_url=None,
    )


@pytest.fixture
def seeded(settings):
    """Create the schema in a file database and seed two schools."""

    async def prepare():
        database = Database.from_settings(settings)
        await database.create_all()
        async with database.session() as session:
            first = await seed_school(session, "SCH-A")
            second = await seed_school(session, "SCH-B")
        await database.dispose()
        return first, second

    return asyncio.run(prepare())


@pytest.fixture
def client(settings, seeded):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def auth(settings):
    """Build Authorization headers for a user of a seeded school."""

    def headers(school, user_id, role):
        token = create_access_token(settings, user_id=user_id, school_id=school.id, role=role)
        return {"Authorization": f"Bearer {token}"}

    return headers
