from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from school_results.core.exceptions import NotFoundError, ValidationError
from school_results.services.audit_service import AuditService
from school_results.services.student_result_service import StudentResultService

from .conftest import result_payload


@pytest.fixture
def results(db):
    return StudentResultService(db)


@pytest.fixture
def audit(db):
    return AuditService(db)


async def test_create_writes_no_history(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    assert await audit.get_history(created["id"], school.id) == []


async def test_update_writes_one_entry_with_both_snapshots(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    await results.update(
        created["id"],
        {"exam_score": 40},
        school.id,
        updated_by=school.teacher,
        change_reason="Re-marked script",
        ip_address="10.0.0.7",
        user_agent="pytest",
    )

    history = await audit.get_history(created["id"], school.id)
    assert len(history) == 1
    entry = history[0]
    assert entry["previous_exam_score"] == 50
    assert entry["previous_total_score"] == 84
    assert entry["previous_grade"] == "A1"
    assert entry["new_exam_score"] == 40
    assert entry["new_total_score"] == 74
    assert entry["new_grade"] == "B2"
    assert entry["new_assessment1"] == entry["previous_assessment1"] == 12
    assert entry["changed_by"] == school.teacher
    assert entry["changed_by_name"] == "Tunde Teacher"
    assert entry["change_reason"] == "Re-marked script"
    assert entry["ip_address"] == "10.0.0.7"
    assert entry["user_agent"] == "pytest"


async def test_comment_only_update_is_still_recorded(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    await results.update(created["id"], {"teacher_comment": "Neat work"}, school.id, updated_by=school.teacher)

    history = await audit.get_history(created["id"], school.id)
    assert len(history) == 1
    assert history[0]["previous_total_score"] == history[0]["new_total_score"] == 84


async def test_history_is_newest_first(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    for exam_score in (10, 20, 30):
        await results.update(created["id"], {"exam_score": exam_score}, school.id, updated_by=school.admin)

    history = await audit.get_history(created["id"], school.id)
    assert [entry["new_exam_score"] for entry in history] == [30, 20, 10]
    assert history[-1]["previous_exam_score"] == 50
    assert history[0]["changed_by_name"] == "Ada Admin"


async def test_failed_update_leaves_no_history(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    with pytest.raises(ValidationError):
        await results.update(created["id"], {"exam_score": 70}, school.id, updated_by=school.teacher)

    assert await audit.get_history(created["id"], school.id) == []


async def test_history_failure_does_not_fail_the_update(results, audit, db, school, monkeypatch):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    def broken_savepoint():
        raise OperationalError("SAVEPOINT sa_savepoint_1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "begin_nested", broken_savepoint)
    updated = await results.update(created["id"], {"exam_score": 45}, school.id, updated_by=school.teacher)
    monkeypatch.undo()

    assert updated["total_score"] == 79
    assert await audit.get_history(created["id"], school.id) == []


async def test_history_survives_delete(results, audit, school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)
    await results.update(created["id"], {"exam_score": 45}, school.id, updated_by=school.teacher)

    await results.delete(created["id"], school.id)

    history = await audit.get_history(created["id"], school.id)
    assert len(history) == 1
    assert history[0]["new_total_score"] == 79


async def test_history_is_scoped_to_school(results, audit, school, other_school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)
    await results.update(created["id"], {"exam_score": 45}, school.id, updated_by=school.teacher)

    with pytest.raises(NotFoundError):
        await audit.get_history(created["id"], other_school.id)
    with pytest.raises(NotFoundError):
        await audit.get_history(uuid4(), school.id)


async def test_ensure_tracked_checks_result_or_history_in_school(results, audit, school, other_school):
    created = await results.create(school.id, result_payload(school), created_by=school.teacher)

    await audit.ensure_tracked(created["id"], school.id)
    with pytest.raises(NotFoundError):
        await audit.ensure_tracked(created["id"], other_school.id)

    await results.update(created["id"], {"exam_score": 45}, school.id, updated_by=school.teacher)
    await results.delete(created["id"], school.id)

    await audit.ensure_tracked(created["id"], school.id)
    with pytest.raises(NotFoundError):
        await audit.ensure_tracked(created["id"], other_school.id)
