from uuid import uuid4

import pytest

from .conftest import CLASS, SESSION, SUBJECT, TERM

BASE = "/api/v1/student-results"
STATS = "/api/v1/class-statistics"

COHORT_PARAMS = {"subject_name": SUBJECT, "class": CLASS, "session": SESSION, "term": TERM}


@pytest.fixture
def schools(seeded):
    return seeded


@pytest.fixture
def teacher(auth, schools):
    school = schools[0]
    return auth(school, school.teacher, "teacher")


@pytest.fixture
def admin(auth, schools):
    school = schools[0]
    return auth(school, school.admin, "admin")


def body(school, student=0, **overrides):
    data = {
        "student_id": str(school.students[student]),
        "teacher_id": str(school.teacher),
        "subject_name": SUBJECT,
        "class": CLASS,
        "session": SESSION,
        "term": TERM,
        "assessment1": 12,
        "assessment2": 13,
        "ca_test": 9,
        "exam_score": 50,
    }
    data.update(overrides)
    return data


def create(client, headers, school, **kwargs):
    response = client.post(f"{BASE}/", json=body(school, **kwargs), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health/").json()["status"] == "healthy"
    assert client.get("/health/db").json() == {"status": "healthy", "database": "connected"}


def test_missing_token_is_unauthorized(client):
    response = client.get(f"{BASE}/teacher")

    assert response.status_code == 401
    assert response.json()["type"] == "AuthenticationError"
    assert response.headers["www-authenticate"] == "Bearer"


def test_bad_token_is_unauthorized(client):
    response = client.get(f"{BASE}/teacher", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


def test_create_returns_derived_fields_and_position(client, teacher, schools):
    result = create(client, teacher, schools[0])

    assert result["total_score"] == 84
    assert result["grade"] == "A1"
    assert result["remark"] == "Excellent"
    assert result["class"] == CLASS
    assert result["position"] == 1
    assert result["student_name"] == "Amina Bello"


def test_create_validation_error_names_field(client, teacher, schools):
    response = client.post(f"{BASE}/", json=body(schools[0], ca_test=11), headers=teacher)

    assert response.status_code == 422
    assert response.json() == {
        "error": "ca_test must be between 0 and 10",
        "type": "ValidationError",
        "field": "ca_test",
    }


def test_duplicate_create_conflicts(client, teacher, schools):
    create(client, teacher, schools[0])

    response = client.post(f"{BASE}/", json=body(schools[0]), headers=teacher)

    assert response.status_code == 409
    assert response.json()["type"] == "ConflictError"


def test_teacher_cannot_create_for_another_teacher(client, teacher, schools):
    data = body(schools[0], teacher_id=str(schools[0].other_teacher))

    response = client.post(f"{BASE}/", json=data, headers=teacher)

    assert response.status_code == 403


def test_student_cannot_create(client, auth, schools):
    school = schools[0]
    headers = auth(school, school.students[0], "student")

    assert client.post(f"{BASE}/", json=body(school), headers=headers).status_code == 403


def test_result_in_another_school_is_not_found(client, teacher, auth, schools):
    result = create(client, teacher, schools[0])
    other = schools[1]
    outsider = auth(other, other.admin, "admin")

    assert client.get(f"{BASE}/{result['id']}", headers=outsider).status_code == 404
    assert client.put(f"{BASE}/{result['id']}", json={"exam_score": 1}, headers=outsider).status_code == 404
    assert client.delete(f"{BASE}/{result['id']}", headers=outsider).status_code == 404
    assert client.get(f"{BASE}/history/{result['id']}", headers=outsider).status_code == 404


def test_foreign_result_is_not_found_for_every_role(client, auth, schools):
    home, other = schools
    result = create(client, auth(other, other.admin, "admin"), other)
    teacher = auth(home, home.teacher, "teacher")
    student = auth(home, home.students[0], "student")

    for headers in (teacher, student):
        response = client.delete(f"{BASE}/{result['id']}", headers=headers)
        assert response.status_code == 404, response.text
        assert response.json()["type"] == "NotFoundError"
        assert client.get(f"{BASE}/history/{result['id']}", headers=headers).status_code == 404

    owner = auth(other, other.admin, "admin")
    assert client.get(f"{BASE}/{result['id']}", headers=owner).status_code == 200


def test_history_of_deleted_result_stays_behind_role_check(client, teacher, admin, auth, schools):
    school = schools[0]
    result = create(client, teacher, school)
    client.put(f"{BASE}/{result['id']}", json={"exam_score": 40}, headers=teacher)
    client.delete(f"{BASE}/{result['id']}", headers=admin)
    student = auth(school, school.students[0], "student")

    assert client.get(f"{BASE}/history/{result['id']}", headers=student).status_code == 403
    assert len(client.get(f"{BASE}/history/{result['id']}", headers=teacher).json()) == 1


def test_students_read_only_their_own_results(client, teacher, auth, schools):
    school = schools[0]
    mine = create(client, teacher, school, student=0)
    theirs = create(client, teacher, school, student=1)
    student = auth(school, school.students[0], "student")

    assert client.get(f"{BASE}/{mine['id']}", headers=student).status_code == 200
    assert client.get(f"{BASE}/{theirs['id']}", headers=student).status_code == 403
    assert client.get(f"{BASE}/student/{school.students[0]}", headers=student).status_code == 200
    assert client.get(f"{BASE}/student/{school.students[1]}", headers=student).status_code == 403
    assert client.get(f"{BASE}/class", params=COHORT_PARAMS, headers=student).status_code == 403


def test_update_recomputes_and_records_history(client, teacher, schools):
    result = create(client, teacher, schools[0])

    response = client.put(
        f"{BASE}/{result['id']}",
        json={"exam_score": 40, "change_reason": "Re-marked"},
        headers={**teacher, "User-Agent": "results-client/1.0"},
    )

    assert response.status_code == 200
    updated = response.json()
    assert updated["total_score"] == 74
    assert updated["grade"] == "B2"
    assert updated["assessment1"] == 12

    history = client.get(f"{BASE}/history/{result['id']}", headers=teacher).json()
    assert len(history) == 1
    assert history[0]["previous_total_score"] == 84
    assert history[0]["new_total_score"] == 74
    assert history[0]["change_reason"] == "Re-marked"
    assert history[0]["user_agent"] == "results-client/1.0"
    assert history[0]["changed_by_name"] == "Tunde Teacher"


def test_teacher_cannot_update_another_teachers_result(client, auth, schools):
    school = schools[0]
    other_teacher = auth(school, school.other_teacher, "teacher")
    teacher = auth(school, school.teacher, "teacher")
    result = create(client, other_teacher, school, teacher_id=str(school.other_teacher))

    response = client.put(f"{BASE}/{result['id']}", json={"exam_score": 10}, headers=teacher)

    assert response.status_code == 403
    assert client.get(f"{BASE}/{result['id']}", headers=teacher).json()["exam_score"] == 50


def test_class_listing_is_ranked(client, teacher, schools):
    school = schools[0]
    create(client, teacher, school, student=0)
    create(client, teacher, school, student=1, exam_score=36)
    create(client, teacher, school, student=2)

    results = client.get(f"{BASE}/class", params=COHORT_PARAMS, headers=teacher).json()

    assert [r["student_name"] for r in results] == ["Dayo Adeyemi", "Amina Bello", "Chidi Okafor"]
    assert [r["position"] for r in results] == [1, 1, 3]

    searched = client.get(f"{BASE}/class", params={**COHORT_PARAMS, "search": "chidi"}, headers=teacher).json()
    assert [r["student_name"] for r in searched] == ["Chidi Okafor"]


def test_teacher_listings_search_by_student(client, teacher, admin, schools):
    school = schools[0]
    for student in (0, 1, 2):
        create(client, teacher, school, student=student)

    mine = client.get(f"{BASE}/teacher", params={"student_search": "amina"}, headers=teacher).json()
    assert [r["student_name"] for r in mine] == ["Amina Bello"]

    theirs = client.get(
        f"{BASE}/teacher/{school.teacher}", params={"student_search": "okafor"}, headers=admin
    ).json()
    assert [r["student_name"] for r in theirs] == ["Chidi Okafor"]


def test_class_listing_returns_whole_cohort_by_default(client, teacher, schools):
    school = schools[0]
    for student in range(len(school.students)):
        create(client, teacher, school, student=student)

    assert len(client.get(f"{BASE}/class", params=COHORT_PARAMS, headers=teacher).json()) == 4
    assert client.get(f"{BASE}/class", params={**COHORT_PARAMS, "limit": 1000}, headers=teacher).status_code == 200
    assert client.get(f"{BASE}/class", params={**COHORT_PARAMS, "limit": 1001}, headers=teacher).status_code == 422


def test_teacher_views(client, teacher, auth, schools):
    school = schools[0]
    create(client, teacher, school)
    other_teacher = auth(school, school.other_teacher, "teacher")

    assert len(client.get(f"{BASE}/teacher", headers=teacher).json()) == 1
    assert client.get(f"{BASE}/teacher/{school.teacher}", headers=other_teacher).status_code == 403
    assert client.get(f"{BASE}/teacher/{school.other_teacher}", headers=other_teacher).json() == []
    assert client.get(f"{BASE}/teacher-subjects", headers=teacher).json() == [
        {"subject_name": SUBJECT, "class": CLASS, "session": SESSION, "term": TERM}
    ]


def test_bulk_update_is_atomic(client, teacher, schools):
    school = schools[0]
    first = create(client, teacher, school, student=0)
    second = create(client, teacher, school, student=1)

    response = client.put(
        f"{BASE}/bulk-update",
        json={"updates": [
            {"id": first["id"], "exam_score": 30},
            {"id": second["id"], "exam_score": 31},
            {"id": str(uuid4()), "exam_score": 32},
        ]},
        headers=teacher,
    )

    assert response.status_code == 404
    assert client.get(f"{BASE}/{first['id']}", headers=teacher).json()["exam_score"] == 50
    assert client.get(f"{BASE}/{second['id']}", headers=teacher).json()["exam_score"] == 50


def test_bulk_update(client, teacher, schools):
    school = schools[0]
    first = create(client, teacher, school, student=0)
    second = create(client, teacher, school, student=1)

    response = client.put(
        f"{BASE}/bulk-update",
        json={
            "updates": [{"id": first["id"], "exam_score": 20}, {"id": second["id"], "exam_score": 60}],
            "change_reason": "Moderation",
        },
        headers=teacher,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["updated_count"] == 2
    assert [r["total_score"] for r in data["results"]] == [54, 94]
    assert [r["position"] for r in data["results"]] == [2, 1]


def test_bulk_update_checks_ownership_before_writing(client, auth, schools):
    school = schools[0]
    teacher = auth(school, school.teacher, "teacher")
    other_teacher = auth(school, school.other_teacher, "teacher")
    own = create(client, teacher, school, student=0)
    foreign = create(client, other_teacher, school, student=1, teacher_id=str(school.other_teacher))

    response = client.put(
        f"{BASE}/bulk-update",
        json={"updates": [{"id": own["id"], "exam_score": 10}, {"id": foreign["id"], "exam_score": 10}]},
        headers=teacher,
    )

    assert response.status_code == 403
    assert client.get(f"{BASE}/{own['id']}", headers=teacher).json()["exam_score"] == 50


def test_statistics_follow_mutations(client, teacher, admin, schools):
    school = schools[0]
    assert client.get(f"{STATS}/", params=COHORT_PARAMS, headers=teacher).status_code == 404

    first = create(client, teacher, school, student=0)
    create(client, teacher, school, student=1, exam_score=36)

    statistics = client.get(f"{STATS}/", params=COHORT_PARAMS, headers=teacher).json()
    assert statistics["total_students"] == 2
    assert statistics["average_score"] == 77
    assert statistics["highest_score"] == 84
    assert statistics["class"] == CLASS

    assert client.delete(f"{BASE}/{first['id']}", headers=teacher).status_code == 403
    deleted = client.delete(f"{BASE}/{first['id']}", headers=admin)
    assert deleted.status_code == 200
    assert deleted.json()["result"]["total_score"] == 84

    statistics = client.get(f"{STATS}/", params=COHORT_PARAMS, headers=teacher).json()
    assert statistics["total_students"] == 1
    assert statistics["highest_score"] == 70


def test_recalculate_endpoint(client, teacher, auth, schools):
    school = schools[0]
    create(client, teacher, school)
    cohort = {"subject_name": SUBJECT, "class": CLASS, "session": SESSION, "term": TERM}

    response = client.post(f"{STATS}/recalculate", json=cohort, headers=teacher)
    assert response.status_code == 200
    assert response.json()["statistics"]["total_students"] == 1
    assert response.json()["positions_updated"] == 1

    empty = client.post(f"{STATS}/recalculate", json={**cohort, "term": "Third Term"}, headers=teacher)
    assert empty.json() == {
        "message": "No results found for this class; statistics cleared",
        "statistics": None,
        "positions_updated": 0,
    }

    student = auth(school, school.students[0], "student")
    assert client.post(f"{STATS}/recalculate", json=cohort, headers=student).status_code == 403
