"""
HTTP surface: auth gate, error mapping, rate limiting and an end-to-end
course and exam flow.
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from examdesk.services.auth import create_access_token
from examdesk.utils.clock import get_clock
from examdesk.utils.config import settings
from tests.conftest import EXAM_DAY


def _headers(email):
    return {"Authorization": f"Bearer {create_access_token(email)}"}


@pytest.fixture
def client(clock, mock_redis):
    app.dependency_overrides[get_clock] = lambda: clock
    # Not entered as a context manager: the lifespan would dial real Mongo/Redis
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(superadmin):
    return _headers(settings.super_admin_email)


class TestAuthGate:
    def test_missing_token(self, client):
        assert client.get("/api/courses").status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/courses", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_unknown_account(self, client):
        assert client.get("/api/courses", headers=_headers("ghost@example.com")).status_code == 401

    def test_student_is_forbidden(self, client, student):
        assert client.get("/api/exams", headers=_headers(student.email)).status_code == 403

    def test_deactivated_account(self, client, subadmin):
        subadmin.update(set__is_active=False)

        assert client.get("/api/users", headers=_headers(subadmin.email)).status_code == 401

    def test_health_is_open(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestCourseRoutes:
    def test_create_list_rename_delete(self, client, admin_headers):
        created = client.post("/api/courses", json={"name": "Algorithms"}, headers=admin_headers).json()
        assert created["code"] == "001"

        renamed = client.patch("/api/courses/001", json={"name": "Advanced Algorithms"}, headers=admin_headers)
        assert renamed.json()["name"] == "Advanced Algorithms"

        listed = client.get("/api/courses", headers=admin_headers).json()
        assert [c["code"] for c in listed] == ["001"]

        deleted = client.delete("/api/courses/001", headers=admin_headers).json()
        assert deleted["status"] is True
        assert deleted["cascade"]["code"] == "001"

    def test_unknown_course_maps_to_404(self, client, admin_headers):
        response = client.patch("/api/courses/999", json={"name": "Nothing"}, headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NOT_FOUND"


class TestUserRoutes:
    def test_create_and_list(self, client, admin_headers, course):
        response = client.post("/api/users", json={
            "role": "student",
            "email": "Dana@Example.com",
            "name": "Dana",
            "course_codes": [course.code],
        }, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["email"] == "dana@example.com"
        listing = client.get("/api/users", headers=admin_headers).json()
        assert "dana@example.com" in [u["email"] for u in listing["users"]]
        assert [c["code"] for c in listing["courses"]] == [course.code]

    def test_superadmin_role_cannot_be_requested(self, client, admin_headers):
        response = client.post("/api/users", json={
            "role": "superadmin", "email": "eve@example.com", "name": "Eve",
        }, headers=admin_headers)

        assert response.status_code == 422

    def test_access_update_on_superadmin_is_not_applied(self, client, admin_headers):
        response = client.patch("/api/users/access", json={
            "email": settings.super_admin_email, "is_active": False,
        }, headers=admin_headers)

        assert response.json() == {"status": True, "applied": False}

    def test_partial_permissions_body(self, client, admin_headers, student):
        client.patch("/api/users/access", json={
            "email": student.email, "permissions": {"can_view_results": False},
        }, headers=admin_headers)
        client.patch("/api/users/access", json={
            "email": student.email, "permissions": {"can_check_exam": True},
        }, headers=admin_headers)

        student.reload()
        assert student.permissions.can_view_results is False
        assert student.permissions.can_check_exam is True

    def test_access_update_applies(self, client, admin_headers, student):
        response = client.patch("/api/users/access", json={
            "email": student.email, "is_active": False,
        }, headers=admin_headers)

        assert response.json() == {"status": True, "applied": True}
        student.reload()
        assert student.is_active is False


class TestExamRoutes:
    def test_full_lifecycle(self, client, admin_headers, course, student, clock):
        exam = client.post("/api/exams", json={
            "course_codes": [course.code],
            "exam_date": EXAM_DAY.isoformat(),
            "duration_minutes": 30,
            "sets": [{"name": "A", "description": "first"}],
        }, headers=admin_headers).json()
        assert exam["status"] == "scheduled"
        assert exam["exam_date"] == EXAM_DAY.isoformat()

        assigned = client.put(f"/api/exams/{exam['id']}/assignments", json={
            "assignments": [{"student_email": student.email, "set_name": "A"}],
        }, headers=admin_headers).json()
        assert assigned["student_set_assignments"] == [{"student_email": student.email, "set_name": "A"}]

        started = client.post(f"/api/exams/{exam['id']}/start", headers=admin_headers).json()
        assert started["status"] == "started"

        terminated = client.post(f"/api/exams/{exam['id']}/terminate", headers=admin_headers).json()
        assert terminated["status"] == "terminated"

        assert client.delete(f"/api/exams/{exam['id']}", headers=admin_headers).json() == {"status": True}
        assert client.get(f"/api/exams/{exam['id']}", headers=admin_headers).status_code == 404

    def test_start_outside_window_is_409(self, client, admin_headers, exam, clock):
        clock.instant = clock.instant.replace(hour=19)

        response = client.post(f"/api/exams/{exam.id}/start", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "OUTSIDE_START_WINDOW"

    def test_bad_duration_is_rejected_at_the_edge(self, client, admin_headers, course):
        response = client.post("/api/exams", json={
            "course_codes": [course.code],
            "exam_date": EXAM_DAY.isoformat(),
            "duration_minutes": 5,
            "sets": [{"name": "A", "description": "x"}],
        }, headers=admin_headers)

        assert response.status_code == 422

    def test_invalid_assignment_is_400(self, client, admin_headers, exam, outsider):
        response = client.put(f"/api/exams/{exam.id}/assignments", json={
            "assignments": [{"student_email": outsider.email, "set_name": "A"}],
        }, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_FAILED"

    def test_repeated_transition_is_rate_limited(self, client, admin_headers, exam, student):
        first = client.put(f"/api/exams/{exam.id}/assignments", json={
            "assignments": [{"student_email": student.email, "set_name": "A"}],
        }, headers=admin_headers)
        second = client.put(f"/api/exams/{exam.id}/assignments", json={
            "assignments": [{"student_email": student.email, "set_name": "B"}],
        }, headers=admin_headers)

        assert first.status_code == 200
        assert second.status_code == 429
        stored = client.get(f"/api/exams/{exam.id}", headers=admin_headers).json()
        assert stored["student_set_assignments"] == [{"student_email": student.email, "set_name": "A"}]

    def test_rejected_batch_does_not_block_corrected_retry(self, client, admin_headers, exam, student, outsider):
        rejected = client.put(f"/api/exams/{exam.id}/assignments", json={
            "assignments": [
                {"student_email": student.email, "set_name": "A"},
                {"student_email": outsider.email, "set_name": "B"},
            ],
        }, headers=admin_headers)
        corrected = client.put(f"/api/exams/{exam.id}/assignments", json={
            "assignments": [{"student_email": student.email, "set_name": "A"}],
        }, headers=admin_headers)

        assert rejected.status_code == 400
        assert corrected.status_code == 200

    def test_refused_start_releases_cooldown(self, client, admin_headers, exam, clock):
        clock.instant = clock.instant.replace(hour=8)
        assert client.post(f"/api/exams/{exam.id}/start", headers=admin_headers).status_code == 409

        clock.instant = clock.instant.replace(hour=9)
        assert client.post(f"/api/exams/{exam.id}/start", headers=admin_headers).status_code == 200

    def test_cooldown_key_is_per_user_and_path(self, client, admin_headers, exam, mock_redis):
        client.post(f"/api/exams/{exam.id}/start", headers=admin_headers)

        mock_redis.set.assert_called_once_with(
            f"rl:{settings.super_admin_email}:/api/exams/{exam.id}/start",
            "1",
            nx=True,
            ex=settings.transition_rate_limit_seconds,
        )
        assert mock_redis.keys_store == {
            f"rl:{settings.super_admin_email}:/api/exams/{exam.id}/start": settings.transition_rate_limit_seconds,
        }


class TestDashboard:
    def test_summary_counts(self, client, admin_headers, exam, student, subadmin, clock):
        client.post(f"/api/exams/{exam.id}/start", headers=admin_headers)
        clock.instant = clock.instant.replace(hour=12)

        summary = client.get("/api/dashboard/summary", headers=admin_headers).json()

        assert summary["superadmins"] == 1
        assert summary["subadmins"] == 1
        assert summary["students"] == 1
        assert summary["total_users"] == 3
        assert summary["courses"] == 1
        assert summary["exams_by_status"] == {"scheduled": 0, "started": 0, "ended": 1, "terminated": 0}
