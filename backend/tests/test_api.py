import io
import json
from datetime import timedelta

import openpyxl
import pytest

from artschool import models
from artschool.config import settings
from artschool.db import Base

from conftest import BASE_TIME, next_phone

pytestmark = pytest.mark.integration


def sse_events(body: str):
    return [
        json.loads(chunk[len("data: "):])
        for chunk in body.split("\n\n")
        if chunk.startswith("data: ")
    ]


def course_body(course, lessons=None, **overrides):
    body = {
        "title": course.title,
        "category": "DANCE",
        "year": course.year,
        "term": "SPRING",
        "price": course.price,
        "teacherId": course.teacher_id,
    }
    if lessons is not None:
        body["lessons"] = lessons
    body.update(overrides)
    return body


class TestAuth:
    def test_missing_identity_is_401(self, client):
        resp = client.get("/courses")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Not authenticated"}

    def test_unknown_role_is_401(self, client):
        resp = client.get("/courses", headers={"X-User-Id": "1", "X-User-Role": "JANITOR"})
        assert resp.status_code == 401

    def test_student_cannot_write(self, client, student_headers, make_course):
        course = make_course()
        resp = client.put(f"/courses/{course.id}", json=course_body(course), headers=student_headers)
        assert resp.status_code == 403

    def test_teacher_cannot_delete(self, client, teacher_headers, make_course):
        course = make_course()
        resp = client.delete(f"/courses/{course.id}", headers=teacher_headers)
        assert resp.status_code == 403

    def test_template_needs_no_identity(self, client):
        resp = client.get("/students/template")
        assert resp.status_code == 200
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        assert [c.value for c in wb.active[1]] == ["name", "phone", "gender"]
        assert wb.active.max_row == 3


class TestCourses:
    def test_list_and_detail(self, client, teacher_headers, make_course, make_student, make_leave, db):
        course = make_course(lessons=2)
        lesson = db.query(models.Lesson).filter(models.Lesson.course_id == course.id).order_by(models.Lesson.id).first()
        make_leave(make_student(), lesson)

        listing = client.get("/courses", params={"search": "ballet"}, headers=teacher_headers).json()
        assert listing["total"] == 1
        assert listing["data"][0]["lesson_count"] == 2
        assert listing["data"][0]["category"] == "DANCE"

        detail = client.get(f"/courses/{course.id}", headers=teacher_headers).json()["data"]
        assert [l["leave_count"] for l in detail["lessons"]] == [1, 0]

    def test_update_with_schedule(self, client, teacher_headers, make_course, db):
        course = make_course(lessons=2)
        first = db.query(models.Lesson).filter(models.Lesson.course_id == course.id).order_by(models.Lesson.id).first()
        lessons = [
            {
                "id": first.id,
                "title": "Opening class",
                "startTime": BASE_TIME.isoformat(),
                "endTime": (BASE_TIME + timedelta(hours=2)).isoformat(),
            }
        ]

        resp = client.put(f"/courses/{course.id}", json=course_body(course, lessons), headers=teacher_headers)

        assert resp.status_code == 200
        assert resp.json()["data"] == {"id": course.id, "title": "Ballet Basics"}
        detail = client.get(f"/courses/{course.id}", headers=teacher_headers).json()["data"]
        assert [l["title"] for l in detail["lessons"]] == ["Opening class"]

    def test_leave_conflict_maps_to_400(self, client, teacher_headers, make_course, make_student, make_leave, db):
        course = make_course(lessons=1)
        lesson = db.query(models.Lesson).filter(models.Lesson.course_id == course.id).one()
        make_leave(make_student(), lesson)

        resp = client.put(f"/courses/{course.id}", json=course_body(course, []), headers=teacher_headers)

        assert resp.status_code == 400
        assert "has leave records" in resp.json()["error"]

    def test_bad_body_maps_to_400(self, client, teacher_headers, make_course):
        course = make_course()
        resp = client.put(f"/courses/{course.id}", json=course_body(course, year=1990), headers=teacher_headers)
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("year:")

    def test_unknown_course_is_404(self, client, teacher_headers, make_course):
        course = make_course()
        resp = client.put(f"/courses/{course.id + 1}", json=course_body(course), headers=teacher_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": f"course {course.id + 1} not found"}

    def test_create_and_delete(self, client, boss_headers, make_teacher):
        teacher = make_teacher()
        body = {
            "title": "Speech Club",
            "category": "口才",
            "year": 2025,
            "term": "AUTUMN",
            "price": 30000,
            "teacherId": teacher.id,
        }
        created = client.post("/courses", json=body, headers=boss_headers)
        assert created.status_code == 201
        course_id = created.json()["data"]["id"]

        assert client.get(f"/courses/{course_id}", headers=boss_headers).json()["data"]["status"] == "DRAFT"
        assert client.delete(f"/courses/{course_id}", headers=boss_headers).status_code == 200
        assert client.get(f"/courses/{course_id}", headers=boss_headers).status_code == 404


class TestOrders:
    def test_enroll_then_duplicate(self, client, teacher_headers, make_course, make_student):
        course = make_course(price=100000)
        student = make_student()
        body = {"studentId": student.id, "courseId": course.id}

        first = client.post("/orders", json=body, headers=teacher_headers)
        assert first.status_code == 201
        data = first.json()["data"]
        assert data["amount"] == 100000
        assert data["order_no"].startswith("OD")
        assert data["student_name"] == "Zhang Wei"

        second = client.post("/orders", json=body, headers=teacher_headers)
        assert second.status_code == 400
        assert "already enrolled" in second.json()["error"]

        listing = client.get("/orders", headers=teacher_headers).json()
        assert listing["total"] == 1
        assert listing["data"][0]["status"] == "PAID"

    def test_update_and_boss_only_delete(self, client, boss_headers, teacher_headers, make_course, make_student):
        course = make_course()
        student = make_student()
        order_id = client.post(
            "/orders", json={"studentId": student.id, "courseId": course.id}, headers=teacher_headers
        ).json()["data"]["id"]

        resp = client.put(
            f"/orders/{order_id}",
            json={"studentId": student.id, "courseId": course.id, "amount": 1, "status": "UNPAID"},
            headers=teacher_headers,
        )
        assert resp.status_code == 200
        assert client.get(f"/orders/{order_id}", headers=teacher_headers).json()["data"]["status"] == "UNPAID"

        assert client.delete(f"/orders/{order_id}", headers=teacher_headers).status_code == 403
        assert client.delete(f"/orders/{order_id}", headers=boss_headers).status_code == 200
        assert client.get(f"/orders/{order_id}", headers=boss_headers).status_code == 404

    def test_unknown_student_is_400(self, client, teacher_headers, make_course):
        course = make_course()
        resp = client.post("/orders", json={"studentId": 999, "courseId": course.id}, headers=teacher_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "student 999 does not exist"}


class TestStudentImport:
    def test_streams_progress_and_report(self, client, teacher_headers, make_xlsx, db):
        content = make_xlsx([
            ("Zhang", "13800000001", 1),
            ("", "13900000002", 2),
            ("Li", "bad-phone", 1),
        ])

        resp = client.post(
            "/students/import",
            files={"file": ("students.xlsx", content, "application/octet-stream")},
            headers=teacher_headers,
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        events = sse_events(resp.text)
        assert [e["type"] for e in events] == ["init", "progress", "complete"]
        assert (events[-1]["imported"], events[-1]["skipped"], events[-1]["failed"]) == (1, 2, 0)
        assert db.query(models.User).filter(models.User.phone == "13800000001").count() == 1

    def test_missing_column_fails_before_streaming(self, client, teacher_headers, make_xlsx):
        content = make_xlsx([("Zhang",)], header=("name",))
        resp = client.post(
            "/students/import",
            files={"file": ("students.xlsx", content, "application/octet-stream")},
            headers=teacher_headers,
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "missing required columns: phone"}

    def test_wrong_extension(self, client, teacher_headers):
        resp = client.post(
            "/students/import",
            files={"file": ("students.csv", b"name,phone", "text/csv")},
            headers=teacher_headers,
        )
        assert resp.status_code == 400

    def test_students_cannot_import(self, client, student_headers, make_xlsx):
        resp = client.post(
            "/students/import",
            files={"file": ("students.xlsx", make_xlsx([("A", "13800000001", 1)]), "application/octet-stream")},
            headers=student_headers,
        )
        assert resp.status_code == 403

    def test_oversized_upload_is_refused(self, client, teacher_headers, make_xlsx, monkeypatch, db):
        content = make_xlsx([("A", "13800000001", 1)])
        monkeypatch.setattr(settings, "IMPORT_MAX_BYTES", len(content) - 1)

        resp = client.post(
            "/students/import",
            files={"file": ("students.xlsx", content, "application/octet-stream")},
            headers=teacher_headers,
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "file is too large"}
        assert db.query(models.User).count() == 0


class TestStoreFaults:
    def test_read_failure_renders_error_body(self, client, teacher_headers, engine):
        Base.metadata.drop_all(bind=engine)

        resp = client.get("/courses", headers=teacher_headers)

        assert resp.status_code == 500
        assert resp.json() == {"error": "database error"}


class TestPeople:
    def test_student_crud(self, client, teacher_headers, boss_headers):
        body = {
            "name": "Chen Jing",
            "phone": next_phone(),
            "gender": "FEMALE",
            "parentName1": "Chen Mum",
            "parentPhone1": next_phone(),
            "parentRole1": "妈妈",
        }
        created = client.post("/students", json=body, headers=teacher_headers)
        assert created.status_code == 201
        student_id = created.json()["data"]["id"]

        dup = client.post("/students", json=body, headers=teacher_headers)
        assert dup.status_code == 400

        body["name"] = "Chen Jingjing"
        assert client.put(f"/students/{student_id}", json=body, headers=teacher_headers).status_code == 200
        fetched = client.get(f"/students/{student_id}", headers=teacher_headers).json()["data"]
        assert fetched["name"] == "Chen Jingjing"
        assert fetched["parent_role1"] == "MOTHER"

        assert client.delete(f"/students/{student_id}", headers=boss_headers).status_code == 200
        assert client.get(f"/students/{student_id}", headers=boss_headers).status_code == 404

    def test_teacher_with_courses_cannot_be_deleted(self, client, boss_headers, make_course):
        course = make_course()
        resp = client.delete(f"/teachers/{course.teacher_id}", headers=boss_headers)
        assert resp.status_code == 400
        assert "cannot be deleted" in resp.json()["error"]

    def test_teacher_writes_are_boss_only(self, client, teacher_headers, boss_headers):
        body = {"name": "Liu Yang", "phone": next_phone(), "gender": 1}
        assert client.post("/teachers", json=body, headers=teacher_headers).status_code == 403
        created = client.post("/teachers", json=body, headers=boss_headers)
        assert created.status_code == 201
        assert created.json()["data"]["job"] == "TEACHER"


class TestReadViews:
    def test_leaves_listing(self, client, teacher_headers, make_course, make_student, make_leave, db):
        course = make_course(lessons=1)
        lesson = db.query(models.Lesson).filter(models.Lesson.course_id == course.id).one()
        make_leave(make_student(name="Zhao Lei"), lesson, reason="fever")

        data = client.get("/leaves", params={"search": "fever"}, headers=teacher_headers).json()
        assert data["total"] == 1
        assert data["data"][0]["student_name"] == "Zhao Lei"
        assert data["data"][0]["course_title"] == "Ballet Basics"

    def test_options(self, client, teacher_headers, make_course):
        make_course()
        teachers = client.get("/options", params={"type": "teachers"}, headers=teacher_headers).json()["data"]
        assert [t["name"] for t in teachers] == ["Wang Fang"]
        courses = client.get("/options", params={"type": "courses"}, headers=teacher_headers).json()["data"]
        assert courses[0]["name"] == "Ballet Basics (2025 春季)"
        assert client.get("/options", params={"type": "rooms"}, headers=teacher_headers).status_code == 400

    def test_dashboard_stats(self, client, boss_headers, make_course, make_student):
        course = make_course()
        student = make_student()
        client.post("/orders", json={"studentId": student.id, "courseId": course.id}, headers=boss_headers)

        stats = client.get("/dashboard/stats", headers=boss_headers).json()["data"]
        assert stats["total_students"] == 1
        assert stats["open_courses"] == 1
        assert stats["total_orders"] == 1
        assert stats["monthly_revenue"] == course.price
        assert stats["course_categories"][0]["name"] == "DANCE"
        assert len(stats["recent_orders"]) == 1

    def test_orders_export(self, client, boss_headers, teacher_headers, make_course, make_student):
        course = make_course()
        client.post(
            "/orders", json={"studentId": make_student().id, "courseId": course.id}, headers=boss_headers
        )

        assert client.get("/dashboard/orders.xlsx", headers=teacher_headers).status_code == 403
        resp = client.get("/dashboard/orders.xlsx", params={"status": "paid"}, headers=boss_headers)
        assert resp.status_code == 200
        ws = openpyxl.load_workbook(io.BytesIO(resp.content)).active
        assert ws.max_row == 2
        assert ws.cell(row=2, column=5).value == course.price / 100
