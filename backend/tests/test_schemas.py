from datetime import date, datetime, timedelta, timezone

import pytest

from artschool import schemas
from artschool.enums import CourseCategory, CourseTerm, LessonStatus, OrderStatus
from artschool.errors import ValidationError


def course_payload(**overrides):
    payload = {
        "title": "Ballet Basics",
        "category": "DANCE",
        "year": 2025,
        "term": 1,
        "price": 100000,
        "teacherId": 1,
    }
    payload.update(overrides)
    return payload


class TestCourseIn:
    def test_accepts_camel_case_and_mixed_enum_spellings(self):
        data = schemas.validate_payload(schemas.CourseIn, course_payload())

        assert data.teacher_id == 1
        assert data.category is CourseCategory.DANCE
        assert data.term is CourseTerm.SPRING
        assert data.lessons is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "A"},
            {"year": 2019},
            {"price": -1},
            {"price": schemas.MAX_AMOUNT + 1},
            {"category": "sculpture"},
        ],
    )
    def test_out_of_range_fields_raise_validation_error(self, overrides):
        with pytest.raises(ValidationError):
            schemas.validate_payload(schemas.CourseIn, course_payload(**overrides))

    def test_duplicate_lesson_ids_are_rejected(self):
        lesson = {"id": 3, "title": "L", "startTime": "2025-03-01T09:00:00", "endTime": "2025-03-01T10:00:00"}
        with pytest.raises(ValidationError, match="unique"):
            schemas.validate_payload(schemas.CourseIn, course_payload(lessons=[lesson, lesson]))

    def test_lesson_times_are_stored_as_naive_utc(self):
        start = datetime(2025, 3, 1, 17, 0, tzinfo=timezone(timedelta(hours=8)))
        lesson = schemas.LessonIn(title="L1", start_time=start, end_time=start + timedelta(hours=1))

        assert lesson.start_time == datetime(2025, 3, 1, 9, 0)
        assert lesson.start_time.tzinfo is None
        assert lesson.status is LessonStatus.PENDING


class TestOrderIn:
    def test_defaults(self):
        data = schemas.OrderIn(student_id=1, course_id=2)
        assert data.amount is None
        assert data.status is OrderStatus.PAID
        assert data.pay_time is None

    def test_date_only_pay_time(self):
        data = schemas.OrderIn(student_id=1, course_id=2, pay_time="2025-03-01")
        assert data.pay_time == datetime(2025, 3, 1)

    def test_blank_pay_time_is_none(self):
        assert schemas.OrderIn(student_id=1, course_id=2, pay_time=" ").pay_time is None

    def test_update_requires_amount(self):
        with pytest.raises(ValidationError, match="amount"):
            schemas.validate_payload(schemas.OrderUpdate, {"studentId": 1, "courseId": 2, "status": "PAID"})


class TestStudentIn:
    def base(self, **overrides):
        payload = {
            "name": "Zhang Wei",
            "phone": "13800000001",
            "parentName1": "Zhang Mum",
            "parentPhone1": "13800000002",
            "parentRole1": "MOTHER",
        }
        payload.update(overrides)
        return payload

    def test_blank_optionals_become_none(self):
        data = schemas.validate_payload(schemas.StudentIn, self.base(email="", gender="", parentRole2=""))
        assert data.email is None
        assert data.gender is None
        assert data.parent_role2 is None

    def test_invalid_phone_message_names_the_field(self):
        with pytest.raises(ValidationError) as exc:
            schemas.validate_payload(schemas.StudentIn, self.base(phone="12345"))
        assert exc.value.message == "phone: invalid phone format"

    def test_age_bounds(self):
        too_young = date(date.today().year - 1, 1, 1)
        with pytest.raises(ValidationError, match="age"):
            schemas.validate_payload(schemas.StudentIn, self.base(birth=too_young.isoformat()))


def test_enum_fields_serialize_as_names():
    out = schemas.OrderOut(id=1, student_id=1, course_id=1, amount=100, status=2)
    assert out.model_dump()["status"] == "PAID"
