"""Shared fixtures: an in-memory SQLite store, the API client and record factories."""
import io
import itertools
import os
from datetime import datetime, timedelta

# must be set before the app modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["AUTO_CREATE_TABLES"] = "false"

import openpyxl
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from artschool import models
from artschool.db import Base, build_engine, get_db, get_session_factory
from artschool.enums import (
    CourseCategory, CourseStatus, CourseTerm, GuardianRole, Job, LessonStatus, Role,
)
from artschool.main import app
from artschool.security import hash_password

PASSWORD_HASH = hash_password("123456", rounds=4)

BASE_TIME = datetime(2025, 3, 1, 9, 0)

_phones = itertools.count(1)


def next_phone() -> str:
    return f"139{next(_phones):08d}"


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# API client
# =============================================================================


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def boss_headers():
    return {"X-User-Id": "1", "X-User-Role": "BOSS"}


@pytest.fixture
def teacher_headers():
    return {"X-User-Id": "2", "X-User-Role": "TEACHER"}


@pytest.fixture
def student_headers():
    return {"X-User-Id": "3", "X-User-Role": "3"}


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_teacher(db):
    def _make(name="Wang Fang", **kwargs):
        user = models.User(
            name=name,
            phone=kwargs.pop("phone", next_phone()),
            role=Role.TEACHER,
            password_hash=PASSWORD_HASH,
            **kwargs,
        )
        user.teacher = models.TeacherProfile(job=Job.TEACHER)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_student(db):
    def _make(name="Zhang Wei", **kwargs):
        phone = kwargs.pop("phone", next_phone())
        user = models.User(
            name=name,
            phone=phone,
            role=Role.STUDENT,
            password_hash=PASSWORD_HASH,
            **kwargs,
        )
        user.student = models.StudentProfile(
            parent_name1=f"{name}'s mother",
            parent_phone1=phone,
            parent_role1=GuardianRole.MOTHER,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_course(db, make_teacher):
    def _make(teacher=None, lessons=0, **kwargs):
        teacher = teacher or make_teacher()
        fields = dict(
            title="Ballet Basics",
            subtitle="Level 1",
            category=CourseCategory.DANCE,
            year=2025,
            term=CourseTerm.SPRING,
            price=100000,
            address="Studio A",
            status=CourseStatus.OPEN,
        )
        fields.update(kwargs)
        course = models.Course(teacher_id=teacher.id, **fields)
        db.add(course)
        db.flush()
        for i in range(lessons):
            start = BASE_TIME + timedelta(days=7 * i)
            db.add(models.Lesson(
                course_id=course.id,
                title=f"L{i + 1}",
                start_time=start,
                end_time=start + timedelta(hours=1),
                status=LessonStatus.PENDING,
            ))
        db.commit()
        return course

    return _make


@pytest.fixture
def make_leave(db):
    def _make(student, lesson, reason="sick"):
        leave = models.Leave(student_id=student.id, lesson_id=lesson.id, reason=reason)
        db.add(leave)
        db.commit()
        return leave

    return _make


# =============================================================================
# Spreadsheets
# =============================================================================


def xlsx_bytes(rows, header=("name", "phone", "gender")) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    if header is not None:
        ws.append(list(header))
    for row in rows:
        ws.append(list(row))
    stream = io.BytesIO()
    wb.save(stream)
    return stream.getvalue()


@pytest.fixture
def make_xlsx():
    return xlsx_bytes
