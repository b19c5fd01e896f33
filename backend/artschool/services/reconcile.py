# backend/artschool/services/reconcile.py
"""
Course / lesson reconciliation.

A course edit carries the full desired lesson list. ``sync_lessons`` diffs it
against what is stored: lessons missing from the list are deleted, lessons
with an id are updated, lessons without one are created. Deleting a lesson
that still has leave records is refused, and the refusal rolls back the whole
edit, scalar course fields included.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..date_utils import is_valid_range
from ..enums import CourseStatus, Role
from ..errors import (
    ArtSchoolError, DependencyConflict, InvalidReference, InvalidTimeRange,
    NotFound, PersistenceError,
)

logger = logging.getLogger(__name__)

COURSE_FIELDS = (
    "title", "subtitle", "category", "year", "term",
    "price", "teacher_id", "address", "banner",
)


@dataclass
class LessonDiff:
    deleted: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    created: List[models.Lesson] = field(default_factory=list)


def resolve_teacher(db: Session, teacher_id: int) -> models.User:
    teacher = (
        db.query(models.User)
        .filter(models.User.id == teacher_id, models.User.role == Role.TEACHER)
        .first()
    )
    if not teacher:
        raise InvalidReference(f"teacher {teacher_id} does not exist")
    return teacher


def leave_counts(db: Session, lesson_ids: Sequence[int]) -> Dict[int, int]:
    """Number of leave records per lesson, only for lessons that have any."""
    if not lesson_ids:
        return {}
    rows = (
        db.query(models.Leave.lesson_id, func.count(models.Leave.id))
        .filter(models.Leave.lesson_id.in_(list(lesson_ids)))
        .group_by(models.Leave.lesson_id)
        .all()
    )
    return {lesson_id: count for lesson_id, count in rows if count}


def sync_lessons(db: Session, course: models.Course, specs: List[schemas.LessonIn]) -> LessonDiff:
    """Make the course's stored lessons match ``specs``.

    Must run inside the caller's transaction; it flushes but never commits.
    """
    diff = LessonDiff()

    existing = {
        lesson.id: lesson
        for lesson in db.query(models.Lesson).filter(models.Lesson.course_id == course.id)
    }
    keep_ids = {spec.id for spec in specs if spec.id is not None}
    to_delete = sorted(set(existing) - keep_ids)

    # every deletion is checked before any of them runs
    blocked = leave_counts(db, to_delete)
    if blocked:
        lesson_id = min(blocked)
        raise DependencyConflict(
            f"lesson {lesson_id} ({existing[lesson_id].title}) has leave records and cannot be deleted"
        )

    for lesson_id in to_delete:
        db.delete(existing[lesson_id])
        diff.deleted.append(lesson_id)

    for spec in specs:
        if not is_valid_range(spec.start_time, spec.end_time):
            raise InvalidTimeRange(f"lesson {spec.title}: end time must be after start time")

        if spec.id is not None:
            lesson = existing.get(spec.id)
            if lesson is None:
                raise InvalidReference(f"lesson {spec.id} does not belong to course {course.id}")
            lesson.title = spec.title
            lesson.subtitle = spec.subtitle
            lesson.start_time = spec.start_time
            lesson.end_time = spec.end_time
            lesson.status = spec.status
            diff.updated.append(lesson.id)
        else:
            lesson = models.Lesson(
                course_id=course.id,
                title=spec.title,
                subtitle=spec.subtitle,
                start_time=spec.start_time,
                end_time=spec.end_time,
                status=spec.status,
            )
            db.add(lesson)
            diff.created.append(lesson)

    db.flush()
    return diff


def _apply_course_fields(course: models.Course, data: schemas.CourseIn) -> None:
    for name in COURSE_FIELDS:
        setattr(course, name, getattr(data, name))
    if data.status is not None:
        course.status = data.status


def _run_in_transaction(db: Session, action: str, fn):
    try:
        result = fn()
        db.commit()
        return result
    except ArtSchoolError as e:
        db.rollback()
        logger.warning("%s rejected: %s", action, e.message)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("%s failed in the store", action)
        raise PersistenceError(f"{action} failed") from e
    except Exception:
        db.rollback()
        raise


def update_course(db: Session, course_id: int, payload) -> models.Course:
    """Update a course and, when ``lessons`` is given, reconcile its schedule.

    All-or-nothing: validation and the teacher lookup happen before any
    write; leave conflicts and bad time ranges roll back every change.
    """
    data = schemas.validate_payload(schemas.CourseIn, payload)

    course = db.query(models.Course).filter(models.Course.id == course_id).first()
    if not course:
        raise NotFound(f"course {course_id} not found")
    resolve_teacher(db, data.teacher_id)

    def _update():
        _apply_course_fields(course, data)
        db.flush()
        if data.lessons is None:
            return LessonDiff()
        return sync_lessons(db, course, data.lessons)

    diff = _run_in_transaction(db, f"update of course {course_id}", _update)
    db.refresh(course)
    logger.info(
        "Course %s updated: %d lessons deleted, %d updated, %d created",
        course.id, len(diff.deleted), len(diff.updated), len(diff.created),
    )
    return course


def create_course(db: Session, payload) -> models.Course:
    """Create a course together with its initial lessons in one transaction."""
    data = schemas.validate_payload(schemas.CourseIn, payload)
    resolve_teacher(db, data.teacher_id)

    course = models.Course(status=CourseStatus.DRAFT)

    def _create():
        _apply_course_fields(course, data)
        db.add(course)
        db.flush()
        return sync_lessons(db, course, data.lessons or [])

    diff = _run_in_transaction(db, "course creation", _create)
    db.refresh(course)
    logger.info("Course %s created with %d lessons", course.id, len(diff.created))
    return course


def delete_course(db: Session, course_id: int) -> None:
    """Delete a course; its lessons, their leave records and its orders go with it."""
    course = db.query(models.Course).filter(models.Course.id == course_id).first()
    if not course:
        raise NotFound(f"course {course_id} not found")

    _run_in_transaction(db, f"deletion of course {course_id}", lambda: db.delete(course))
    logger.info("Course %s deleted", course_id)
