# backend/artschool/crud.py
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, Query, joinedload, selectinload

from . import models, schemas
from .config import settings
from .enums import GuardianRole, Role
from .errors import DependencyConflict, NotFound, PersistenceError, ValidationError
from .security import hash_password
from .services.reconcile import leave_counts

logger = logging.getLogger(__name__)


# ---------- HELPERS ----------
def paginate(query: Query, page: int, limit: int) -> Tuple[list, int, int]:
    """Returns (items, total, total_pages) for a 1-based page."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total, math.ceil(total / limit) if total else 0


def _like(term: str) -> str:
    return f"%{term.strip()}%"


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("%s failed in the store", action)
        raise PersistenceError(f"{action} failed") from e


def ensure_phone_free(db: Session, phone: str, exclude_user_id: Optional[int] = None) -> None:
    q = db.query(models.User.id).filter(models.User.phone == phone)
    if exclude_user_id is not None:
        q = q.filter(models.User.id != exclude_user_id)
    if q.first() is not None:
        raise ValidationError(f"phone {phone} is already used by another user")


def ensure_email_free(db: Session, email: Optional[str], exclude_user_id: Optional[int] = None) -> None:
    if not email:
        return
    q = db.query(models.User.id).filter(models.User.email == email)
    if exclude_user_id is not None:
        q = q.filter(models.User.id != exclude_user_id)
    if q.first() is not None:
        raise ValidationError(f"email {email} is already used by another user")


# ---------- COURSES ----------
def course_out(course: models.Course) -> schemas.CourseOut:
    return schemas.CourseOut(
        id=course.id,
        title=course.title,
        subtitle=course.subtitle,
        category=course.category,
        year=course.year,
        term=course.term,
        price=course.price,
        teacher_id=course.teacher_id,
        teacher_name=course.teacher.name if course.teacher else None,
        address=course.address,
        banner=course.banner,
        status=course.status,
        lesson_count=len(course.lessons),
        enrolled_students=len(course.orders),
        created_at=course.created_at,
        updated_at=course.updated_at,
    )


def list_courses(db: Session, page: int = 1, limit: int = 10, search: str = ""):
    q = (
        db.query(models.Course)
        .join(models.User, models.Course.teacher_id == models.User.id)
        .options(
            joinedload(models.Course.teacher),
            selectinload(models.Course.lessons),
            selectinload(models.Course.orders),
        )
    )
    if search:
        like = _like(search)
        q = q.filter(or_(models.Course.title.ilike(like), models.User.name.ilike(like)))
    q = q.order_by(models.Course.updated_at.desc(), models.Course.id.desc())
    items, total, pages = paginate(q, page, limit)
    return [course_out(c) for c in items], total, pages


def get_course(db: Session, course_id: int) -> models.Course:
    course = db.query(models.Course).filter(models.Course.id == course_id).first()
    if not course:
        raise NotFound(f"course {course_id} not found")
    return course


def get_course_detail(db: Session, course_id: int) -> schemas.CourseDetail:
    course = get_course(db, course_id)
    counts = leave_counts(db, [l.id for l in course.lessons])
    lessons = [
        schemas.LessonOut(
            id=l.id,
            course_id=l.course_id,
            title=l.title,
            subtitle=l.subtitle,
            start_time=l.start_time,
            end_time=l.end_time,
            status=l.status,
            leave_count=counts.get(l.id, 0),
        )
        for l in course.lessons
    ]
    return schemas.CourseDetail(**course_out(course).model_dump(), lessons=lessons)


# ---------- ORDERS ----------
def order_out(order: models.Order) -> schemas.OrderOut:
    return schemas.OrderOut(
        id=order.id,
        order_no=order.order_no,
        student_id=order.student_id,
        student_name=order.student.name if order.student else None,
        course_id=order.course_id,
        course_title=order.course.title if order.course else None,
        amount=order.amount,
        status=order.status,
        pay_time=order.pay_time,
        created_at=order.created_at,
    )


def list_orders(db: Session, page: int = 1, limit: int = 10, search: str = ""):
    q = (
        db.query(models.Order)
        .join(models.User, models.Order.student_id == models.User.id)
        .join(models.Course, models.Order.course_id == models.Course.id)
        .options(joinedload(models.Order.student), joinedload(models.Order.course))
    )
    if search:
        like = _like(search)
        q = q.filter(or_(
            models.Order.order_no.ilike(like),
            models.User.name.ilike(like),
            models.Course.title.ilike(like),
        ))
    q = q.order_by(models.Order.created_at.desc(), models.Order.id.desc())
    items, total, pages = paginate(q, page, limit)
    return [order_out(o) for o in items], total, pages


# ---------- STUDENTS ----------
def student_out(user: models.User) -> schemas.StudentOut:
    profile = user.student
    out = schemas.StudentOut(
        id=user.id,
        name=user.name,
        phone=user.phone,
        email=user.email,
        gender=user.gender,
        status=user.status,
        enrolled_courses=len(user.orders),
        created_at=user.created_at,
    )
    if profile:
        out.birth = profile.birth
        out.photo = profile.photo
        out.parent_name1 = profile.parent_name1
        out.parent_phone1 = profile.parent_phone1
        out.parent_role1 = profile.parent_role1
        out.parent_name2 = profile.parent_name2
        out.parent_phone2 = profile.parent_phone2
        out.parent_role2 = profile.parent_role2
    return out


def _users_with_role(db: Session, role: Role, search: str) -> Query:
    q = db.query(models.User).filter(models.User.role == role)
    if search:
        like = _like(search)
        q = q.filter(or_(
            models.User.name.ilike(like),
            models.User.phone.ilike(like),
            models.User.email.ilike(like),
        ))
    return q.order_by(models.User.created_at.desc(), models.User.id.desc())


def list_students(db: Session, page: int = 1, limit: int = 10, search: str = ""):
    q = _users_with_role(db, Role.STUDENT, search).options(
        joinedload(models.User.student), selectinload(models.User.orders)
    )
    items, total, pages = paginate(q, page, limit)
    return [student_out(u) for u in items], total, pages


def get_student(db: Session, user_id: int) -> models.User:
    user = (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.role == Role.STUDENT)
        .first()
    )
    if not user:
        raise NotFound(f"student {user_id} not found")
    return user


def _apply_student_profile(profile: models.StudentProfile, data: schemas.StudentIn) -> None:
    profile.birth = data.birth
    profile.photo = data.photo
    profile.parent_name1 = data.parent_name1
    profile.parent_phone1 = data.parent_phone1
    profile.parent_role1 = data.parent_role1
    profile.parent_name2 = data.parent_name2
    profile.parent_phone2 = data.parent_phone2
    profile.parent_role2 = data.parent_role2


def create_student(db: Session, payload) -> models.User:
    """Create a student user and its profile in one transaction."""
    data = schemas.validate_payload(schemas.StudentIn, payload)
    ensure_phone_free(db, data.phone)
    ensure_email_free(db, data.email)

    user = models.User(
        name=data.name,
        phone=data.phone,
        email=data.email,
        gender=data.gender,
        role=Role.STUDENT,
        password_hash=hash_password(data.password or settings.DEFAULT_STUDENT_PASSWORD),
    )
    user.student = models.StudentProfile(parent_role1=GuardianRole.MOTHER)
    _apply_student_profile(user.student, data)

    db.add(user)
    _commit(db, "student creation")
    db.refresh(user)
    logger.info("Student %s created", user.id)
    return user


def update_student(db: Session, user_id: int, payload) -> models.User:
    data = schemas.validate_payload(schemas.StudentIn, payload)
    user = get_student(db, user_id)
    ensure_phone_free(db, data.phone, exclude_user_id=user.id)
    ensure_email_free(db, data.email, exclude_user_id=user.id)

    user.name = data.name
    user.phone = data.phone
    user.email = data.email
    user.gender = data.gender
    if data.password:
        user.password_hash = hash_password(data.password)
    if user.student is None:
        user.student = models.StudentProfile(parent_role1=GuardianRole.MOTHER)
    _apply_student_profile(user.student, data)

    _commit(db, f"update of student {user_id}")
    db.refresh(user)
    logger.info("Student %s updated", user.id)
    return user


def delete_student(db: Session, user_id: int) -> None:
    """Removes the student with its profile, orders and leave records."""
    user = get_student(db, user_id)
    db.delete(user)
    _commit(db, f"deletion of student {user_id}")
    logger.info("Student %s deleted", user_id)


# ---------- TEACHERS ----------
def teacher_out(user: models.User) -> schemas.TeacherOut:
    return schemas.TeacherOut(
        id=user.id,
        name=user.name,
        phone=user.phone,
        email=user.email,
        gender=user.gender,
        status=user.status,
        job=user.teacher.job if user.teacher else None,
        course_count=len(user.courses),
        created_at=user.created_at,
    )


def list_teachers(db: Session, page: int = 1, limit: int = 10, search: str = ""):
    q = _users_with_role(db, Role.TEACHER, search).options(
        joinedload(models.User.teacher), selectinload(models.User.courses)
    )
    items, total, pages = paginate(q, page, limit)
    return [teacher_out(u) for u in items], total, pages


def get_teacher(db: Session, user_id: int) -> models.User:
    user = (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.role == Role.TEACHER)
        .first()
    )
    if not user:
        raise NotFound(f"teacher {user_id} not found")
    return user


def create_teacher(db: Session, payload) -> models.User:
    data = schemas.validate_payload(schemas.TeacherIn, payload)
    ensure_phone_free(db, data.phone)
    ensure_email_free(db, data.email)

    user = models.User(
        name=data.name,
        phone=data.phone,
        email=data.email,
        gender=data.gender,
        status=data.status,
        role=Role.TEACHER,
        password_hash=hash_password(data.password or settings.DEFAULT_STUDENT_PASSWORD),
    )
    user.teacher = models.TeacherProfile(job=data.job)

    db.add(user)
    _commit(db, "teacher creation")
    db.refresh(user)
    logger.info("Teacher %s created", user.id)
    return user


def update_teacher(db: Session, user_id: int, payload) -> models.User:
    data = schemas.validate_payload(schemas.TeacherIn, payload)
    user = get_teacher(db, user_id)
    ensure_phone_free(db, data.phone, exclude_user_id=user.id)
    ensure_email_free(db, data.email, exclude_user_id=user.id)

    user.name = data.name
    user.phone = data.phone
    user.email = data.email
    user.gender = data.gender
    user.status = data.status
    if data.password:
        user.password_hash = hash_password(data.password)
    if user.teacher is None:
        user.teacher = models.TeacherProfile(job=data.job)
    else:
        user.teacher.job = data.job

    _commit(db, f"update of teacher {user_id}")
    db.refresh(user)
    return user


def delete_teacher(db: Session, user_id: int) -> None:
    user = get_teacher(db, user_id)
    if user.courses:
        raise DependencyConflict(
            f"teacher {user_id} still teaches {len(user.courses)} course(s) and cannot be deleted"
        )
    db.delete(user)
    _commit(db, f"deletion of teacher {user_id}")
    logger.info("Teacher %s deleted", user_id)


# ---------- LEAVES ----------
def leave_out(leave: models.Leave) -> schemas.LeaveOut:
    lesson = leave.lesson
    course = lesson.course
    return schemas.LeaveOut(
        id=leave.id,
        student_id=leave.student_id,
        student_name=leave.student.name,
        student_phone=leave.student.phone,
        lesson_id=lesson.id,
        lesson_title=lesson.title,
        course_id=course.id,
        course_title=course.title,
        teacher_name=course.teacher.name if course.teacher else None,
        start_time=lesson.start_time,
        end_time=lesson.end_time,
        reason=leave.reason,
        created_at=leave.created_at,
    )


def list_leaves(db: Session, page: int = 1, limit: int = 10, search: str = "") -> Tuple[List[schemas.LeaveOut], int, int]:
    q = (
        db.query(models.Leave)
        .join(models.User, models.Leave.student_id == models.User.id)
        .join(models.Lesson, models.Leave.lesson_id == models.Lesson.id)
        .join(models.Course, models.Lesson.course_id == models.Course.id)
        .options(
            joinedload(models.Leave.student),
            joinedload(models.Leave.lesson).joinedload(models.Lesson.course).joinedload(models.Course.teacher),
        )
    )
    if search:
        like = _like(search)
        q = q.filter(or_(
            models.User.name.ilike(like),
            models.User.phone.ilike(like),
            models.Course.title.ilike(like),
            models.Leave.reason.ilike(like),
        ))
    q = q.order_by(models.Leave.created_at.desc(), models.Leave.id.desc())
    items, total, pages = paginate(q, page, limit)
    return [leave_out(l) for l in items], total, pages
