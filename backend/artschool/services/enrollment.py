# backend/artschool/services/enrollment.py
"""
Enrollment orders: one row links a student to a course with the amount paid.

A student may hold at most one paid order per course. That rule is checked
when an order is created, not when it is edited.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..date_utils import utcnow
from ..enums import OrderStatus, Role
from ..errors import DuplicateEnrollment, InvalidReference, NotFound, PersistenceError

logger = logging.getLogger(__name__)


def format_order_no(order_id: int, when: datetime) -> str:
    """OD + yyyymmdd + id padded to three digits, e.g. OD20240301007."""
    return f"OD{when:%Y%m%d}{order_id:03d}"


def _resolve_student(db: Session, student_id: int) -> models.User:
    student = (
        db.query(models.User)
        .filter(models.User.id == student_id, models.User.role == Role.STUDENT)
        .first()
    )
    if not student:
        raise InvalidReference(f"student {student_id} does not exist")
    return student


def _resolve_course(db: Session, course_id: int) -> models.Course:
    course = db.query(models.Course).filter(models.Course.id == course_id).first()
    if not course:
        raise InvalidReference(f"course {course_id} does not exist")
    return course


def get_order(db: Session, order_id: int) -> models.Order:
    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise NotFound(f"order {order_id} not found")
    return order


def has_paid_order(db: Session, student_id: int, course_id: int) -> bool:
    return (
        db.query(models.Order.id)
        .filter(
            models.Order.student_id == student_id,
            models.Order.course_id == course_id,
            models.Order.status == OrderStatus.PAID,
        )
        .first()
        is not None
    )


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("%s failed in the store", action)
        raise PersistenceError(f"{action} failed") from e


def create_order(db: Session, payload, now: Optional[datetime] = None) -> models.Order:
    """Enroll a student in a course.

    ``amount`` defaults to the course price and ``pay_time`` to ``now``.
    Raises DuplicateEnrollment when the pair already has a paid order.
    """
    data = schemas.validate_payload(schemas.OrderIn, payload)
    now = now or utcnow()

    student = _resolve_student(db, data.student_id)
    course = _resolve_course(db, data.course_id)

    if has_paid_order(db, student.id, course.id):
        logger.warning("Duplicate enrollment: student=%s course=%s", student.id, course.id)
        raise DuplicateEnrollment(f"{student.name} is already enrolled in {course.title}")

    order = models.Order(
        student_id=student.id,
        course_id=course.id,
        amount=data.amount if data.amount is not None else course.price,
        status=data.status,
        pay_time=data.pay_time or now,
        created_at=now,
    )
    try:
        db.add(order)
        db.flush()  # ensure order.id is available
        order.order_no = format_order_no(order.id, now)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("order creation failed in the store")
        raise PersistenceError("order creation failed") from e
    _commit(db, "order creation")
    db.refresh(order)

    logger.info(
        "Order %s created: student=%s course=%s amount=%s",
        order.order_no, student.id, course.id, order.amount,
    )
    return order


def update_order(db: Session, order_id: int, payload) -> models.Order:
    """Overwrite an order's references, amount, status and pay time."""
    data = schemas.validate_payload(schemas.OrderUpdate, payload)
    order = get_order(db, order_id)

    student = _resolve_student(db, data.student_id)
    course = _resolve_course(db, data.course_id)

    order.student_id = student.id
    order.course_id = course.id
    order.amount = data.amount
    order.status = data.status
    order.pay_time = data.pay_time
    _commit(db, f"update of order {order_id}")
    db.refresh(order)

    logger.info("Order %s updated", order.id)
    return order


def delete_order(db: Session, order_id: int) -> None:
    order = get_order(db, order_id)
    db.delete(order)
    _commit(db, f"deletion of order {order_id}")
    logger.info("Order %s deleted", order_id)
