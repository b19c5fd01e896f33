# backend/artschool/routers/dashboard.py
import io
from datetime import datetime

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..db import get_db
from .. import crud, models
from ..date_utils import utcnow
from ..enums import CourseStatus, OrderStatus, Role, UserStatus, label
from ..security import get_principal, boss_only

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def yuan(cents: int) -> float:
    """Minor units to a display amount."""
    return round((cents or 0) / 100, 2)


def _month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)


@router.get("/stats", dependencies=[Depends(get_principal)])
def dashboard_stats(db: Session = Depends(get_db)):
    total_students = db.query(models.User).filter(models.User.role == Role.STUDENT).count()
    open_courses = db.query(models.Course).filter(models.Course.status == CourseStatus.OPEN).count()
    total_orders = db.query(models.Order).count()
    active_teachers = (
        db.query(models.User)
        .filter(models.User.role == Role.TEACHER, models.User.status == UserStatus.ACTIVE)
        .count()
    )
    monthly_revenue = (
        db.query(func.coalesce(func.sum(models.Order.amount), 0))
        .filter(
            models.Order.status == OrderStatus.PAID,
            models.Order.pay_time >= _month_start(utcnow()),
        )
        .scalar()
    )
    categories = (
        db.query(models.Course.category, func.count(models.Course.id))
        .filter(models.Course.status == CourseStatus.OPEN)
        .group_by(models.Course.category)
        .all()
    )
    recent = (
        db.query(models.Order)
        .options(joinedload(models.Order.student), joinedload(models.Order.course))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .limit(5)
        .all()
    )

    return {
        "success": True,
        "data": {
            "total_students": total_students,
            "open_courses": open_courses,
            "total_orders": total_orders,
            "active_teachers": active_teachers,
            "monthly_revenue": int(monthly_revenue or 0),
            "course_categories": [
                {"name": category.name, "label": label(category), "count": count}
                for category, count in categories
            ],
            "recent_orders": [crud.order_out(o).model_dump() for o in recent],
        },
    }


# =========================================================
# EXPORT ORDERS
# =========================================================
@router.get("/orders.xlsx", dependencies=[Depends(boss_only)])
def export_orders_xlsx(
    status: str = Query("all"),   # all | paid | unpaid
    db: Session = Depends(get_db),
):
    q = (
        db.query(models.Order)
        .options(joinedload(models.Order.student), joinedload(models.Order.course))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
    )
    if status == "paid":
        q = q.filter(models.Order.status == OrderStatus.PAID)
    elif status == "unpaid":
        q = q.filter(models.Order.status == OrderStatus.UNPAID)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Orders"

    header = ["Order No", "Student", "Phone", "Course", "Amount", "Status", "Paid At"]
    ws.append(header)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for order in q.all():
        ws.append([
            order.order_no or "",
            order.student.name,
            order.student.phone,
            order.course.title,
            yuan(order.amount),
            "Paid" if order.status == OrderStatus.PAID else "Unpaid",
            order.pay_time.strftime("%Y-%m-%d %H:%M") if order.pay_time else "",
        ])

    for idx, width in enumerate((18, 12, 14, 24, 10, 8, 18), start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    stream = io.BytesIO()
    wb.save(stream)
    stream.seek(0)

    filename = "orders_all.xlsx" if status == "all" else f"orders_{status}.xlsx"
    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
