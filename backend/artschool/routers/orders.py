# backend/artschool/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud, schemas
from ..security import get_principal, staff_only, boss_only
from ..services import enrollment

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("", dependencies=[Depends(get_principal)])
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    items, total, pages = crud.list_orders(db, page, limit, search)
    return {
        "success": True,
        "data": [o.model_dump() for o in items],
        "total": total,
        "page": page,
        "total_pages": pages,
    }


@router.get("/{order_id}", dependencies=[Depends(get_principal)])
def get_order(order_id: int, db: Session = Depends(get_db)):
    order = enrollment.get_order(db, order_id)
    return {"success": True, "data": crud.order_out(order).model_dump()}


@router.post("", status_code=201, dependencies=[Depends(staff_only)])
def create_order(payload: schemas.OrderIn, db: Session = Depends(get_db)):
    order = enrollment.create_order(db, payload)
    return {
        "success": True,
        "message": "order created",
        "data": {
            "id": order.id,
            "order_no": order.order_no,
            "student_name": order.student.name,
            "course_title": order.course.title,
            "amount": order.amount,
        },
    }


@router.put("/{order_id}", dependencies=[Depends(staff_only)])
def update_order(order_id: int, payload: schemas.OrderUpdate, db: Session = Depends(get_db)):
    order = enrollment.update_order(db, order_id, payload)
    return {"success": True, "message": "order updated", "data": {"id": order.id}}


@router.delete("/{order_id}", dependencies=[Depends(boss_only)])
def delete_order(order_id: int, db: Session = Depends(get_db)):
    enrollment.delete_order(db, order_id)
    return {"success": True, "message": "order deleted", "id": order_id}
