# backend/artschool/routers/courses.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud, schemas
from ..security import get_principal, staff_only, boss_only
from ..services import reconcile

router = APIRouter(prefix="/courses", tags=["Courses"])


@router.get("", dependencies=[Depends(get_principal)])
def list_courses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    items, total, pages = crud.list_courses(db, page, limit, search)
    return {
        "success": True,
        "data": [c.model_dump() for c in items],
        "total": total,
        "page": page,
        "total_pages": pages,
    }


@router.post("", status_code=201, dependencies=[Depends(staff_only)])
def create_course(payload: schemas.CourseIn, db: Session = Depends(get_db)):
    course = reconcile.create_course(db, payload)
    return {"success": True, "data": {"id": course.id, "title": course.title}}


@router.get("/{course_id}", dependencies=[Depends(get_principal)])
def get_course(course_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.get_course_detail(db, course_id).model_dump()}


@router.put("/{course_id}", dependencies=[Depends(staff_only)])
def update_course(course_id: int, payload: schemas.CourseIn, db: Session = Depends(get_db)):
    course = reconcile.update_course(db, course_id, payload)
    return {
        "success": True,
        "message": "course updated",
        "data": {"id": course.id, "title": course.title},
    }


@router.delete("/{course_id}", dependencies=[Depends(boss_only)])
def delete_course(course_id: int, db: Session = Depends(get_db)):
    reconcile.delete_course(db, course_id)
    return {"success": True, "message": "course deleted", "id": course_id}
