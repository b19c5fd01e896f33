# backend/artschool/routers/teachers.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud, schemas
from ..security import get_principal, boss_only

router = APIRouter(prefix="/teachers", tags=["Teachers"])


@router.get("", dependencies=[Depends(get_principal)])
def list_teachers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    items, total, pages = crud.list_teachers(db, page, limit, search)
    return {
        "success": True,
        "data": [t.model_dump() for t in items],
        "total": total,
        "page": page,
        "total_pages": pages,
    }


@router.post("", status_code=201, dependencies=[Depends(boss_only)])
def create_teacher(payload: schemas.TeacherIn, db: Session = Depends(get_db)):
    user = crud.create_teacher(db, payload)
    return {"success": True, "data": crud.teacher_out(user).model_dump()}


@router.get("/{teacher_id}", dependencies=[Depends(get_principal)])
def get_teacher(teacher_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.teacher_out(crud.get_teacher(db, teacher_id)).model_dump()}


@router.put("/{teacher_id}", dependencies=[Depends(boss_only)])
def update_teacher(teacher_id: int, payload: schemas.TeacherIn, db: Session = Depends(get_db)):
    user = crud.update_teacher(db, teacher_id, payload)
    return {"success": True, "message": "teacher updated", "data": crud.teacher_out(user).model_dump()}


@router.delete("/{teacher_id}", dependencies=[Depends(boss_only)])
def delete_teacher(teacher_id: int, db: Session = Depends(get_db)):
    crud.delete_teacher(db, teacher_id)
    return {"success": True, "message": "teacher deleted", "id": teacher_id}
