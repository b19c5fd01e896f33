# backend/artschool/routers/leaves.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import crud
from ..security import get_principal

router = APIRouter(prefix="/leaves", tags=["Leaves"])


@router.get("", dependencies=[Depends(get_principal)])
def list_leaves(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    items, total, pages = crud.list_leaves(db, page, limit, search)
    return {
        "success": True,
        "data": [l.model_dump() for l in items],
        "total": total,
        "page": page,
        "total_pages": pages,
    }
