# backend/artschool/routers/options.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models
from ..enums import CourseStatus, Role, label
from ..security import get_principal

router = APIRouter(prefix="/options", tags=["Options"])


@router.get("", dependencies=[Depends(get_principal)])
def get_options(type: str = Query(...), db: Session = Depends(get_db)):
    """Dropdown data for the forms: teachers, students or open courses."""
    if type in ("teachers", "students"):
        role = Role.TEACHER if type == "teachers" else Role.STUDENT
        rows = (
            db.query(models.User.id, models.User.name)
            .filter(models.User.role == role)
            .order_by(models.User.name)
            .all()
        )
        return {"success": True, "data": [{"id": r.id, "name": r.name} for r in rows]}

    if type == "courses":
        courses = (
            db.query(models.Course)
            .filter(models.Course.status == CourseStatus.OPEN)
            .order_by(models.Course.year.desc(), models.Course.term, models.Course.title)
            .all()
        )
        return {
            "success": True,
            "data": [
                {"id": c.id, "name": f"{c.title} ({c.year} {label(c.term)})", "price": c.price}
                for c in courses
            ],
        }

    raise HTTPException(status_code=400, detail="unknown option type")
