# backend/artschool/routers/students.py
import json

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import crud, schemas
from ..config import settings
from ..db import get_db, get_session_factory
from ..errors import SchemaError
from ..security import get_principal, staff_only, boss_only
from ..services import importer

router = APIRouter(prefix="/students", tags=["Students"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("", dependencies=[Depends(get_principal)])
def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    db: Session = Depends(get_db),
):
    items, total, pages = crud.list_students(db, page, limit, search)
    return {
        "success": True,
        "data": [s.model_dump() for s in items],
        "total": total,
        "page": page,
        "total_pages": pages,
    }


@router.get("/template")
def download_template():
    return Response(
        content=importer.build_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=student_template.xlsx"},
    )


def _event_stream(roster: importer.Roster, session_factory):
    db = session_factory()
    try:
        for event in importer.StudentImporter(db, roster).events():
            yield f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
    finally:
        db.close()


@router.post("/import", dependencies=[Depends(staff_only)])
async def import_students(
    file: UploadFile = File(...),
    session_factory=Depends(get_session_factory),
):
    if not (file.filename or "").lower().endswith(".xlsx"):
        raise SchemaError("please upload an .xlsx file")
    limit = settings.IMPORT_MAX_BYTES
    if file.size is not None and file.size > limit:
        raise SchemaError("file is too large")
    # never buffer more than one byte past the limit
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise SchemaError("file is too large")

    # a bad file fails here, before the stream starts
    roster = await run_in_threadpool(importer.parse_roster, content)

    return StreamingResponse(
        _event_stream(roster, session_factory),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("", status_code=201, dependencies=[Depends(staff_only)])
def create_student(payload: schemas.StudentIn, db: Session = Depends(get_db)):
    user = crud.create_student(db, payload)
    return {"success": True, "data": {"id": user.id, "name": user.name, "phone": user.phone}}


@router.get("/{student_id}", dependencies=[Depends(get_principal)])
def get_student(student_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.student_out(crud.get_student(db, student_id)).model_dump()}


@router.put("/{student_id}", dependencies=[Depends(staff_only)])
def update_student(student_id: int, payload: schemas.StudentIn, db: Session = Depends(get_db)):
    user = crud.update_student(db, student_id, payload)
    return {
        "success": True,
        "message": "student updated",
        "data": {"id": user.id, "name": user.name, "phone": user.phone},
    }


@router.delete("/{student_id}", dependencies=[Depends(boss_only)])
def delete_student(student_id: int, db: Session = Depends(get_db)):
    crud.delete_student(db, student_id)
    return {"success": True, "message": "student deleted", "student_id": student_id}
