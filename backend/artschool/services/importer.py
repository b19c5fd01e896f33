# backend/artschool/services/importer.py
"""
Bulk student import from an .xlsx roster.

Parsing is all-or-nothing (a file without the required columns is refused
outright); insertion is not. Each candidate row is inserted in its own
transaction, so one bad row never affects another, and every row ends up in
exactly one bucket of the report: imported, skipped or failed.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from zipfile import BadZipFile

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..enums import Gender, GuardianRole, Role, coerce
from ..errors import SchemaError
from ..schemas import EMAIL_RE, PHONE_RE
from ..security import hash_password

logger = logging.getLogger(__name__)

NAME_COLUMN = "name"
PHONE_COLUMN = "phone"
GENDER_COLUMN = "gender"
EMAIL_COLUMN = "email"
REQUIRED_COLUMNS = (NAME_COLUMN, PHONE_COLUMN)

TEMPLATE_ROWS = [
    ("Zhang San", "13800138001", int(Gender.MALE)),
    ("Li Si", "13800138002", int(Gender.FEMALE)),
]

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class RosterRow:
    row: int
    name: str
    phone: str
    gender: Optional[Gender] = None
    email: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "row": self.row,
            "name": self.name,
            "phone": self.phone,
            "gender": self.gender.name if self.gender is not None else None,
            "email": self.email,
        }


@dataclass
class RowIssue:
    row: int
    values: Dict[str, str]
    reason: str

    def to_dict(self) -> Dict:
        return {"row": self.row, "data": self.values, "reason": self.reason}


@dataclass
class Roster:
    candidates: List[RosterRow] = field(default_factory=list)
    skipped: List[RowIssue] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.candidates) + len(self.skipped)


@dataclass
class ImportReport:
    total: int
    imported: List[RosterRow] = field(default_factory=list)
    skipped: List[RowIssue] = field(default_factory=list)
    failed: List[RowIssue] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "imported": len(self.imported),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "errors": [f.reason for f in self.failed],
            "details": {
                "imported": [r.to_dict() for r in self.imported],
                "skipped": [s.to_dict() for s in self.skipped],
                "failed": [f.to_dict() for f in self.failed],
            },
        }


# ---------------------------------------------------------
# Parsing
# ---------------------------------------------------------
def _cell_text(value) -> str:
    if value is None:
        return ""
    # phones typed as numbers come back as 13800138001 or 13800138001.0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _read_rows(content: bytes) -> List[Tuple]:
    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise SchemaError("unreadable spreadsheet, please upload an .xlsx file") from e
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise SchemaError("spreadsheet has no worksheet")
        return list(ws.iter_rows(values_only=True))
    finally:
        wb.close()


def parse_roster(content: bytes) -> Roster:
    """Turn an uploaded workbook into candidate rows plus skipped rows.

    Raises SchemaError when the file cannot be read or the header misses a
    required column; nothing is written in that case.
    """
    rows = _read_rows(content)
    if not rows:
        raise SchemaError("spreadsheet is empty")

    header = [_cell_text(c) for c in rows[0]]
    missing = [col for col in REQUIRED_COLUMNS if col not in header]
    if missing:
        raise SchemaError(f"missing required columns: {', '.join(missing)}")

    name_idx = header.index(NAME_COLUMN)
    phone_idx = header.index(PHONE_COLUMN)
    gender_idx = header.index(GENDER_COLUMN) if GENDER_COLUMN in header else None
    email_idx = header.index(EMAIL_COLUMN) if EMAIL_COLUMN in header else None

    def pick(cells, idx):
        if idx is None or idx >= len(cells):
            return ""
        return cells[idx]

    roster = Roster()
    for row_no, raw in enumerate(rows[1:], start=2):
        cells = [_cell_text(c) for c in (raw or ())]
        if not any(cells):
            continue

        name = pick(cells, name_idx)
        phone = pick(cells, phone_idx)
        gender_text = pick(cells, gender_idx)
        email = pick(cells, email_idx)
        values = {NAME_COLUMN: name, PHONE_COLUMN: phone, GENDER_COLUMN: gender_text}
        if email_idx is not None:
            values[EMAIL_COLUMN] = email

        if not name:
            roster.skipped.append(RowIssue(row_no, values, "name empty"))
            continue
        if not phone:
            roster.skipped.append(RowIssue(row_no, values, "phone empty"))
            continue
        if not PHONE_RE.match(phone):
            roster.skipped.append(RowIssue(row_no, values, "invalid phone format"))
            continue

        gender = None
        if gender_text:
            try:
                gender = coerce(Gender, gender_text)
            except ValueError:
                roster.skipped.append(RowIssue(row_no, values, "invalid gender"))
                continue

        if email and not EMAIL_RE.match(email):
            roster.skipped.append(RowIssue(row_no, values, "invalid email format"))
            continue

        roster.candidates.append(RosterRow(row_no, name, phone, gender, email or None))

    if roster.row_count == 0:
        raise SchemaError("spreadsheet has no data rows")
    return roster


# ---------------------------------------------------------
# Insertion
# ---------------------------------------------------------
def default_guardian_name(student_name: str) -> str:
    return f"{student_name}'s mother"


def _phone_taken(db: Session, phone: str) -> bool:
    return db.query(models.User.id).filter(models.User.phone == phone).first() is not None


def _email_taken(db: Session, email: Optional[str]) -> bool:
    if not email:
        return False
    return db.query(models.User.id).filter(models.User.email == email).first() is not None


def _insert_student(db: Session, row: RosterRow, password_hash: str) -> Optional[str]:
    """Insert one student; returns the failure reason, or None on success."""
    if _phone_taken(db, row.phone):
        return "phone already exists"
    if _email_taken(db, row.email):
        return "email already exists"

    user = models.User(
        name=row.name,
        phone=row.phone,
        email=row.email,
        gender=row.gender,
        role=Role.STUDENT,
        password_hash=password_hash,
    )
    user.student = models.StudentProfile(
        parent_name1=default_guardian_name(row.name),
        parent_phone1=row.phone,
        parent_role1=GuardianRole.MOTHER,
    )
    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        # another writer took the phone (or email) between the lookup and the commit
        db.rollback()
        logger.warning("row %s: phone %s taken concurrently", row.row, row.phone)
        if not _phone_taken(db, row.phone) and _email_taken(db, row.email):
            return "email already exists"
        return "phone already exists"
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("row %s: insert failed", row.row)
        return f"database error: {e.__class__.__name__}"
    return None


class StudentImporter:
    """Runs the insertion phase for a parsed roster.

    ``run`` drives it to completion with an optional progress callback;
    ``events`` exposes the same work as a stream of event dicts.
    """

    def __init__(self, db: Session, roster: Roster, password: Optional[str] = None):
        self.db = db
        self.roster = roster
        self.password = password or settings.DEFAULT_STUDENT_PASSWORD
        self.report = ImportReport(total=len(roster.candidates), skipped=list(roster.skipped))

    def _steps(self) -> Iterator[Tuple[int, RosterRow]]:
        password_hash = hash_password(self.password)
        for processed, row in enumerate(self.roster.candidates, start=1):
            reason = _insert_student(self.db, row, password_hash)
            if reason is None:
                self.report.imported.append(row)
            else:
                self.report.failed.append(RowIssue(row.row, row.to_dict(), reason))
            yield processed, row

    def run(self, on_progress: Optional[ProgressCallback] = None) -> ImportReport:
        total = self.report.total
        for processed, row in self._steps():
            if on_progress:
                on_progress(processed, total, row.name)
        self._log_summary()
        return self.report

    def events(self) -> Iterator[Dict]:
        total = self.report.total
        yield {
            "type": "init",
            "total": self.roster.row_count,
            "valid": total,
            "skipped": len(self.roster.skipped),
        }
        try:
            for processed, row in self._steps():
                yield {
                    "type": "progress",
                    "processed": processed,
                    "total": total,
                    "progress": round(processed * 100 / total) if total else 100,
                    "current": row.name,
                }
        except Exception as e:
            logger.exception("student import aborted")
            yield {"type": "error", "error": str(e) or "import failed"}
            return
        self._log_summary()
        yield {"type": "complete", "success": True, **self.report.to_dict()}

    def _log_summary(self) -> None:
        logger.info(
            "Student import finished: %d imported, %d skipped, %d failed",
            len(self.report.imported), len(self.report.skipped), len(self.report.failed),
        )


def import_students(
    db: Session, roster: Roster, on_progress: Optional[ProgressCallback] = None
) -> ImportReport:
    return StudentImporter(db, roster).run(on_progress)


# ---------------------------------------------------------
# Template
# ---------------------------------------------------------
def build_template() -> bytes:
    """An .xlsx roster with the expected header and two example rows."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Students"

    ws.append([NAME_COLUMN, PHONE_COLUMN, GENDER_COLUMN])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in TEMPLATE_ROWS:
        ws.append(list(row))

    for idx, width in enumerate((15, 15, 10), start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    stream = io.BytesIO()
    wb.save(stream)
    return stream.getvalue()
