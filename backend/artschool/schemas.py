# backend/artschool/schemas.py
import re
from datetime import date, datetime
from functools import partial
from typing import Annotated, List, Optional

from pydantic import (
    BaseModel, ConfigDict, Field, BeforeValidator, PlainSerializer,
    field_validator, model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from . import enums
from .date_utils import parse_iso_date, to_naive_utc, age_on
from .errors import ValidationError
from .enums import (
    Role, Gender, Job, GuardianRole, CourseStatus, LessonStatus,
    CourseTerm, OrderStatus, CourseCategory, UserStatus,
)

PHONE_RE = re.compile(r"^1[3-9]\d{9}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# money limits, in cents (100000 yuan)
MAX_AMOUNT = 10_000_000


def EnumField(enum_cls):
    """Accepts a code, name or label on input; serializes as the member name."""
    return Annotated[
        enum_cls,
        BeforeValidator(partial(enums.coerce, enum_cls)),
        PlainSerializer(lambda m: m.name, return_type=str),
    ]


def _blank_to_none(v):
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


def _check_phone(v: Optional[str], label: str = "phone") -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not PHONE_RE.match(v):
        raise ValueError(f"invalid {label} format")
    return v


class InModel(BaseModel):
    """Request bodies accept both snake_case and the camelCase the web client sends."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class OutModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --------------------------------------------
# Lesson Schema
# --------------------------------------------
class LessonIn(InModel):
    id: Optional[int] = Field(default=None, ge=1)
    title: str = Field(min_length=1, max_length=100)
    subtitle: Optional[str] = Field(default=None, max_length=200)
    start_time: datetime
    end_time: datetime
    status: EnumField(LessonStatus) = LessonStatus.PENDING

    @field_validator("start_time", "end_time")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)


class LessonOut(OutModel):
    id: int
    course_id: int
    title: str
    subtitle: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: EnumField(LessonStatus)
    leave_count: int = 0


# --------------------------------------------
# Course Schema
# --------------------------------------------
class CourseIn(InModel):
    title: str = Field(min_length=2, max_length=50)
    subtitle: Optional[str] = Field(default=None, max_length=200)
    category: EnumField(CourseCategory)
    year: int = Field(ge=2020, le=2030)
    term: EnumField(CourseTerm)
    price: int = Field(ge=0, le=MAX_AMOUNT)
    teacher_id: int = Field(ge=1)
    address: Optional[str] = Field(default=None, max_length=100)
    banner: Optional[str] = None
    status: Optional[EnumField(CourseStatus)] = None

    # None leaves the schedule untouched; [] removes every lesson
    lessons: Optional[List[LessonIn]] = None

    @model_validator(mode="after")
    def _unique_lesson_ids(self):
        if self.lessons:
            ids = [l.id for l in self.lessons if l.id is not None]
            if len(ids) != len(set(ids)):
                raise ValueError("lesson ids must be unique within one course")
        return self


class CourseOut(OutModel):
    id: int
    title: str
    subtitle: Optional[str] = None
    category: EnumField(CourseCategory)
    year: int
    term: EnumField(CourseTerm)
    price: int
    teacher_id: int
    teacher_name: Optional[str] = None
    address: Optional[str] = None
    banner: Optional[str] = None
    status: EnumField(CourseStatus)
    lesson_count: int = 0
    enrolled_students: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CourseDetail(CourseOut):
    lessons: List[LessonOut] = []


# --------------------------------------------
# Order Schema
# --------------------------------------------
def _pay_time(v):
    v = _blank_to_none(v)
    if isinstance(v, str) and len(v) == 10:
        d = parse_iso_date(v)
        return datetime(d.year, d.month, d.day)
    return v


class OrderIn(InModel):
    student_id: int = Field(ge=1)
    course_id: int = Field(ge=1)
    amount: Optional[int] = Field(default=None, ge=0, le=MAX_AMOUNT)
    status: EnumField(OrderStatus) = OrderStatus.PAID
    pay_time: Annotated[Optional[datetime], BeforeValidator(_pay_time)] = None

    @field_validator("pay_time")
    @classmethod
    def _naive_utc(cls, v):
        return to_naive_utc(v) if v is not None else v


class OrderUpdate(OrderIn):
    amount: int = Field(ge=0, le=MAX_AMOUNT)
    status: EnumField(OrderStatus)


class OrderOut(OutModel):
    id: int
    order_no: Optional[str] = None
    student_id: int
    student_name: Optional[str] = None
    course_id: int
    course_title: Optional[str] = None
    amount: int
    status: EnumField(OrderStatus)
    pay_time: Optional[datetime] = None
    created_at: Optional[datetime] = None


# --------------------------------------------
# Student / Teacher Schema
# --------------------------------------------
class StudentIn(InModel):
    name: str = Field(min_length=2, max_length=20)
    phone: str
    email: Annotated[Optional[str], BeforeValidator(_blank_to_none)] = None
    gender: Annotated[Optional[EnumField(Gender)], BeforeValidator(_blank_to_none)] = None
    birth: Annotated[Optional[date], BeforeValidator(_blank_to_none)] = None
    photo: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=64)

    parent_name1: str = Field(min_length=2, max_length=50)
    parent_phone1: str
    parent_role1: EnumField(GuardianRole)
    parent_name2: Annotated[Optional[str], BeforeValidator(_blank_to_none)] = None
    parent_phone2: Annotated[Optional[str], BeforeValidator(_blank_to_none)] = None
    parent_role2: Annotated[Optional[EnumField(GuardianRole)], BeforeValidator(_blank_to_none)] = None

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return _check_phone(v)

    @field_validator("parent_phone1", "parent_phone2")
    @classmethod
    def _parent_phone(cls, v):
        return _check_phone(v, "guardian phone")

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("invalid email format")
        return v

    @field_validator("birth")
    @classmethod
    def _age(cls, v):
        if v is not None and not 3 <= age_on(v) <= 25:
            raise ValueError("student age must be between 3 and 25")
        return v


class TeacherIn(InModel):
    name: str = Field(min_length=2, max_length=20)
    phone: str
    email: Annotated[Optional[str], BeforeValidator(_blank_to_none)] = None
    gender: EnumField(Gender)
    job: EnumField(Job) = Job.TEACHER
    status: EnumField(UserStatus) = UserStatus.ACTIVE
    password: Optional[str] = Field(default=None, min_length=6, max_length=64)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return _check_phone(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("invalid email format")
        return v


class StudentOut(OutModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    gender: Optional[EnumField(Gender)] = None
    status: EnumField(UserStatus)
    birth: Optional[date] = None
    photo: Optional[str] = None
    parent_name1: Optional[str] = None
    parent_phone1: Optional[str] = None
    parent_role1: Optional[EnumField(GuardianRole)] = None
    parent_name2: Optional[str] = None
    parent_phone2: Optional[str] = None
    parent_role2: Optional[EnumField(GuardianRole)] = None
    enrolled_courses: int = 0
    created_at: Optional[datetime] = None


class TeacherOut(OutModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    gender: Optional[EnumField(Gender)] = None
    status: EnumField(UserStatus)
    job: Optional[EnumField(Job)] = None
    course_count: int = 0
    created_at: Optional[datetime] = None


class LeaveOut(OutModel):
    id: int
    student_id: int
    student_name: str
    student_phone: str
    lesson_id: int
    lesson_title: str
    course_id: int
    course_title: str
    teacher_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


# --------------------------------------------
# Caller identity (set by the gateway)
# --------------------------------------------
class Principal(BaseModel):
    user_id: int
    role: EnumField(Role)


def describe_errors(exc) -> str:
    """Flatten pydantic or request validation errors into "field: reason; ..."."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        # "Value error, invalid phone format" -> "invalid phone format"
        msg = msg.split(", ", 1)[1] if msg.startswith("Value error, ") else msg
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def validate_payload(model_cls, data):
    """Run ``model_cls`` over raw data, raising the domain ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(describe_errors(e)) from e
