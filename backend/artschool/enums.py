# backend/artschool/enums.py
"""
Canonical enum codes for every enum-like field.

Values arrive from different call sites as codes (``2``, ``"2"``), names
(``"PAID"``, ``"paid"``) or display labels (``"已付款"``). ``coerce`` turns any
of those into the enum member; nothing past the validation layer should ever
see the raw value.
"""
from enum import IntEnum
from typing import Any, Dict, Type, TypeVar

E = TypeVar("E", bound=IntEnum)


class Role(IntEnum):
    BOSS = 1
    TEACHER = 2
    STUDENT = 3


class Gender(IntEnum):
    MALE = 1
    FEMALE = 2


class Job(IntEnum):
    TEACHER = 1
    ASSISTANT = 2


class GuardianRole(IntEnum):
    MOTHER = 1
    FATHER = 2
    GRANDMOTHER = 3
    GRANDFATHER = 4
    OTHER = 5


class CourseStatus(IntEnum):
    DRAFT = 1
    OPEN = 2
    COMPLETED = 3
    ARCHIVED = 4


class LessonStatus(IntEnum):
    PENDING = 1
    COMPLETED = 2


class CourseTerm(IntEnum):
    SPRING = 1
    SUMMER = 2
    AUTUMN = 3
    WINTER = 4


class OrderStatus(IntEnum):
    UNPAID = 1
    PAID = 2


class CourseCategory(IntEnum):
    DANCE = 1
    PAINTING = 2
    SPEECH = 3
    MUSIC = 4


class UserStatus(IntEnum):
    ACTIVE = 1
    INACTIVE = 2


LABELS: Dict[Type[IntEnum], Dict[IntEnum, str]] = {
    Role: {Role.BOSS: "管理员", Role.TEACHER: "教师", Role.STUDENT: "学生"},
    Gender: {Gender.MALE: "男", Gender.FEMALE: "女"},
    Job: {Job.TEACHER: "主课", Job.ASSISTANT: "助教"},
    GuardianRole: {
        GuardianRole.MOTHER: "妈妈",
        GuardianRole.FATHER: "爸爸",
        GuardianRole.GRANDMOTHER: "奶奶/外婆",
        GuardianRole.GRANDFATHER: "爷爷/外公",
        GuardianRole.OTHER: "其他监护人",
    },
    CourseStatus: {
        CourseStatus.DRAFT: "待上架",
        CourseStatus.OPEN: "开课中",
        CourseStatus.COMPLETED: "已结课",
        CourseStatus.ARCHIVED: "已归档",
    },
    LessonStatus: {LessonStatus.PENDING: "未开始", LessonStatus.COMPLETED: "已完成"},
    CourseTerm: {
        CourseTerm.SPRING: "春季",
        CourseTerm.SUMMER: "暑期",
        CourseTerm.AUTUMN: "秋季",
        CourseTerm.WINTER: "冬季",
    },
    OrderStatus: {OrderStatus.UNPAID: "待付款", OrderStatus.PAID: "已付款"},
    CourseCategory: {
        CourseCategory.DANCE: "舞蹈",
        CourseCategory.PAINTING: "绘画",
        CourseCategory.SPEECH: "口才",
        CourseCategory.MUSIC: "音乐",
    },
    UserStatus: {UserStatus.ACTIVE: "在职", UserStatus.INACTIVE: "离职"},
}

# Older names still sent by some forms
ALIASES: Dict[Type[IntEnum], Dict[str, IntEnum]] = {
    OrderStatus: {
        "REGISTERED": OrderStatus.PAID,
        "CANCELLED": OrderStatus.UNPAID,
        "PENDING": OrderStatus.UNPAID,
    },
    CourseStatus: {"PUBLISHED": CourseStatus.OPEN},
    GuardianRole: {"GRAND_MOTHER": GuardianRole.GRANDMOTHER, "GRAND_FATHER": GuardianRole.GRANDFATHER},
}


def coerce(enum_cls: Type[E], value: Any) -> E:
    """Normalize a code, name or label into a member of ``enum_cls``.

    Raises ValueError for anything that does not map to a member.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid {enum_cls.__name__}: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError:
            raise ValueError(f"invalid {enum_cls.__name__}: {value!r}") from None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return coerce(enum_cls, int(text))
        key = text.upper().replace(" ", "_")
        if key in enum_cls.__members__:
            return enum_cls[key]
        alias = ALIASES.get(enum_cls, {}).get(key)
        if alias is not None:
            return alias
        for member, label in LABELS.get(enum_cls, {}).items():
            if label == text:
                return member
    raise ValueError(f"invalid {enum_cls.__name__}: {value!r}")


def label(member: IntEnum) -> str:
    return LABELS.get(type(member), {}).get(member, member.name)
