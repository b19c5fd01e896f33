# backend/artschool/models.py
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .db import Base
from .date_utils import utcnow
from .enums import (
    Role, Gender, Job, GuardianRole, CourseStatus, LessonStatus,
    CourseTerm, OrderStatus, CourseCategory, UserStatus,
)


class IntEnumType(TypeDecorator):
    """Stores an IntEnum as its integer code and loads it back as the member."""

    impl = Integer
    cache_ok = True

    def __init__(self, enum_cls, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(self.enum_cls(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    email = Column(String(120), nullable=True, unique=True)
    gender = Column(IntEnumType(Gender), nullable=True)
    role = Column(IntEnumType(Role), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    status = Column(IntEnumType(UserStatus), nullable=False, default=UserStatus.ACTIVE)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship(
        "StudentProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    teacher = relationship(
        "TeacherProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    courses = relationship("Course", back_populates="teacher")
    orders = relationship("Order", back_populates="student", cascade="all, delete-orphan")
    leaves = relationship("Leave", back_populates="student", cascade="all, delete-orphan")


class StudentProfile(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    birth = Column(Date, nullable=True)
    photo = Column(String(255), nullable=True)

    # first guardian is mandatory, second optional
    parent_name1 = Column(String(50), nullable=False)
    parent_phone1 = Column(String(20), nullable=False)
    parent_role1 = Column(IntEnumType(GuardianRole), nullable=False)
    parent_name2 = Column(String(50), nullable=True)
    parent_phone2 = Column(String(20), nullable=True)
    parent_role2 = Column(IntEnumType(GuardianRole), nullable=True)

    user = relationship("User", back_populates="student")


class TeacherProfile(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    job = Column(IntEnumType(Job), nullable=False, default=Job.TEACHER)

    user = relationship("User", back_populates="teacher")


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(50), nullable=False)
    subtitle = Column(String(200), nullable=True)
    category = Column(IntEnumType(CourseCategory), nullable=False)
    year = Column(Integer, nullable=False)
    term = Column(IntEnumType(CourseTerm), nullable=False)
    price = Column(Integer, nullable=False, default=0)  # cents
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    address = Column(String(100), nullable=True)
    banner = Column(String(255), nullable=True)
    status = Column(IntEnumType(CourseStatus), nullable=False, default=CourseStatus.DRAFT)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    teacher = relationship("User", back_populates="courses")
    lessons = relationship(
        "Lesson", back_populates="course", cascade="all, delete-orphan",
        order_by="Lesson.start_time",
    )
    orders = relationship("Order", back_populates="course", cascade="all, delete-orphan")


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    subtitle = Column(String(200), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(IntEnumType(LessonStatus), nullable=False, default=LessonStatus.PENDING)

    course = relationship("Course", back_populates="lessons")
    leaves = relationship("Leave", back_populates="lesson", cascade="all, delete-orphan")


class Leave(Base):
    __tablename__ = "leaves"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    student = relationship("User", back_populates="leaves")
    lesson = relationship("Lesson", back_populates="leaves")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_no = Column(String(32), nullable=True, unique=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # cents
    status = Column(IntEnumType(OrderStatus), nullable=False, default=OrderStatus.PAID)
    pay_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    student = relationship("User", back_populates="orders")
    course = relationship("Course", back_populates="orders")
