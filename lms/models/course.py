"""Course model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import relationship

from lms.database import Base


class CourseStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


course_assistants = Table(
    "course_assistants",
    Base.metadata,
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

user_courses = Table(
    "user_courses",
    Base.metadata,
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Course(Base):
    """A course owned by exactly one professor."""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    term = Column(String, nullable=False)  # e.g. "Fall 2023"
    syllabus = Column(Text, default="")
    status = Column(
        Enum(
            CourseStatus,
            name="course_status",
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=CourseStatus.DRAFT,
    )
    is_public = Column(Boolean, nullable=False, default=False)
    professor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)

    professor = relationship("User", foreign_keys=[professor_id])
    assistants = relationship("User", secondary=course_assistants)
    students = relationship("User", secondary=user_courses)

    def is_visible_to_public(self) -> bool:
        return bool(self.is_public) and self.status == CourseStatus.PUBLISHED
