"""Models for the content hanging off a course."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text

from lms.database import Base


class Material(Base):
    """Reading material, slides, videos or links attached to a course."""
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    file_type = Column(String, default="link")  # pdf, video, link, ...
    file_path = Column(String, default="")
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    due_date = Column(DateTime, nullable=False)
    points_value = Column(Float, default=0)
    submission_type = Column(String, default="text")  # text, file, quiz
    allow_late = Column(Boolean, default=False)
    late_penalty = Column(Float, default=0)  # percent
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, default="")
    file_path = Column(String, default="")
    submitted_at = Column(DateTime, nullable=False)
    is_late = Column(Boolean, default=False)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, default="")
    graded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    graded_at = Column(DateTime, nullable=True)


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    due_date = Column(DateTime, nullable=False)
    time_limit = Column(Integer, default=60)  # minutes
    attempts = Column(Integer, default=1)
    points_value = Column(Float, default=0)
    visible_from = Column(Date, nullable=True)
    visible_to = Column(Date, nullable=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    content = Column(Text, default="")
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    publisher_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.now)
