"""Answers "what is this user to this course?".

Each check is gated on the user's role first: only professors can be the
professor of a course, only TAs can be assistants, only students can be
enrolled. The gate is applied even when a join row says otherwise.

Checks never raise. A datastore failure is logged and treated as "no
relationship", so every authorization decision built on top fails closed.
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms.models.course import Course, course_assistants, user_courses
from lms.models.user import Role, User

logger = logging.getLogger(__name__)


class RelationshipResolver:
    def __init__(self, db: Session) -> None:
        self.db = db

    def is_professor_of(self, user: User | None, course_id: int) -> bool:
        if user is None or user.role != Role.PROFESSOR:
            return False
        try:
            course = self.db.query(Course.id).filter(
                Course.id == course_id,
                Course.professor_id == user.id,
            ).first()
        except SQLAlchemyError:
            logger.exception("Professor lookup failed for user %s on course %s", user.id, course_id)
            return False
        return course is not None

    def is_ta_of(self, user: User | None, course_id: int) -> bool:
        if user is None or user.role != Role.TA:
            return False
        return self._has_membership(course_assistants, user, course_id)

    def is_enrolled_in(self, user: User | None, course_id: int) -> bool:
        if user is None or user.role != Role.STUDENT:
            return False
        return self._has_membership(user_courses, user, course_id)

    def is_course_staff(self, user: User | None, course_id: int) -> bool:
        return self.is_professor_of(user, course_id) or self.is_ta_of(user, course_id)

    def has_course_access(self, user: User | None, course: Course) -> bool:
        return (
            self.is_course_staff(user, course.id)
            or self.is_enrolled_in(user, course.id)
            or course.is_visible_to_public()
        )

    def _has_membership(self, table, user: User, course_id: int) -> bool:
        try:
            count = self.db.query(func.count()).select_from(table).filter(
                table.c.course_id == course_id,
                table.c.user_id == user.id,
            ).scalar()
        except SQLAlchemyError:
            logger.exception("Membership lookup in %s failed for user %s on course %s", table.name, user.id, course_id)
            return False
        return bool(count)
