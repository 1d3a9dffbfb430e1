"""Route guards.

Each guard is a FastAPI dependency. Guards that need a course read it from the
``course_id`` query parameter. A failing guard raises, so the route handler
never runs.

    @router.post("/materials")
    def create_material(ctx: CourseContext = Depends(course_staff_only), ...):
        ...
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from lms.auth import jwt_handler
from lms.auth.jwt_handler import AccessTokenClaims
from lms.auth.relationships import RelationshipResolver
from lms.core import config
from lms.core.errors import AuthenticationError, AuthorizationError, ValidationError
from lms.database import get_db
from lms.models.user import Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseContext:
    claims: AccessTokenClaims
    user: User
    course_id: int


def get_current_claims(request: Request) -> AccessTokenClaims:
    token = jwt_handler.extract_token(request, config.ACCESS_TOKEN_COOKIE)
    if not token:
        raise AuthenticationError("Authentication required", redirect_to=config.SIGNIN_PATH)

    try:
        return jwt_handler.verify_access_token(token)
    except jwt_handler.InvalidTokenError as exc:
        # Expired or otherwise unusable: the refresh endpoint may still mint a new pair.
        raise AuthenticationError("Invalid or expired token", redirect_to=config.REFRESH_PATH) from exc


def get_current_user(
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    return load_user(db, claims)


def get_resolver(db: Session = Depends(get_db)) -> RelationshipResolver:
    return RelationshipResolver(db)


def parse_course_id(raw_course_id: str | None) -> int:
    if raw_course_id is None or raw_course_id == "":
        raise ValidationError("Course ID is required")
    if not (raw_course_id.isascii() and raw_course_id.isdigit()):
        raise ValidationError("Invalid Course ID")
    return int(raw_course_id)


def get_course_id(request: Request) -> int:
    return parse_course_id(request.query_params.get("course_id"))


_ROLE_LABELS = {
    Role.PROFESSOR: "Professors",
    Role.TA: "TAs",
    Role.STUDENT: "Students",
}


def require_role(role: Role):
    def guard(claims: AccessTokenClaims = Depends(get_current_claims)) -> AccessTokenClaims:
        if claims.role != role:
            logger.info("User %s with role %s denied %s-only route", claims.user_id, claims.role.value, role.value)
            raise AuthorizationError(f"Unauthorized: {_ROLE_LABELS[role]} only")
        return claims

    guard.__name__ = f"{role.value}_only"
    return guard


professor_only = require_role(Role.PROFESSOR)
ta_only = require_role(Role.TA)


def load_user(db: Session, claims: AccessTokenClaims) -> User:
    user = db.get(User, claims.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user


def course_staff_only(
    claims: AccessTokenClaims = Depends(get_current_claims),
    course_id: int = Depends(get_course_id),
    db: Session = Depends(get_db),
) -> CourseContext:
    user = load_user(db, claims)
    if not RelationshipResolver(db).is_course_staff(user, course_id):
        logger.info("User %s is not staff for course %s", user.id, course_id)
        raise AuthorizationError("Unauthorized: You are not staff for this course")
    return CourseContext(claims=claims, user=user, course_id=course_id)


def enrolled_only(
    claims: AccessTokenClaims = Depends(get_current_claims),
    course_id: int = Depends(get_course_id),
    db: Session = Depends(get_db),
) -> CourseContext:
    user = load_user(db, claims)
    resolver = RelationshipResolver(db)
    if not (resolver.is_enrolled_in(user, course_id) or resolver.is_course_staff(user, course_id)):
        logger.info("User %s is not enrolled in course %s", user.id, course_id)
        raise AuthorizationError("Unauthorized: You are not enrolled in this course")
    return CourseContext(claims=claims, user=user, course_id=course_id)
