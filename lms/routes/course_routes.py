import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms.auth.dependencies import get_current_user, get_resolver, load_user, professor_only
from lms.auth.jwt_handler import AccessTokenClaims
from lms.auth.relationships import RelationshipResolver
from lms.core.errors import AuthorizationError, NotFoundError, ValidationError
from lms.database import database_unavailable, get_db
from lms.models.course import Course, CourseStatus, course_assistants, user_courses
from lms.models.user import Role, User

router = APIRouter(tags=['courses'])

logger = logging.getLogger(__name__)


class CourseRequest(BaseModel):
    title: str
    term: str
    description: str = ''
    syllabus: str = ''
    status: CourseStatus = CourseStatus.DRAFT
    is_public: bool = False

    @field_validator('title', 'term')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title and term are required.')
        return normalized


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    role: Role

    class Config:
        from_attributes = True


class CourseResponse(BaseModel):
    id: int
    title: str
    term: str
    description: str | None = None
    syllabus: str | None = None
    status: CourseStatus
    is_public: bool
    professor_id: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class CourseDetailResponse(CourseResponse):
    professor: UserSummary
    assistants: list[UserSummary]
    students: list[UserSummary]


class EnrollByEmailRequest(BaseModel):
    student_email: str | None = None
    multiple_emails: str | None = None


class EnrollmentResult(BaseModel):
    enrolled: list[str]
    failures: list[str]
    message: str


_ROLE_NOUNS = {
    Role.STUDENT: 'a student',
    Role.PROFESSOR: 'a professor',
    Role.TA: 'a TA',
}


def _get_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError('Course not found')
    return course


def _require_course_professor(resolver: RelationshipResolver, user: User, course_id: int, action: str) -> None:
    if not resolver.is_professor_of(user, course_id):
        logger.info('User %s denied %s on course %s', user.id, action, course_id)
        raise AuthorizationError(f'Unauthorized: Only the course professor can {action}')


def _get_user_with_role(db: Session, user_id: int, role: Role, label: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f'{label} not found')
    if user.role != role:
        raise ValidationError(f'Selected user is not {_ROLE_NOUNS[role]}')
    return user


@router.get('', response_model=list[CourseResponse])
def list_courses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        query = db.query(Course)
        if user.is_professor():
            query = query.filter(Course.professor_id == user.id)
        elif user.is_ta():
            query = query.join(course_assistants, course_assistants.c.course_id == Course.id).filter(
                course_assistants.c.user_id == user.id,
            )
        else:
            enrolled_ids = db.query(user_courses.c.course_id).filter(user_courses.c.user_id == user.id)
            query = query.filter(
                or_(
                    (Course.status == CourseStatus.PUBLISHED) & Course.is_public.is_(True),
                    Course.id.in_(enrolled_ids),
                )
            )
        return query.order_by(Course.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('', response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
def create_course(
    data: CourseRequest,
    claims: AccessTokenClaims = Depends(professor_only),
    db: Session = Depends(get_db),
):
    professor = load_user(db, claims)
    try:
        course = Course(
            title=data.title,
            term=data.term,
            description=data.description,
            syllabus=data.syllabus,
            status=data.status,
            is_public=data.is_public,
            professor_id=professor.id,
        )
        db.add(course)
        db.commit()
        db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Professor %s created course %s', professor.id, course.id)
    return course


@router.get('/{course_id}', response_model=CourseDetailResponse)
def view_course(
    course_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    course = _get_course(db, course_id)
    if not resolver.has_course_access(user, course):
        raise AuthorizationError('Unauthorized: You do not have access to this course')
    return course


@router.put('/{course_id}', response_model=CourseResponse)
def update_course(
    course_id: int,
    data: CourseRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'update course details')
    course = _get_course(db, course_id)

    try:
        course.title = data.title
        course.term = data.term
        course.description = data.description
        course.syllabus = data.syllabus
        course.status = data.status
        course.is_public = data.is_public
        db.commit()
        db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    return course


@router.post('/{course_id}/assistants/{user_id}', response_model=CourseDetailResponse)
def assign_ta(
    course_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'assign TAs')
    course = _get_course(db, course_id)
    assistant = _get_user_with_role(db, user_id, Role.TA, 'TA')

    try:
        if assistant not in course.assistants:
            course.assistants.append(assistant)
            db.commit()
            db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Assigned TA %s to course %s', assistant.id, course.id)
    return course


@router.delete('/{course_id}/assistants/{user_id}', response_model=CourseDetailResponse)
def remove_ta(
    course_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'remove TAs')
    course = _get_course(db, course_id)
    assistant = db.get(User, user_id)
    if assistant is None:
        raise NotFoundError('TA not found')

    try:
        if assistant in course.assistants:
            course.assistants.remove(assistant)
            db.commit()
            db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Removed TA %s from course %s', assistant.id, course.id)
    return course


@router.post('/{course_id}/students/by-email', response_model=EnrollmentResult)
def enroll_by_email(
    course_id: int,
    data: EnrollByEmailRequest,
    response: Response,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'enroll students')
    course = _get_course(db, course_id)
    enrolled: list[str] = []
    failures: list[str] = []

    try:
        single_email = (data.student_email or '').strip()
        if single_email:
            student = db.query(User).filter(User.email == single_email).first()
            if student is None:
                raise NotFoundError(f'Student with email {single_email} not found')
            if not student.is_student():
                raise ValidationError(f'User with email {single_email} is not a student')
            if student not in course.students:
                course.students.append(student)
            enrolled.append(single_email)

        for raw_email in (data.multiple_emails or '').splitlines():
            student_email = raw_email.strip()
            if not student_email:
                continue

            student = db.query(User).filter(User.email == student_email).first()
            if student is None:
                failures.append(f'{student_email} (not found)')
                continue
            if not student.is_student():
                failures.append(f'{student_email} (not a student)')
                continue
            if student in course.students:
                failures.append(f'{student_email} (already enrolled)')
                continue

            course.students.append(student)
            enrolled.append(student_email)

        db.commit()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    message = f'Successfully enrolled {len(enrolled)} students.'
    if failures:
        response.status_code = status.HTTP_207_MULTI_STATUS
        message += ' Failed to enroll the following emails:\n' + '\n'.join(failures)

    logger.info('Bulk enrollment for course %s: %s enrolled, %s failed', course.id, len(enrolled), len(failures))
    return EnrollmentResult(enrolled=enrolled, failures=failures, message=message)


@router.post('/{course_id}/students/{user_id}', response_model=CourseDetailResponse)
def enroll_student(
    course_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'enroll students')
    course = _get_course(db, course_id)
    student = _get_user_with_role(db, user_id, Role.STUDENT, 'Student')

    try:
        if student not in course.students:
            course.students.append(student)
            db.commit()
            db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Enrolled student %s in course %s', student.id, course.id)
    return course


@router.delete('/{course_id}/students/{user_id}', response_model=CourseDetailResponse)
def unenroll_student(
    course_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    _require_course_professor(resolver, user, course_id, 'unenroll students')
    course = _get_course(db, course_id)
    student = db.get(User, user_id)
    if student is None:
        raise NotFoundError('Student not found')

    try:
        if student in course.students:
            course.students.remove(student)
            db.commit()
            db.refresh(course)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Unenrolled student %s from course %s', student.id, course.id)
    return course
