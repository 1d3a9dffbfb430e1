"""Course-scoped content: materials, assignments, submissions, quizzes and announcements.

Creation and listing take the course from the ``course_id`` query parameter
and are guarded by ``course_staff_only`` / ``enrolled_only``. Routes that
address an existing item by id check staff membership against the course the
item belongs to.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms.auth.dependencies import CourseContext, course_staff_only, enrolled_only, get_current_user, get_resolver
from lms.auth.relationships import RelationshipResolver
from lms.core.errors import AuthorizationError, NotFoundError, ValidationError
from lms.database import database_unavailable, get_db
from lms.models.coursework import Announcement, Assignment, Material, Quiz, Submission
from lms.models.user import User

router = APIRouter(tags=['coursework'])

logger = logging.getLogger(__name__)

DEFAULT_QUIZ_TIME_LIMIT_MINUTES = 60
DEFAULT_QUIZ_ATTEMPTS = 1
DEFAULT_QUIZ_DUE_DAYS = 7


def _require_title(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Title is required.')
    return normalized


def _require_points(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        raise ValueError('Points value must be a non-negative number.')
    return value


def _to_naive_utc(value: datetime | None) -> datetime | None:
    # Due dates and submission times are stored as naive UTC.
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MaterialRequest(BaseModel):
    title: str
    description: str = ''
    file_type: str = 'link'
    file_path: str = ''

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _require_title(value)

    @field_validator('file_type')
    @classmethod
    def normalize_file_type(cls, value: str) -> str:
        return value.strip().lower() or 'link'


class MaterialResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    file_type: str | None = None
    file_path: str | None = None
    course_id: int

    class Config:
        from_attributes = True


class AssignmentRequest(BaseModel):
    title: str
    due_date: datetime
    description: str = ''
    points_value: float = 0
    submission_type: str = 'text'
    allow_late: bool = False
    late_penalty: float = 0

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _require_title(value)

    @field_validator('points_value')
    @classmethod
    def validate_points(cls, value: float) -> float:
        return _require_points(value)

    @field_validator('due_date')
    @classmethod
    def normalize_due_date(cls, value: datetime) -> datetime:
        return _to_naive_utc(value)

    @field_validator('late_penalty')
    @classmethod
    def validate_late_penalty(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0 or value > 100:
            raise ValueError('Late penalty must be a percentage between 0 and 100.')
        return value


class AssignmentResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    due_date: datetime
    points_value: float
    submission_type: str | None = None
    allow_late: bool
    late_penalty: float
    course_id: int

    class Config:
        from_attributes = True


class SubmissionRequest(BaseModel):
    content: str = ''
    file_path: str = ''


class GradeRequest(BaseModel):
    grade: float
    feedback: str = ''


class SubmissionResponse(BaseModel):
    id: int
    assignment_id: int
    user_id: int
    content: str | None = None
    file_path: str | None = None
    submitted_at: datetime
    is_late: bool
    grade: float | None = None
    adjusted_grade: float | None = None
    feedback: str | None = None
    graded_by: int | None = None
    graded_at: datetime | None = None


class QuizRequest(BaseModel):
    title: str
    description: str = ''
    due_date: datetime | None = None
    time_limit: int = DEFAULT_QUIZ_TIME_LIMIT_MINUTES
    attempts: int = DEFAULT_QUIZ_ATTEMPTS
    points_value: float = 0
    visible_from: date | None = None
    visible_to: date | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _require_title(value)

    @field_validator('points_value')
    @classmethod
    def validate_points(cls, value: float) -> float:
        return _require_points(value)

    @field_validator('due_date')
    @classmethod
    def normalize_due_date(cls, value: datetime | None) -> datetime | None:
        return _to_naive_utc(value)

    @field_validator('time_limit', 'attempts')
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError('Time limit and attempts must be at least 1.')
        return value


class QuizResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    due_date: datetime
    time_limit: int
    attempts: int
    points_value: float
    visible_from: date | None = None
    visible_to: date | None = None
    course_id: int

    class Config:
        from_attributes = True


class AnnouncementRequest(BaseModel):
    title: str
    content: str = ''

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _require_title(value)


class AnnouncementResponse(BaseModel):
    id: int
    title: str
    content: str | None = None
    course_id: int
    publisher_id: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def _get_or_404(db: Session, model, item_id: int, label: str):
    item = db.get(model, item_id)
    if item is None:
        raise NotFoundError(f'{label} not found')
    return item


def _require_staff(resolver: RelationshipResolver, user: User, course_id: int, action: str) -> None:
    if not resolver.is_course_staff(user, course_id):
        logger.info('User %s denied %s on course %s', user.id, action, course_id)
        raise AuthorizationError(f'Unauthorized: Only course staff can {action}')


def _save(db: Session, item):
    try:
        db.add(item)
        db.commit()
        db.refresh(item)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
    return item


def _delete(db: Session, item) -> None:
    try:
        db.delete(item)
        db.commit()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


def _list_for_course(db: Session, model, course_id: int, order_by):
    try:
        return db.query(model).filter(model.course_id == course_id).order_by(order_by).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


def apply_late_penalty(grade: float | None, is_late: bool, late_penalty: float | None) -> float | None:
    if grade is None:
        return None
    if not is_late or not late_penalty:
        return grade
    return round(grade * (1 - late_penalty / 100), 2)


def _submission_response(submission: Submission, assignment: Assignment) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        assignment_id=submission.assignment_id,
        user_id=submission.user_id,
        content=submission.content,
        file_path=submission.file_path,
        submitted_at=submission.submitted_at,
        is_late=bool(submission.is_late),
        grade=submission.grade,
        adjusted_grade=apply_late_penalty(submission.grade, bool(submission.is_late), assignment.late_penalty),
        feedback=submission.feedback,
        graded_by=submission.graded_by,
        graded_at=submission.graded_at,
    )


# Materials

@router.post('/materials', response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
def create_material(
    data: MaterialRequest,
    ctx: CourseContext = Depends(course_staff_only),
    db: Session = Depends(get_db),
):
    material = Material(course_id=ctx.course_id, **data.model_dump())
    return _save(db, material)


@router.get('/materials', response_model=list[MaterialResponse])
def list_materials(ctx: CourseContext = Depends(enrolled_only), db: Session = Depends(get_db)):
    return _list_for_course(db, Material, ctx.course_id, Material.id.asc())


@router.put('/materials/{material_id}', response_model=MaterialResponse)
def update_material(
    material_id: int,
    data: MaterialRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    material = _get_or_404(db, Material, material_id, 'Material')
    _require_staff(resolver, user, material.course_id, 'update materials')

    for field, value in data.model_dump().items():
        setattr(material, field, value)
    return _save(db, material)


@router.delete('/materials/{material_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_material(
    material_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    material = _get_or_404(db, Material, material_id, 'Material')
    _require_staff(resolver, user, material.course_id, 'delete materials')
    _delete(db, material)


# Assignments

@router.post('/assignments', response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    data: AssignmentRequest,
    ctx: CourseContext = Depends(course_staff_only),
    db: Session = Depends(get_db),
):
    assignment = Assignment(course_id=ctx.course_id, **data.model_dump())
    return _save(db, assignment)


@router.get('/assignments', response_model=list[AssignmentResponse])
def list_assignments(ctx: CourseContext = Depends(enrolled_only), db: Session = Depends(get_db)):
    return _list_for_course(db, Assignment, ctx.course_id, Assignment.due_date.asc())


@router.put('/assignments/{assignment_id}', response_model=AssignmentResponse)
def update_assignment(
    assignment_id: int,
    data: AssignmentRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    assignment = _get_or_404(db, Assignment, assignment_id, 'Assignment')
    _require_staff(resolver, user, assignment.course_id, 'update assignments')

    for field, value in data.model_dump().items():
        setattr(assignment, field, value)
    return _save(db, assignment)


@router.delete('/assignments/{assignment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    assignment = _get_or_404(db, Assignment, assignment_id, 'Assignment')
    _require_staff(resolver, user, assignment.course_id, 'delete assignments')
    _delete(db, assignment)


# Submissions and grading

@router.post(
    '/assignments/{assignment_id}/submissions',
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_assignment(
    assignment_id: int,
    data: SubmissionRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    assignment = _get_or_404(db, Assignment, assignment_id, 'Assignment')
    if not resolver.is_enrolled_in(user, assignment.course_id):
        raise AuthorizationError('Unauthorized: You are not enrolled in this course')

    now = utcnow()
    is_late = now > assignment.due_date
    if is_late and not assignment.allow_late:
        raise ValidationError('This assignment is past due and does not accept late submissions')

    submission = _save(db, Submission(
        assignment_id=assignment.id,
        user_id=user.id,
        content=data.content,
        file_path=data.file_path,
        submitted_at=now,
        is_late=is_late,
    ))
    logger.info('User %s submitted assignment %s (late=%s)', user.id, assignment.id, is_late)
    return _submission_response(submission, assignment)


@router.get('/assignments/{assignment_id}/submissions', response_model=list[SubmissionResponse])
def list_submissions(
    assignment_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    assignment = _get_or_404(db, Assignment, assignment_id, 'Assignment')
    _require_staff(resolver, user, assignment.course_id, 'view submissions')

    try:
        submissions = db.query(Submission).filter(
            Submission.assignment_id == assignment.id,
        ).order_by(Submission.submitted_at.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    return [_submission_response(submission, assignment) for submission in submissions]


@router.post('/submissions/{submission_id}/grade', response_model=SubmissionResponse)
def grade_submission(
    submission_id: int,
    data: GradeRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    submission = _get_or_404(db, Submission, submission_id, 'Submission')
    assignment = _get_or_404(db, Assignment, submission.assignment_id, 'Assignment')
    _require_staff(resolver, user, assignment.course_id, 'grade submissions')

    if not math.isfinite(data.grade) or data.grade < 0:
        raise ValidationError('Invalid grade value')

    submission.grade = data.grade
    submission.feedback = data.feedback
    submission.graded_by = user.id
    submission.graded_at = utcnow()
    submission = _save(db, submission)

    logger.info('User %s graded submission %s', user.id, submission.id)
    return _submission_response(submission, assignment)


# Quizzes

@router.post('/quizzes', response_model=QuizResponse, status_code=status.HTTP_201_CREATED)
def create_quiz(
    data: QuizRequest,
    ctx: CourseContext = Depends(course_staff_only),
    db: Session = Depends(get_db),
):
    values = data.model_dump()
    if values['due_date'] is None:
        values['due_date'] = utcnow() + timedelta(days=DEFAULT_QUIZ_DUE_DAYS)
    return _save(db, Quiz(course_id=ctx.course_id, **values))


@router.get('/quizzes', response_model=list[QuizResponse])
def list_quizzes(ctx: CourseContext = Depends(enrolled_only), db: Session = Depends(get_db)):
    return _list_for_course(db, Quiz, ctx.course_id, Quiz.due_date.asc())


@router.put('/quizzes/{quiz_id}', response_model=QuizResponse)
def update_quiz(
    quiz_id: int,
    data: QuizRequest,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    quiz = _get_or_404(db, Quiz, quiz_id, 'Quiz')
    _require_staff(resolver, user, quiz.course_id, 'update quizzes')

    for field, value in data.model_dump(exclude_none=True).items():
        setattr(quiz, field, value)
    return _save(db, quiz)


@router.delete('/quizzes/{quiz_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_quiz(
    quiz_id: int,
    user: User = Depends(get_current_user),
    resolver: RelationshipResolver = Depends(get_resolver),
    db: Session = Depends(get_db),
):
    quiz = _get_or_404(db, Quiz, quiz_id, 'Quiz')
    _require_staff(resolver, user, quiz.course_id, 'delete quizzes')
    _delete(db, quiz)


# Announcements

@router.post('/announcements', response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
def create_announcement(
    data: AnnouncementRequest,
    ctx: CourseContext = Depends(course_staff_only),
    db: Session = Depends(get_db),
):
    announcement = Announcement(
        course_id=ctx.course_id,
        publisher_id=ctx.user.id,
        title=data.title,
        content=data.content,
    )
    return _save(db, announcement)


@router.get('/announcements', response_model=list[AnnouncementResponse])
def list_announcements(ctx: CourseContext = Depends(enrolled_only), db: Session = Depends(get_db)):
    return _list_for_course(db, Announcement, ctx.course_id, Announcement.created_at.desc())
