"""Shared pytest fixtures: an in-memory database, a user factory and an API client."""

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from lms.auth import jwt_handler  # noqa: E402
from lms.database import Base, get_db  # noqa: E402
from lms.main import app  # noqa: E402
from lms.models.course import Course, CourseStatus  # noqa: E402
from lms.models.user import Role, User  # noqa: E402

STRONG_PASSWORD = 'Abc123!@'


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(username: str, role: Role = Role.STUDENT, verified: bool = True, password: str = STRONG_PASSWORD):
        user = User(
            username=username,
            email=f'{username}@example.edu',
            role=role,
            is_verified=verified,
        )
        user.set_password(password)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_course(db):
    def _make_course(professor: User, title: str = 'Distributed Systems', **fields):
        course = Course(
            title=title,
            term=fields.pop('term', 'Fall 2025'),
            status=fields.pop('status', CourseStatus.DRAFT),
            is_public=fields.pop('is_public', False),
            professor_id=professor.id,
            **fields,
        )
        db.add(course)
        db.commit()
        db.refresh(course)
        return course

    return _make_course


@pytest.fixture
def client(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        session = testing_session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        details = jwt_handler.create_token(user)
        return {'Authorization': f'Bearer {details.access_token}'}

    return _auth_headers


@pytest.fixture
def course_setup(db, make_user, make_course):
    """A course owned by one professor, with one TA, one enrolled student and one outsider."""
    professor = make_user('prof_a', Role.PROFESSOR)
    ta = make_user('ta_a', Role.TA)
    student = make_user('student_b', Role.STUDENT)
    outsider = make_user('outsider', Role.STUDENT)
    course = make_course(professor)
    course.assistants.append(ta)
    course.students.append(student)
    db.commit()
    return {
        'professor': professor,
        'ta': ta,
        'student': student,
        'outsider': outsider,
        'course_id': course.id,
    }
